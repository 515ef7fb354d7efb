"""GitHub REST client.

Async httpx wrapper for the three calls RepoMentor needs: default branch,
recursive tree, and raw file content. A token (``GITHUB_TOKEN``) is
optional but raises the rate limit considerably.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..errors import UpstreamFailure

logger = logging.getLogger(__name__)

_REPO_URL_RE = re.compile(r"github\.com[/:]([^/]+)/([^/#?]+)")

USER_AGENT = "RepoMentor"


@dataclass(frozen=True)
class RepoRef:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class TreeEntry:
    path: str
    type: str          # "blob" | "tree"
    size: int = 0
    sha: str = ""


def parse_repo_url(repo_url: str) -> RepoRef:
    """Parse ``https://github.com/owner/name[.git]`` (or ``owner/name``).

    Raises:
        ValueError: If the URL does not name a GitHub repository
    """
    match = _REPO_URL_RE.search(repo_url)
    if match:
        owner, name = match.group(1), match.group(2)
    else:
        parts = repo_url.strip().strip("/").split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid GitHub repository URL: {repo_url}")
        owner, name = parts
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return RepoRef(owner=owner, name=name)


class GitHubClient:
    """Read-only access to repository trees and contents."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_base: str = "https://api.github.com",
        timeout_seconds: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._token = token if token is not None else os.getenv("GITHUB_TOKEN")
        self._api_base = api_base.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    def _headers(self, accept: str = "application/vnd.github.v3+json") -> Dict[str, str]:
        headers = {"Accept": accept, "User-Agent": USER_AGENT}
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    async def _get(self, path: str, accept: str = "application/vnd.github.v3+json",
                   params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{self._api_base}{path}"
        try:
            response = await self._client.get(url, headers=self._headers(accept), params=params)
        except httpx.HTTPError as e:
            raise UpstreamFailure("github", f"GET {path} failed: {e}") from e
        if response.status_code != 200:
            raise UpstreamFailure(
                "github", f"GET {path} returned {response.status_code} {response.reason_phrase}"
            )
        return response

    async def get_default_branch(self, repo: RepoRef) -> str:
        response = await self._get(f"/repos/{repo.owner}/{repo.name}")
        return response.json().get("default_branch") or "main"

    async def get_tree(self, repo: RepoRef, branch: str) -> List[TreeEntry]:
        """Recursive tree listing of ``branch``."""
        response = await self._get(
            f"/repos/{repo.owner}/{repo.name}/git/trees/{branch}",
            params={"recursive": "1"},
        )
        data = response.json()
        if data.get("truncated"):
            logger.warning(f"Tree for {repo.full_name} was truncated by GitHub")
        return [
            TreeEntry(
                path=item["path"],
                type=item.get("type", "blob"),
                size=item.get("size") or 0,
                sha=item.get("sha", ""),
            )
            for item in data.get("tree", [])
        ]

    async def get_file_content(self, repo: RepoRef, path: str, ref: Optional[str] = None) -> str:
        """Raw text content of one file."""
        params = {"ref": ref} if ref else None
        response = await self._get(
            f"/repos/{repo.owner}/{repo.name}/contents/{path}",
            accept="application/vnd.github.v3.raw",
            params=params,
        )
        return response.text

    async def aclose(self) -> None:
        await self._client.aclose()
