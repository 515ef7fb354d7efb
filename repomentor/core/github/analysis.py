"""Repository structure analysis.

Crawls a repository tree and produces an ``Analysis``: files ranked by a
path heuristic, hotspots grouped by category, prerequisite concepts
inferred from languages and manifests, and a short primer.
"""

import logging
import math
import os
import re
from typing import Dict, List, Optional

from ..session.models import (
    Analysis,
    Difficulty,
    FileNode,
    Hotspot,
    HotspotCategory,
    Prerequisite,
)
from .client import GitHubClient, TreeEntry, parse_repo_url

logger = logging.getLogger(__name__)

# Extension → language mapping
SUPPORTED_EXTENSIONS: Dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".md": "markdown",
    ".txt": "text",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
}

_HOTSPOT_THRESHOLD = 0.6
_MAX_HOTSPOTS = 5
_FILES_PER_MINUTE = 10

_CATEGORY_PATTERNS = [
    (HotspotCategory.DOCS, re.compile(r"(^|/)(README|CONTRIBUTING|ARCHITECTURE|DESIGN)[^/]*$", re.I)),
    (HotspotCategory.CONFIG, re.compile(
        r"(package\.json|requirements\.txt|pyproject\.toml|Cargo\.toml|go\.mod|tsconfig[^/]*|"
        r"\.(ya?ml|toml|ini)$)", re.I)),
    (HotspotCategory.ROUTER, re.compile(r"(route|router|urls)[^/]*$", re.I)),
    (HotspotCategory.API, re.compile(r"(^|/)(api|handlers?|controllers?|endpoints?)(/|[^/]*$)", re.I)),
    (HotspotCategory.ENTRYPOINT, re.compile(
        r"(^|/)(main|index|app|server|__main__|cli)\.(py|js|ts|tsx|go|rs|java)$", re.I)),
]

_PREREQUISITES = {
    "python": ("Python", "High-level programming language", Difficulty.BEGINNER,
               ["https://docs.python.org/3/tutorial/"]),
    "typescript": ("TypeScript", "Typed superset of JavaScript", Difficulty.BEGINNER,
                   ["https://www.typescriptlang.org/docs/"]),
    "javascript": ("JavaScript", "Language of the web platform", Difficulty.BEGINNER,
                   ["https://developer.mozilla.org/en-US/docs/Web/JavaScript/Guide"]),
    "go": ("Go", "Statically typed compiled language with goroutines", Difficulty.INTERMEDIATE,
           ["https://go.dev/tour/"]),
    "rust": ("Rust", "Systems language with ownership and borrowing", Difficulty.ADVANCED,
             ["https://doc.rust-lang.org/book/"]),
    "java": ("Java", "Object-oriented JVM language", Difficulty.INTERMEDIATE,
             ["https://dev.java/learn/"]),
}


def detect_language(file_path: str) -> str:
    """Language identifier from the file extension, ``"unknown"`` if unmapped."""
    _, ext = os.path.splitext(file_path)
    return SUPPORTED_EXTENSIONS.get(ext.lower(), "unknown")


def score_file(path: str, size: int = 0) -> float:
    """Importance score in [0, 1] from path conventions."""
    score = 0.5
    if re.search(r"README|CONTRIBUTING|ARCHITECTURE|DESIGN", path, re.I):
        score += 0.4
    if re.search(r"package\.json|requirements\.txt|Cargo\.toml|go\.mod|pyproject\.toml", path):
        score += 0.3
    if re.search(r"tsconfig|webpack|vite|rollup|babel\.config", path):
        score += 0.2
    if re.search(r"(^|/)src/.*\.(ts|js|py|go|rs|java)$", path):
        score += 0.2
    if re.search(r"(^|/)lib/.*\.(ts|js|py|go|rs|java)$", path):
        score += 0.15
    if re.search(r"test|spec|__tests__", path, re.I):
        score -= 0.2
    if re.search(r"\.(json|ya?ml|toml|ini)$", path):
        score += 0.1
    if size > 100_000:
        score -= 0.2
    return max(0.0, min(1.0, score))


def categorize(path: str) -> Optional[HotspotCategory]:
    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(path):
            return category
    return None


class RepositoryAnalyzer:
    """Build an ``Analysis`` from a GitHub repository tree."""

    def __init__(self, github: GitHubClient, max_files: int = 100):
        self._github = github
        self._max_files = max_files

    async def analyze(self, repo_url: str, depth: int = 2) -> Analysis:
        """Crawl the repository and rank its files.

        Args:
            repo_url: GitHub repository URL
            depth: Maximum directory depth considered (1-3; 0 or less means unlimited)

        Returns:
            Analysis with structure, hotspots, prerequisites and primer
        """
        repo = parse_repo_url(repo_url)
        branch = await self._github.get_default_branch(repo)
        tree = await self._github.get_tree(repo, branch)

        blobs = [e for e in tree if e.type == "blob"]
        structure = self._rank(blobs, depth)
        hotspots = self._hotspots(structure)
        prerequisites = self._prerequisites(blobs)

        primer = (
            f"Repository: {repo.full_name}\n\n"
            f"This repository contains {len(blobs)} files. "
            f"Key areas to focus on: {', '.join(h.file for h in hotspots) or 'none detected'}.\n\n"
            f"Recommended prerequisites: {', '.join(p.concept for p in prerequisites) or 'none'}."
        )

        logger.info(
            f"Analyzed {repo.full_name}: {len(blobs)} files, "
            f"{len(hotspots)} hotspots, {len(prerequisites)} prerequisites"
        )
        return Analysis(
            repo_name=repo.full_name,
            structure=structure,
            hotspots=hotspots,
            prerequisites=prerequisites,
            primer=primer,
            estimated_read_time=math.ceil(len(structure) / _FILES_PER_MINUTE),
        )

    def _rank(self, blobs: List[TreeEntry], depth: int) -> List[FileNode]:
        nodes = [
            FileNode(
                path=e.path,
                importance=score_file(e.path, e.size),
                language=detect_language(e.path),
                size=e.size,
            )
            for e in blobs
            if depth <= 0 or e.path.count("/") < depth + 1
        ]
        nodes.sort(key=lambda n: (-n.importance, n.path))
        return nodes[: self._max_files]

    def _hotspots(self, structure: List[FileNode]) -> List[Hotspot]:
        hotspots: List[Hotspot] = []
        for node in structure:
            if node.importance <= _HOTSPOT_THRESHOLD:
                continue
            category = categorize(node.path)
            if category is None:
                continue
            hotspots.append(Hotspot(
                file=node.path,
                category=category,
                importance=node.importance,
                description=f"Key {category.value} file: {node.path}",
            ))
            if len(hotspots) >= _MAX_HOTSPOTS:
                break
        return hotspots

    def _prerequisites(self, blobs: List[TreeEntry]) -> List[Prerequisite]:
        languages = {detect_language(e.path) for e in blobs}
        prerequisites = []
        for language in sorted(languages):
            if language in _PREREQUISITES:
                concept, description, difficulty, links = _PREREQUISITES[language]
                prerequisites.append(Prerequisite(concept, description, difficulty, list(links)))

        paths = [e.path.lower() for e in blobs]
        if any("react" in p for p in paths) or any(p.endswith(".tsx") or p.endswith(".jsx") for p in paths):
            prerequisites.append(Prerequisite(
                "React", "JavaScript library for building user interfaces",
                Difficulty.INTERMEDIATE, ["https://react.dev/learn"],
            ))
        if any(p.endswith("dockerfile") for p in paths):
            prerequisites.append(Prerequisite(
                "Docker", "Container images and runtime",
                Difficulty.INTERMEDIATE, ["https://docs.docker.com/get-started/"],
            ))
        return prerequisites
