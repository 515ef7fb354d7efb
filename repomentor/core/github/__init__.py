from .analysis import RepositoryAnalyzer, detect_language, score_file
from .client import GitHubClient, RepoRef, TreeEntry, parse_repo_url

__all__ = [
    "GitHubClient",
    "RepoRef",
    "RepositoryAnalyzer",
    "TreeEntry",
    "detect_language",
    "parse_repo_url",
    "score_file",
]
