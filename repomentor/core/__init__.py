# Lazy imports to avoid triggering full dependency chain.
# This allows targeted imports like `from repomentor.core.db.models import Base`
# without pulling in LlamaIndex, numpy, httpx, etc.

__all__ = [
    "InferenceGateway",
    "GitHubClient",
    "RepositoryAnalyzer",
    "CodeIngestionService",
    "CodeSearchService",
    "TurnOrchestrator",
    "StudyMaterialGenerator",
    "VoicePipeline",
    "SessionRegistry",
    "SessionStore",
]

_IMPORT_MAP = {
    "InferenceGateway": ".gateway",
    "GitHubClient": ".github",
    "RepositoryAnalyzer": ".github",
    "CodeIngestionService": ".ingestion",
    "CodeSearchService": ".vector",
    "TurnOrchestrator": ".agent",
    "StudyMaterialGenerator": ".agent",
    "VoicePipeline": ".voice",
    "SessionRegistry": ".session.registry",
    "SessionStore": ".session",
}


def __getattr__(name):
    if name in _IMPORT_MAP:
        import importlib
        module = importlib.import_module(_IMPORT_MAP[name], __package__)
        return getattr(module, name)
    raise AttributeError(f"module 'repomentor.core' has no attribute {name}")
