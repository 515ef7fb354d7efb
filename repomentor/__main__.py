import argparse
import logging
import os
import sys

from .core.config import get_config_value


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("psycopg2").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def _cfg(section: str, key: str, default):
    return get_config_value("repomentor", section, key, default=default)


def build_services():
    """Wire every service from ``config/repomentor.yaml`` and the environment.

    Returns:
        Keyword arguments for ``create_app``
    """
    from .core.agent import StudyMaterialGenerator, TurnOrchestrator
    from .core.constants import SOURCE_EXTENSIONS, STRUGGLE_INDICATORS
    from .core.db import get_database_manager
    from .core.gateway import InferenceGateway, build_embed_model, build_llm
    from .core.github import GitHubClient, RepositoryAnalyzer
    from .core.ingestion import CodeIngestionService
    from .core.session import PhraseStruggleClassifier, SessionStore
    from .core.session.actor import TutorServices
    from .core.session.registry import SessionRegistry
    from .core.vector import CodeSearchService, build_vector_index
    from .core.voice import HTTPTranscriber, VoicePipeline

    database_url = os.getenv("DATABASE_URL")
    db_manager = get_database_manager(database_url)
    store = SessionStore(db_manager)

    github = GitHubClient(
        api_base=_cfg("github", "api_base", "https://api.github.com"),
        timeout_seconds=_cfg("github", "timeout_seconds", 30),
    )
    transcriber = HTTPTranscriber(
        base_url=_cfg("transcription", "base_url", "https://api.openai.com/v1"),
        model=_cfg("transcription", "model", "whisper-1"),
        timeout_seconds=_cfg("transcription", "timeout_seconds", 60),
    )
    llm = build_llm(
        provider=_cfg("llm", "provider", "openai"),
        model=_cfg("llm", "model", "gpt-4o-mini"),
        temperature=_cfg("llm", "temperature", 0.7),
        max_tokens=_cfg("llm", "max_tokens", 1000),
        request_timeout=_cfg("llm", "request_timeout", 120),
    )
    embed_model = build_embed_model(
        provider=_cfg("embedding", "provider", "openai"),
        model=_cfg("embedding", "model", "text-embedding-3-small"),
    )
    gateway = InferenceGateway(llm, embed_model=embed_model, transcriber=transcriber)

    index = build_vector_index(
        backend=_cfg("vector_store", "backend", "memory"),
        database_url=database_url,
        table_name=_cfg("vector_store", "table_name", "repomentor_code_chunks"),
        embed_dim=_cfg("vector_store", "embed_dim", 1536),
    )
    analyzer = RepositoryAnalyzer(github, max_files=_cfg("github", "max_repo_files", 100))
    search = CodeSearchService(gateway, index)
    ingestion = CodeIngestionService(
        github,
        gateway,
        index,
        extensions=_cfg("ingestion", "extensions", SOURCE_EXTENSIONS),
        max_files=_cfg("ingestion", "max_files", 500),
        chunk_size=_cfg("ingestion", "chunk_size", 1000),
        max_chunks_per_file=_cfg("ingestion", "max_chunks_per_file", 10),
        preview_chars=_cfg("ingestion", "preview_chars", 200),
        concurrency=_cfg("ingestion", "concurrency", 2),
    )

    generator = StudyMaterialGenerator(
        gateway,
        flashcard_count=_cfg("tutor", "flashcard_count", 5),
        study_plan_minutes=_cfg("tutor", "study_plan_minutes", 15),
        max_parse_retries=_cfg("tutor", "max_parse_retries", 1),
    )
    orchestrator = TurnOrchestrator(
        gateway,
        max_turns=_cfg("agent", "max_turns", 6),
        history_limit=_cfg("agent", "history_limit", 20),
        max_tool_result_chars=_cfg("agent", "max_tool_result_chars", 8000),
    )
    indicators = _cfg("tutor", "struggle_indicators", STRUGGLE_INDICATORS)
    services = TutorServices(
        orchestrator=orchestrator,
        voice=VoicePipeline(gateway, orchestrator),
        analyzer=analyzer,
        search=search,
        generator=generator,
        classifier=PhraseStruggleClassifier(indicators),
    )
    registry = SessionRegistry(
        store,
        services,
        retention_hours=_cfg("sessions", "retention_hours", 24),
        sweep_interval_seconds=_cfg("sessions", "sweep_interval_seconds", 3600),
    )

    return {
        "registry": registry,
        "ingestion": ingestion,
        "search": search,
        "analyzer": analyzer,
        "gateway": gateway,
        "ingest_batch_size": _cfg("ingestion", "batch_size", 3),
        "http_clients": [github, transcriber],
    }


def main():
    """Main entry point for RepoMentor."""
    parser = argparse.ArgumentParser(description="RepoMentor - Socratic repository tutor")
    parser.add_argument(
        "--port",
        type=int,
        default=_cfg("server", "port", 9010),
        help="Port for the API server"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Run in debug mode (auto-reload)"
    )
    args = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("Starting RepoMentor")

    from .api.app import create_app
    app = create_app(**build_services())

    import uvicorn

    logger.info(f"Starting FastAPI server on http://0.0.0.0:{args.port}")
    print(f"\n  RepoMentor is running at: http://localhost:{args.port}")
    print(f"  API docs at: http://localhost:{args.port}/docs\n")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
        log_level=args.log_level.lower(),
        reload=args.debug,
    )


if __name__ == "__main__":
    main()
