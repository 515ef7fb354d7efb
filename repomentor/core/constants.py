"""Shared constants for RepoMentor.

This module contains constants that are used across multiple modules
to avoid duplication and ensure consistency.
"""

# =============================================================================
# Sessions
# =============================================================================

# Idle sessions are deleted after this many hours
SESSION_RETENTION_HOURS = 24

# How often the sweeper scans for idle sessions
SWEEP_INTERVAL_SECONDS = 3600

# =============================================================================
# Ingestion
# =============================================================================

# Files embedded per ingest() call. Each file costs one content fetch,
# one embedding call per chunk and one upsert.
DEFAULT_BATCH_SIZE = 3

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_MAX_CHUNKS_PER_FILE = 10
DEFAULT_PREVIEW_CHARS = 200
DEFAULT_MAX_FILES = 500

SOURCE_EXTENSIONS = (
    "js", "ts", "tsx", "jsx", "py", "java", "go", "rs", "cpp", "c", "md", "txt",
)

# =============================================================================
# Tutor
# =============================================================================

FLASHCARD_COUNT = 5
STUDY_PLAN_MINUTES = 15

STRUGGLE_INDICATORS = ("don't know", "confused", "unclear", "help", "stuck")

# Returned when the hosted model fails mid-turn
APOLOGY_MESSAGE = "I hit an error processing your request. Please try again."

# Returned when the model finishes without any text
EMPTY_REPLY_MESSAGE = "I understand. What part of the code would you like to explore first?"
