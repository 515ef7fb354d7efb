from .pipeline import VoicePipeline, VoiceTurn
from .transcriber import HTTPTranscriber, clean_transcript

__all__ = ["HTTPTranscriber", "VoicePipeline", "VoiceTurn", "clean_transcript"]
