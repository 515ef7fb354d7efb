"""
HTTP API module for RepoMentor.

Provides FastAPI endpoints for:
- Repository analysis and tutoring sessions
- Code ingestion and semantic search
- Realtime text/voice turns over WebSocket
"""
