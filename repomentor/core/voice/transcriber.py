"""Hosted speech-to-text client.

Posts audio to an OpenAI-compatible ``/audio/transcriptions`` endpoint and
returns cleaned text. Errors propagate as ``httpx`` exceptions; the
InferenceGateway retries transient ones and wraps the rest.
"""

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


def clean_transcript(text: Optional[str]) -> str:
    """Strip role prefixes and collapse whitespace."""
    if not text:
        return ""
    s = text.strip()
    lower = s.lower()
    if lower.startswith("user:") or lower.startswith("assistant:") or lower.startswith("system:"):
        s = s.split(":", 1)[1].strip()
    return " ".join(s.split())


class HTTPTranscriber:
    """Whisper-style transcription over HTTP."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        model: str = "whisper-1",
        api_key: Optional[str] = None,
        timeout_seconds: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._url = base_url.rstrip("/") + "/audio/transcriptions"
        self._model = model
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        headers = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        response = await self._client.post(
            self._url,
            headers=headers,
            data={"model": self._model, "response_format": "json"},
            files={"file": (filename, audio, "application/octet-stream")},
        )
        response.raise_for_status()
        text = clean_transcript(response.json().get("text"))
        logger.debug(f"Transcribed {len(audio)} bytes → {len(text)} chars")
        return text

    async def aclose(self) -> None:
        await self._client.aclose()
