"""Inference Gateway: single entry point for hosted model capabilities.

Wraps a LlamaIndex LLM, a LlamaIndex embedding model and a speech-to-text
transcriber behind one object so every outbound inference call gets the
same treatment:

- Retry with exponential backoff on transient errors
- Per-call purpose tagging (tutor_turn, generator, embedding, transcription)
- Latency and error metrics, thread-safe and in-memory
- Any failure surfaces as ``UpstreamFailure``

Usage:
    gateway = InferenceGateway(llm=OpenAI(...), embed_model=OpenAIEmbedding(...),
                               transcriber=HTTPTranscriber(...))
    response = await gateway.chat(messages, tools=schemas, purpose="tutor_turn")
"""

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import backoff
import httpx
from llama_index.core.base.llms.types import ChatMessage, ChatResponse

from .errors import UpstreamFailure

logger = logging.getLogger(__name__)

_MAX_TRIES = 3
_MAX_TIME_SECONDS = 60


def _get_retryable_exceptions() -> tuple:
    """Lazy-load retryable exception classes.

    Provider SDKs are optional; only the installed ones contribute.
    """
    exceptions = [TimeoutError, ConnectionError, httpx.TransportError]
    try:
        from openai import APIConnectionError, RateLimitError
        exceptions.extend([RateLimitError, APIConnectionError])
    except ImportError:
        pass
    return tuple(exceptions)


# ── Metrics ────────────────────────────────────────────────────────────

@dataclass
class GatewayMetrics:
    """Thread-safe in-memory inference usage metrics."""

    total_calls: int = 0
    total_latency_ms: float = 0.0
    errors: int = 0
    retries: int = 0
    calls_by_purpose: dict = field(default_factory=lambda: defaultdict(int))

    def to_dict(self) -> dict:
        return {
            "total_calls": self.total_calls,
            "total_latency_ms": round(self.total_latency_ms, 1),
            "avg_latency_ms": round(self.total_latency_ms / max(self.total_calls, 1), 1),
            "errors": self.errors,
            "retries": self.retries,
            "calls_by_purpose": dict(self.calls_by_purpose),
        }


# ── Gateway ────────────────────────────────────────────────────────────

class InferenceGateway:
    """Hosted LLM, embedding and transcription calls with retry and metrics.

    Args:
        llm: LlamaIndex LLM supporting ``achat(messages, tools=...)`` and ``acomplete``
        embed_model: LlamaIndex embedding model (``aget_text_embedding``)
        transcriber: Object with ``async transcribe(audio: bytes) -> str``
    """

    def __init__(self, llm: Any, embed_model: Any = None, transcriber: Any = None):
        self._llm = llm
        self._embed_model = embed_model
        self._transcriber = transcriber
        self._metrics = GatewayMetrics()
        self._lock = threading.Lock()
        self._retryable_exceptions: Optional[tuple] = None
        logger.info(
            f"InferenceGateway initialized: llm={type(llm).__name__}"
            f" (model={getattr(llm, 'model', 'unknown')})"
            f" embed={type(embed_model).__name__}"
        )

    @property
    def model(self) -> str:
        return getattr(self._llm, "model", "unknown")

    # ── Core methods ──────────────────────────────────────────────────

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        tools: Optional[List[Dict[str, Any]]] = None,
        purpose: str = "general",
    ) -> ChatResponse:
        """Tool-augmented chat call. ``tools`` are OpenAI function schemas."""
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
        return await self._call("llm", purpose, self._llm.achat, list(messages), **kwargs)

    async def complete(self, prompt: str, purpose: str = "generator") -> str:
        """Plain completion; returns the stripped response text."""
        response = await self._call("llm", purpose, self._llm.acomplete, prompt)
        return (response.text or "").strip()

    async def embed(self, text: str) -> List[float]:
        """Embed one text into a fixed-length vector."""
        if self._embed_model is None:
            raise UpstreamFailure("embedding", "No embedding model configured")
        vector = await self._call(
            "embedding", "embedding", self._embed_model.aget_text_embedding, text
        )
        if not vector:
            raise UpstreamFailure("embedding", "Empty embedding returned")
        return list(vector)

    async def transcribe(self, audio: bytes) -> str:
        """Speech-to-text over the configured transcriber."""
        if self._transcriber is None:
            raise UpstreamFailure("transcription", "No transcriber configured")
        return await self._call(
            "transcription", "transcription", self._transcriber.transcribe, audio
        )

    # ── Retry ─────────────────────────────────────────────────────────

    async def _call(self, service: str, purpose: str, fn, *args, **kwargs):
        """Run ``fn`` with backoff; record metrics; wrap failures."""
        if self._retryable_exceptions is None:
            self._retryable_exceptions = _get_retryable_exceptions()

        @backoff.on_exception(
            backoff.expo,
            self._retryable_exceptions,
            max_tries=_MAX_TRIES,
            max_time=_MAX_TIME_SECONDS,
            on_backoff=self._on_retry,
        )
        async def _do_call():
            return await fn(*args, **kwargs)

        t0 = time.time()
        try:
            result = await _do_call()
        except UpstreamFailure:
            self._record_error(purpose)
            raise
        except Exception as e:
            self._record_error(purpose)
            raise UpstreamFailure(service, str(e) or type(e).__name__) from e

        self._record_success(purpose, (time.time() - t0) * 1000)
        return result

    def _on_retry(self, details: dict):
        """Log retry events and increment counter."""
        with self._lock:
            self._metrics.retries += 1
        logger.warning(
            f"InferenceGateway retry {details['tries']}/{_MAX_TRIES} "
            f"after {details['wait']:.1f}s ({type(details.get('exception')).__name__})"
        )

    # ── Metrics recording ─────────────────────────────────────────────

    def _record_success(self, purpose: str, latency_ms: float):
        with self._lock:
            m = self._metrics
            m.total_calls += 1
            m.total_latency_ms += latency_ms
            m.calls_by_purpose[purpose] += 1
        logger.debug(f"Inference call: purpose={purpose} latency={latency_ms:.0f}ms model={self.model}")

    def _record_error(self, purpose: str):
        with self._lock:
            self._metrics.errors += 1
            self._metrics.calls_by_purpose[f"{purpose}_error"] += 1
        logger.error(f"Inference call failed: purpose={purpose} model={self.model}")

    # ── Public metrics API ────────────────────────────────────────────

    def get_metrics(self) -> dict:
        """Return a thread-safe snapshot of current metrics."""
        with self._lock:
            result = self._metrics.to_dict()
            result["model"] = self.model
            return result

    def reset_metrics(self):
        with self._lock:
            self._metrics = GatewayMetrics()
        logger.info("InferenceGateway metrics reset")


# ── Factories ──────────────────────────────────────────────────────────

def build_llm(provider: str, model: str, temperature: float = 0.7, max_tokens: int = 1000,
              request_timeout: float = 120.0):
    """Instantiate the configured LlamaIndex LLM."""
    import os

    if provider == "ollama":
        from llama_index.llms.ollama import Ollama
        host = os.getenv("OLLAMA_HOST", "localhost")
        return Ollama(
            model=model,
            base_url=f"http://{host}:11434",
            temperature=temperature,
            request_timeout=request_timeout,
        )
    if provider == "openai":
        from llama_index.llms.openai import OpenAI
        return OpenAI(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=request_timeout,
        )
    raise ValueError(f"Unsupported LLM provider: {provider}")


def build_embed_model(provider: str, model: str):
    """Instantiate the configured LlamaIndex embedding model."""
    import os

    if provider == "ollama":
        from llama_index.embeddings.ollama import OllamaEmbedding
        host = os.getenv("OLLAMA_HOST", "localhost")
        return OllamaEmbedding(model_name=model, base_url=f"http://{host}:11434")
    if provider == "openai":
        from llama_index.embeddings.openai import OpenAIEmbedding
        return OpenAIEmbedding(model=model)
    raise ValueError(f"Unsupported embedding provider: {provider}")
