"""Voice turn pipeline: base64 audio → transcript → tutor turn."""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from ..agent.events import ReasoningSink
from ..agent.loop import TurnOrchestrator
from ..agent.tools import ToolDefinition
from ..errors import TranscriptionError, UpstreamFailure
from ..gateway import InferenceGateway
from ..session.models import Message, Session
from .transcriber import clean_transcript

logger = logging.getLogger(__name__)


@dataclass
class VoiceTurn:
    transcript: str
    reply: Message


class VoicePipeline:
    """Transcribe a voice message and run it through the orchestrator."""

    def __init__(self, gateway: InferenceGateway, orchestrator: TurnOrchestrator):
        self._gateway = gateway
        self._orchestrator = orchestrator

    async def transcribe(self, audio_b64: str) -> str:
        """Decode and transcribe; returns non-empty cleaned text.

        Raises:
            TranscriptionError: Bad payload, failed transcription, or no speech
        """
        try:
            audio = base64.b64decode(audio_b64 or "", validate=True)
        except (binascii.Error, ValueError) as e:
            raise TranscriptionError(f"Invalid audio payload: {e}") from e
        if not audio:
            raise TranscriptionError("Empty audio payload")

        try:
            text = await self._gateway.transcribe(audio)
        except TranscriptionError:
            raise
        except UpstreamFailure as e:
            raise TranscriptionError(str(e)) from e

        transcript = clean_transcript(text)
        if not transcript:
            raise TranscriptionError("No speech detected in audio")
        logger.debug(f"Voice transcript ({len(audio)} bytes): {transcript[:80]}")
        return transcript

    async def handle_voice(
        self,
        audio_b64: str,
        session: Session,
        sink: ReasoningSink,
        on_transcription: Optional[Callable[[str], Awaitable[None]]] = None,
        tools: Sequence[ToolDefinition] = (),
    ) -> VoiceTurn:
        transcript = await self.transcribe(audio_b64)
        if on_transcription is not None:
            await on_transcription(transcript)
        reply = await self._orchestrator.run_turn(session, transcript, sink, tools)
        return VoiceTurn(transcript=transcript, reply=reply)
