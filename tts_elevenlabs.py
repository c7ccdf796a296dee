"""
ElevenLabs Text-to-Speech Integration

Turns arbitrary text into MP3 audio. The call is a single attempt: failures
are classified into a SynthesisError and returned to the caller, who decides
whether to retry.
"""

from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Any

from elevenlabs import VoiceSettings
from elevenlabs.client import ElevenLabs
from elevenlabs.core.api_error import ApiError

from constants import (
    ELEVENLABS_DEFAULT_VOICE_ID,
    ELEVENLABS_MODEL_ID,
    ELEVENLABS_OUTPUT_FORMAT,
    ELEVENLABS_SIMILARITY_BOOST,
    ELEVENLABS_STABILITY,
    TTS_TIMEOUT_SECONDS,
)
from exceptions import ErrorKind, SynthesisError, classify_status
from metrics import track_error, track_tts_call
from sessions.turn_builder import validate_message

logger = logging.getLogger(__name__)

DEFAULT_VOICE_SETTINGS: dict[str, Any] = {
    "stability": ELEVENLABS_STABILITY,
    "similarity_boost": ELEVENLABS_SIMILARITY_BOOST,
}


def _body_detail(body: Any) -> Any:
    """Make an ApiError body JSON-friendly for the error response."""
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


class SpeechClient:
    """Manages text-to-speech synthesis using ElevenLabs."""

    def __init__(
        self,
        api_key: str | None = None,
        default_voice_id: str = ELEVENLABS_DEFAULT_VOICE_ID,
        model_id: str = ELEVENLABS_MODEL_ID,
        timeout: float = TTS_TIMEOUT_SECONDS,
        client: ElevenLabs | None = None,
    ) -> None:
        """
        Args:
            api_key: ElevenLabs API key
            default_voice_id: Voice used when a request names none
            model_id: ElevenLabs model id
            timeout: Deadline in seconds for one synthesis
            client: Pre-built SDK client (tests inject a mock here)
        """
        self.api_key = api_key
        self.default_voice_id = default_voice_id
        self.model_id = model_id
        self.timeout = timeout
        self._client = client

    def is_enabled(self) -> bool:
        """Check if TTS credentials are configured."""
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> ElevenLabs:
        if self._client is None:
            if not self.api_key:
                raise SynthesisError(ErrorKind.UNAUTHORIZED, "ELEVENLABS_API_KEY is not configured.")
            self._client = ElevenLabs(api_key=self.api_key)
        return self._client

    def _classify_error(self, exception: Exception) -> SynthesisError:
        if isinstance(exception, SynthesisError):
            return exception
        if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
            return SynthesisError(
                ErrorKind.TIMEOUT,
                f"ElevenLabs did not respond within {self.timeout:g}s",
            )
        if isinstance(exception, ApiError):
            return SynthesisError(
                classify_status(exception.status_code),
                f"ElevenLabs API call failed ({exception.status_code})",
                details=_body_detail(exception.body),
                status_code=exception.status_code,
            )
        return SynthesisError(
            ErrorKind.UPSTREAM_ERROR,
            f"ElevenLabs API call failed: {exception.__class__.__name__}: {exception}",
            details=str(exception),
        )

    async def synthesize(self, text: str, voice_id: str | None = None) -> bytes:
        """
        Synthesize speech for the given text.

        Args:
            text: The text to convert to speech
            voice_id: ElevenLabs voice id (defaults to the configured voice)

        Returns:
            Audio bytes (MP3 format)

        Raises:
            InvalidInputError: If text is empty
            SynthesisError: If the upstream call fails or returns no audio
        """
        validate_message(text, field="text")
        voice = voice_id or self.default_voice_id

        try:
            client = self._get_client()
            # The SDK is synchronous; run it in the default executor
            loop = asyncio.get_running_loop()
            with track_tts_call():
                audio = await asyncio.wait_for(
                    loop.run_in_executor(None, self._sync_synthesize, client, text, voice),
                    timeout=self.timeout,
                )
        except Exception as e:
            error = self._classify_error(e)
            track_error(error.service, error.kind.value)
            logger.error("TTS synthesis failed for voice %s: %s", voice, error)
            if error is e:
                raise
            raise error from e

        if not audio:
            track_error("speech", ErrorKind.EMPTY_RESPONSE.value)
            raise SynthesisError(ErrorKind.EMPTY_RESPONSE, "ElevenLabs returned no audio")

        logger.info("Synthesized %d bytes of audio with voice %s", len(audio), voice)
        return audio

    def _sync_synthesize(self, client: ElevenLabs, text: str, voice_id: str) -> bytes:
        """Synchronous synthesis (run in thread pool)."""
        response = client.text_to_speech.convert(
            text=text,
            voice_id=voice_id,
            model_id=self.model_id,
            output_format=ELEVENLABS_OUTPUT_FORMAT,
            voice_settings=VoiceSettings(**DEFAULT_VOICE_SETTINGS),
        )

        audio_buffer = BytesIO()
        for chunk in response:
            if chunk:
                audio_buffer.write(chunk)
        return audio_buffer.getvalue()
