"""
Speech synthesis through the OpenAI TTS API
"""
import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from educator.core.artifacts import TurnArtifacts
from educator.core.config import settings
from educator.core.errors import SynthesisFailure
from educator.core.security_utils import mask_secret_tokens
from educator.services.openai_client import get_openai_client

logger = logging.getLogger(__name__)

# OpenAI premade voices, served by GET /voices
OPENAI_VOICES: List[Dict[str, str]] = [
    {"voice_id": "alloy", "name": "Alloy", "category": "premade"},
    {"voice_id": "echo", "name": "Echo", "category": "premade"},
    {"voice_id": "fable", "name": "Fable", "category": "premade"},
    {"voice_id": "onyx", "name": "Onyx", "category": "premade"},
    {"voice_id": "nova", "name": "Nova", "category": "premade"},
    {"voice_id": "shimmer", "name": "Shimmer", "category": "premade"},
]


class SpeechSynthesizer:
    """
    Text to speech for one reply message at a time

    The language hint is advisory: the TTS model detects the language from
    the text itself, so the hint is only logged.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        voice: Optional[str] = None
    ):
        self._client = client
        self.model = model or settings.TTS_MODEL
        self.voice = voice or settings.TTS_VOICE

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def synthesize(
        self,
        text: str,
        language_hint: str,
        output_index: int,
        artifacts: TurnArtifacts
    ) -> Path:
        """
        Synthesize text and write the audio to the message's audio path

        Args:
            text: Text to speak (non-empty)
            language_hint: Language tag for the turn (not enforced upstream)
            output_index: Message index; selects the output path
            artifacts: Turn staging area

        Returns:
            Path of the written audio file

        Raises:
            SynthesisFailure: Empty text, upstream error or write error
        """
        if not text or not text.strip():
            raise SynthesisFailure("Cannot synthesize empty text", index=output_index)

        output_path = artifacts.audio_path(output_index)
        logger.info(f"Generating TTS for message {output_index} (language: {language_hint}): {text[:30]!r}...")

        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
                response_format="mp3",
            )
            audio = response.content
        except OpenAIError as e:
            raise SynthesisFailure(mask_secret_tokens(str(e)), index=output_index)

        if not audio:
            raise SynthesisFailure("TTS service returned no audio", index=output_index)

        try:
            await asyncio.to_thread(output_path.write_bytes, audio)
        except OSError as e:
            raise SynthesisFailure(f"Cannot write {output_path.name}: {e}", index=output_index)

        logger.debug(f"TTS audio written: {output_path} ({len(audio)} bytes)")
        return output_path
