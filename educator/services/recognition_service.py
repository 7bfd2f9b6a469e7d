"""
Speech recognition through the OpenAI transcription API
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from educator.core.config import settings
from educator.core.errors import RecognitionFailure
from educator.core.security_utils import mask_secret_tokens
from educator.models.transcription import TranscriptionResult, WordTiming
from educator.services.openai_client import get_openai_client

logger = logging.getLogger(__name__)

AUTO_DETECT = "auto"


def _field(item: Any, name: str, default: Any = None) -> Any:
    # SDK objects expose attributes, raw JSON payloads are dicts
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


class SpeechRecognizer:
    """
    Transcribes uploaded audio with word-level timings
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.STT_MODEL

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def build_request(self, audio_path: Path, audio: bytes, language_hint: Optional[str]) -> Dict[str, Any]:
        """
        Build transcription parameters

        "auto" or an empty hint leaves language out so the service detects it.
        """
        params: Dict[str, Any] = {
            "file": (Path(audio_path).name, audio),
            "model": self.model,
            "response_format": "verbose_json",
            "timestamp_granularities": ["word"],
        }
        if language_hint and language_hint != AUTO_DETECT:
            params["language"] = language_hint
        return params

    async def transcribe(self, audio_path: Path, language_hint: Optional[str] = AUTO_DETECT) -> TranscriptionResult:
        """
        Transcribe an audio file

        Args:
            audio_path: Audio file to transcribe
            language_hint: ISO code, or "auto" to let the service detect it

        Returns:
            TranscriptionResult with text, language, duration and words

        Raises:
            RecognitionFailure: Unreadable file or upstream error
        """
        logger.info(f"Starting STT transcription for: {Path(audio_path).name} (language: {language_hint or AUTO_DETECT})")

        try:
            audio = await asyncio.to_thread(Path(audio_path).read_bytes)
        except OSError as e:
            raise RecognitionFailure(f"Cannot read audio: {e}")

        try:
            response = await self.client.audio.transcriptions.create(
                **self.build_request(audio_path, audio, language_hint)
            )
        except OpenAIError as e:
            raise RecognitionFailure(mask_secret_tokens(str(e)))

        result = self.to_result(response, language_hint)
        logger.info(f"STT transcription completed ({result.language}): {result.text[:50]!r}")
        return result

    @staticmethod
    def to_result(response: Any, language_hint: Optional[str]) -> TranscriptionResult:
        """Normalize a verbose_json transcription into a TranscriptionResult"""
        words: List[WordTiming] = [
            WordTiming(word=_field(w, "word", ""), start=_field(w, "start", 0.0), end=_field(w, "end", 0.0))
            for w in (_field(response, "words") or [])
        ]
        language = _field(response, "language")
        if not language:
            # Plain json responses omit the language; fall back to an explicit hint
            language = language_hint if language_hint and language_hint != AUTO_DETECT else "en"

        return TranscriptionResult(
            text=(_field(response, "text") or "").strip(),
            language=language,
            duration=_field(response, "duration"),
            words=words,
        )
