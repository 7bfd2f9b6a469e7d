"""
Central orchestrator for turn processing
Coordinates the STT -> reply composition -> TTS/lip-sync pipeline in-process
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from educator.core.artifacts import staged_turn
from educator.core.assembler import TurnAssembler
from educator.core.config import settings
from educator.core.errors import UpstreamUnconfigured
from educator.core.latency_tracker import TurnLatencyTracker
from educator.core.prebaked import GREETING, MISSING_API_KEY, load_prebaked
from educator.core.security_utils import sanitize_input
from educator.core.turn_state import Turn, TurnStatus
from educator.core.uploads import staged_upload, validate_audio_upload
from educator.models.reply import ChatReply
from educator.models.transcription import TranscriptionResult
from educator.services.recognition_service import AUTO_DETECT, SpeechRecognizer
from educator.services.reply_service import ReplyComposer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoiceTurnResult:
    """Outcome of a voice-in/voice-out turn"""
    transcription: TranscriptionResult
    reply: ChatReply


class TurnOrchestrator:
    """
    Runs text and voice turns

    Voice turns transcribe first and then reply in the language the
    recognizer detected, not the language the caller asked for.
    """

    def __init__(
        self,
        composer: Optional[ReplyComposer] = None,
        assembler: Optional[TurnAssembler] = None,
        recognizer: Optional[SpeechRecognizer] = None,
        artifact_root: Optional[Path] = None,
        upload_dir: Optional[Path] = None
    ):
        self.composer = composer or ReplyComposer()
        self.assembler = assembler or TurnAssembler()
        self.recognizer = recognizer or SpeechRecognizer()
        self.artifact_root = artifact_root
        self.upload_dir = upload_dir

    async def chat(self, message: Optional[str], language: str = "en") -> ChatReply:
        """
        Handle a text turn

        Args:
            message: User message; empty or missing returns the greeting pair
            language: Language to reply in

        Returns:
            ChatReply with the ordered messages
        """
        turn = Turn(language_hint=language, text=message)
        logger.info(f"Chat request {turn.turn_id} - Language: {language}")
        try:
            return await self._reply(turn, message, language, TurnLatencyTracker(turn.turn_id))
        except Exception as e:
            self._fail(turn, e)
            raise

    async def transcribe_upload(self, upload: Optional[UploadFile], language_hint: str = AUTO_DETECT) -> TranscriptionResult:
        """
        Transcribe an uploaded recording; the upload is removed afterwards

        Raises:
            ValidationFailure: Missing or non-audio upload
            UpstreamUnconfigured: No API key
            RecognitionFailure: Transcription failed
        """
        self._require_speech_service(upload)
        tracker = TurnLatencyTracker("transcribe")
        async with staged_upload(upload, self.upload_dir) as resource:
            with tracker.measure("transcription"):
                return await self.recognizer.transcribe(resource.path, language_hint or AUTO_DETECT)

    async def handle_voice_turn(
        self,
        upload: Optional[UploadFile],
        preferred_language_hint: str = AUTO_DETECT
    ) -> VoiceTurnResult:
        """
        Full voice-to-voice turn

        Received -> Transcribing -> Composing -> Assembling -> Responding,
        with the upload deleted exactly once on every exit path.

        Args:
            upload: Recorded user audio
            preferred_language_hint: Recognition hint, "auto" to detect

        Returns:
            VoiceTurnResult with the transcription and the reply
        """
        self._require_speech_service(upload)
        hint = preferred_language_hint or AUTO_DETECT
        turn = Turn(language_hint=hint, audio_reference=upload.filename)
        tracker = TurnLatencyTracker(turn.turn_id)
        logger.info(f"Voice chat request {turn.turn_id} - Audio: {upload.filename}, Preferred language: {hint}")

        try:
            async with staged_upload(upload, self.upload_dir) as resource:
                turn.set_status(TurnStatus.TRANSCRIBING)
                with tracker.measure("transcription"):
                    transcription = await self.recognizer.transcribe(resource.path, hint)
                turn.transcription = transcription
                logger.info(f"Transcribed ({transcription.language}): {transcription.text[:50]!r}")

                if hint != AUTO_DETECT and hint != transcription.language:
                    logger.info(
                        f"Turn {turn.turn_id}: replying in detected language {transcription.language} "
                        f"instead of requested {hint}"
                    )
                reply = await self._reply(turn, transcription.text, transcription.language, tracker)
        except Exception as e:
            self._fail(turn, e)
            raise

        return VoiceTurnResult(transcription=transcription, reply=reply)

    async def _reply(self, turn: Turn, text: Optional[str], language: str, tracker: TurnLatencyTracker) -> ChatReply:
        turn.response_language = language
        message = sanitize_input(text or "")

        if not message:
            turn.set_status(TurnStatus.RESPONDING)
            reply = self._to_reply(await load_prebaked(GREETING, language), language)
        elif not settings.OPENAI_CONFIGURED:
            logger.warning(f"Turn {turn.turn_id}: OpenAI API key not configured, serving reminder")
            turn.set_status(TurnStatus.RESPONDING)
            reply = self._to_reply(await load_prebaked(MISSING_API_KEY, language), language)
        else:
            turn.set_status(TurnStatus.COMPOSING)
            with tracker.measure("composition"):
                drafts = await self.composer.compose(message, language)

            turn.set_status(TurnStatus.ASSEMBLING)
            async with staged_turn(turn.turn_id, self.artifact_root) as artifacts:
                messages = await self.assembler.assemble(drafts, language, artifacts, tracker)

            turn.set_status(TurnStatus.RESPONDING)
            reply = self._to_reply(messages, language)

        turn.messages = reply.messages
        turn.set_status(TurnStatus.COMPLETED)
        logger.info(f"Chat response completed for turn {turn.turn_id} in {language} ({tracker.total_ms():.0f}ms)")
        logger.debug(f"Stage timings for turn {turn.turn_id}: {tracker.get_metrics()}")
        return reply

    @staticmethod
    def _to_reply(messages, language: str) -> ChatReply:
        return ChatReply(messages=messages, detected_language=language, response_language=language)

    @staticmethod
    def _require_speech_service(upload: Optional[UploadFile]):
        validate_audio_upload(upload)
        if not settings.OPENAI_CONFIGURED:
            raise UpstreamUnconfigured()

    @staticmethod
    def _fail(turn: Turn, error: Exception):
        if not turn.is_finished:
            turn.fail(str(error))
        logger.error(f"Turn failed: {turn.to_dict()}")
