"""
Turn state management
Tracks status and results for one processing of a user utterance
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any
import logging

from educator.core.security_utils import generate_secure_token
from educator.models.reply import ReplyMessage
from educator.models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class TurnStatus(Enum):
    """Turn status enumeration"""
    RECEIVED = "received"
    TRANSCRIBING = "transcribing"
    COMPOSING = "composing"
    ASSEMBLING = "assembling"
    RESPONDING = "responding"
    COMPLETED = "completed"
    FAILED = "failed"


# Allowed forward transitions; FAILED is reachable from every non-terminal state
_TRANSITIONS = {
    TurnStatus.RECEIVED: {TurnStatus.TRANSCRIBING, TurnStatus.COMPOSING, TurnStatus.RESPONDING},
    TurnStatus.TRANSCRIBING: {TurnStatus.COMPOSING, TurnStatus.RESPONDING},
    TurnStatus.COMPOSING: {TurnStatus.ASSEMBLING, TurnStatus.RESPONDING},
    TurnStatus.ASSEMBLING: {TurnStatus.RESPONDING},
    TurnStatus.RESPONDING: {TurnStatus.COMPLETED},
    TurnStatus.COMPLETED: set(),
    TurnStatus.FAILED: set(),
}


class Turn:
    """
    One processing of a single user utterance

    The turn id scopes every staged artifact so concurrent turns never
    share files.
    """

    def __init__(
        self,
        language_hint: str,
        text: Optional[str] = None,
        audio_reference: Optional[str] = None,
        turn_id: Optional[str] = None
    ):
        """
        Initialize turn state

        Args:
            language_hint: Explicit language code or "auto"
            text: Raw text input, if the utterance was typed
            audio_reference: Name of the uploaded audio, if spoken
            turn_id: Optional fixed identifier (generated otherwise)
        """
        self.turn_id = turn_id or generate_secure_token(16)
        self.language_hint = language_hint
        self.text = text
        self.audio_reference = audio_reference

        self.start_time = datetime.utcnow()
        self.end_time: Optional[datetime] = None
        self.status = TurnStatus.RECEIVED
        self.failure_reason: Optional[str] = None

        self.transcription: Optional[TranscriptionResult] = None
        self.response_language: Optional[str] = None
        self.messages: List[ReplyMessage] = []

        logger.debug(f"Initialized turn {self.turn_id} (hint: {language_hint})")

    @property
    def is_finished(self) -> bool:
        return self.status in (TurnStatus.COMPLETED, TurnStatus.FAILED)

    def set_status(self, status: TurnStatus):
        """
        Advance the turn to a new status

        Args:
            status: New status

        Raises:
            ValueError: If the transition is not allowed
        """
        if status is TurnStatus.FAILED:
            if self.is_finished:
                raise ValueError(f"Turn {self.turn_id} already finished as {self.status.value}")
        elif status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Invalid turn transition: {self.status.value} -> {status.value}")

        old_status = self.status
        self.status = status
        logger.info(f"Turn {self.turn_id} status changed: {old_status.value} -> {status.value}")

        if self.is_finished:
            self.end_time = datetime.utcnow()

    def fail(self, reason: str):
        """Mark the turn failed with a reason"""
        self.failure_reason = reason
        self.set_status(TurnStatus.FAILED)

    def get_duration(self) -> float:
        """
        Get turn duration in seconds

        Returns:
            Duration in seconds
        """
        end = self.end_time or datetime.utcnow()
        return (end - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert state to dictionary for logging

        Returns:
            Dictionary representation of state
        """
        return {
            "turn_id": self.turn_id,
            "language_hint": self.language_hint,
            "response_language": self.response_language,
            "status": self.status.value,
            "failure_reason": self.failure_reason,
            "duration_seconds": self.get_duration(),
            "message_count": len(self.messages),
            "transcribed": self.transcription is not None,
        }
