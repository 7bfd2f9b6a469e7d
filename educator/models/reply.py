"""
Reply message models
Wire format keeps the camelCase keys the avatar client consumes
"""
import logging
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class FacialExpression(str, Enum):
    """Facial expressions the avatar can render"""
    SMILE = "smile"
    SAD = "sad"
    ANGRY = "angry"
    SURPRISED = "surprised"
    FUNNY_FACE = "funnyFace"
    DEFAULT = "default"


class Animation(str, Enum):
    """Body animations the avatar can play"""
    TALKING_0 = "Talking_0"
    TALKING_1 = "Talking_1"
    TALKING_2 = "Talking_2"
    CRYING = "Crying"
    LAUGHING = "Laughing"
    RUMBA = "Rumba"
    IDLE = "Idle"
    TERRIFIED = "Terrified"
    ANGRY = "Angry"


class MouthShape(str, Enum):
    """Rhubarb mouth-shape alphabet"""
    A = "A"  # closed, M/B/P
    B = "B"  # slightly open, most consonants
    C = "C"  # open, E/AE
    D = "D"  # wide open, AA
    E = "E"  # rounded, AO/ER
    F = "F"  # puckered, UW/OW/W
    G = "G"  # F/V
    H = "H"  # long L
    X = "X"  # idle / rest


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MouthCue(_WireModel):
    start: float = Field(ge=0)
    end: float
    value: MouthShape

    @model_validator(mode="after")
    def check_order(self) -> "MouthCue":
        if not self.start < self.end:
            raise ValueError(f"mouth cue start {self.start} must be before end {self.end}")
        return self


class TimelineMetadata(_WireModel):
    sound_file: str = Field(alias="soundFile")
    duration: float = Field(gt=0)


class VisemeTimeline(_WireModel):
    """
    Mouth-shape timeline for lip animation

    Cues are contiguous: the first starts at 0, each ends where the next
    starts and the last ends at the declared duration.
    """
    metadata: TimelineMetadata
    mouth_cues: List[MouthCue] = Field(alias="mouthCues", min_length=1)

    @model_validator(mode="after")
    def check_contiguous(self) -> "VisemeTimeline":
        cues = self.mouth_cues
        if cues[0].start != 0:
            raise ValueError("first mouth cue must start at 0")
        for previous, current in zip(cues, cues[1:]):
            if previous.end != current.start:
                raise ValueError(f"mouth cues not contiguous at {previous.end}")
        if cues[-1].end != self.metadata.duration:
            raise ValueError("last mouth cue must end at the timeline duration")
        return self

    @property
    def duration(self) -> float:
        return self.metadata.duration


class ReplyMessageDraft(_WireModel):
    """One generated reply entry before audio and lip-sync are attached"""
    text: str = Field(min_length=1)
    facial_expression: FacialExpression = Field(default=FacialExpression.DEFAULT, alias="facialExpression")
    animation: Animation = Animation.IDLE

    @field_validator("facial_expression", mode="before")
    @classmethod
    def known_expression(cls, v: Any) -> Any:
        if isinstance(v, FacialExpression):
            return v
        if not isinstance(v, str) or v not in {e.value for e in FacialExpression}:
            logger.warning(f"Unknown facial expression {v!r}, using default")
            return FacialExpression.DEFAULT
        return v

    @field_validator("animation", mode="before")
    @classmethod
    def known_animation(cls, v: Any) -> Any:
        if isinstance(v, Animation):
            return v
        if not isinstance(v, str) or v not in {a.value for a in Animation}:
            logger.warning(f"Unknown animation {v!r}, using Idle")
            return Animation.IDLE
        return v


class WrappedReply(_WireModel):
    """Generation output shaped as {"messages": [...]}"""
    messages: List[ReplyMessageDraft]


# Generation output is accepted in exactly these two shapes
ReplyPayload = Union[List[ReplyMessageDraft], WrappedReply]


class ReplyMessage(ReplyMessageDraft):
    """A finished reply unit with audio and lip-sync attached"""
    index: int = Field(ge=0)
    audio: str = Field(min_length=1)
    lipsync: VisemeTimeline
    language: str
    detected_language: str = Field(alias="detectedLanguage")


class ChatRequest(_WireModel):
    message: Optional[str] = None
    language: Optional[str] = None


class ChatReply(_WireModel):
    messages: List[ReplyMessage]
    detected_language: str = Field(alias="detectedLanguage")
    response_language: str = Field(alias="responseLanguage")
