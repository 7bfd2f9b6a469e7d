"""
Speech recognition result models
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WordTiming(BaseModel):
    model_config = ConfigDict(frozen=True)

    word: str
    start: float
    end: float


class TranscriptionResult(BaseModel):
    """Produced once per recognizer call; immutable thereafter"""
    model_config = ConfigDict(frozen=True)

    text: str
    language: str
    duration: Optional[float] = None
    words: List[WordTiming] = Field(default_factory=list)
