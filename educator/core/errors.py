"""
Error taxonomy for the turn pipeline
Every pipeline stage either fully succeeds or raises one of these
"""
from typing import Any, Dict, Optional


class EducatorError(Exception):
    """Base class for all service errors"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(EducatorError):
    """Missing or invalid client input (upload, message body)"""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class UpstreamUnconfigured(EducatorError):
    """No credential for the generation/speech services"""

    status_code = 400

    def __init__(self, message: str = "OpenAI API key not configured. Please add your API key to the .env file."):
        super().__init__(message)


class PipelineFailure(EducatorError):
    """
    A turn stage failed and the whole turn is aborted

    Attributes:
        stage: Pipeline stage that failed (synthesis, conversion, ...)
        index: Message index being processed, if the stage is per-message
        details: Upstream error detail
    """

    stage = "pipeline"

    def __init__(self, details: str, index: Optional[int] = None, stage: Optional[str] = None):
        if stage is not None:
            self.stage = stage
        self.index = index
        self.details = details
        super().__init__(self._describe())

    def _describe(self) -> str:
        where = self.stage if self.index is None else f"{self.stage} (message {self.index})"
        return f"{where} failed: {self.details}"

    def at_index(self, index: int) -> "PipelineFailure":
        """Attach the message index if the raising stage did not know it"""
        if self.index is None:
            self.index = index
            self.args = (self._describe(),)
            self.message = self._describe()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": f"Failed during {self.stage}",
            "stage": self.stage,
            "index": self.index,
            "details": self.details,
        }


class SynthesisFailure(PipelineFailure):
    stage = "synthesis"


class ConversionFailure(PipelineFailure):
    stage = "conversion"


class LipSyncFailure(PipelineFailure):
    stage = "lipsync"


class EncodingFailure(PipelineFailure):
    stage = "encoding"


class RecognitionFailure(PipelineFailure):
    stage = "transcription"


class CompositionFailure(PipelineFailure):
    stage = "composition"


class MalformedReplyFailure(CompositionFailure):
    """Generation output did not match either accepted reply shape"""


class CleanupFailure(EducatorError):
    """Temporary file deletion failed; logged, never surfaced to the caller"""
