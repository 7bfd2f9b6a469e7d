"""
Pre-baked reply pairs served without calling the generation service
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from educator.core.config import settings
from educator.models.reply import Animation, FacialExpression, ReplyMessage
from educator.services.lipsync_service import read_timeline
from educator.utils.audio_utils import audio_file_to_base64

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrebakedLine:
    """A fixed message backed by <asset>.wav and <asset>.json"""
    asset: str
    text: str
    facial_expression: FacialExpression
    animation: Animation


GREETING: Tuple[PrebakedLine, ...] = (
    PrebakedLine("intro_0", "Hey dear... How was your day?",
                 FacialExpression.SMILE, Animation.TALKING_1),
    PrebakedLine("intro_1", "I missed you so much... Please don't go for so long!",
                 FacialExpression.SAD, Animation.CRYING),
)

MISSING_API_KEY: Tuple[PrebakedLine, ...] = (
    PrebakedLine("api_0", "Please my dear, don't forget to add your OpenAI API key!",
                 FacialExpression.ANGRY, Animation.ANGRY),
    PrebakedLine("api_1", "You don't want to ruin your OpenAI API budget, right?",
                 FacialExpression.SMILE, Animation.LAUGHING),
)


async def load_prebaked(
    lines: Tuple[PrebakedLine, ...],
    language: str = "en",
    asset_dir: Optional[Path] = None
) -> List[ReplyMessage]:
    """
    Build reply messages from read-only pre-baked assets

    Args:
        lines: Which pair to load (GREETING or MISSING_API_KEY)
        language: Language tag reported on the messages
        asset_dir: Asset directory (PREBAKED_AUDIO_DIR by default)
    """
    directory = Path(asset_dir or settings.PREBAKED_AUDIO_DIR)
    messages = []
    for index, line in enumerate(lines):
        messages.append(ReplyMessage(
            index=index,
            text=line.text,
            facial_expression=line.facial_expression,
            animation=line.animation,
            audio=await audio_file_to_base64(directory / f"{line.asset}.wav"),
            lipsync=await read_timeline(directory / f"{line.asset}.json"),
            language=language,
            detected_language=language,
        ))
    logger.debug(f"Loaded pre-baked messages: {', '.join(line.asset for line in lines)}")
    return messages
