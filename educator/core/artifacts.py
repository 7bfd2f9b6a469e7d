"""
Per-turn artifact staging
Synthesized audio, converted waveforms and lip-sync timelines for a turn
live under ARTIFACT_DIR/<turn_id>/ so concurrent turns never collide
"""
import asyncio
import logging
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from educator.core.config import settings

logger = logging.getLogger(__name__)


class TurnArtifacts:
    """
    Deterministic per-index artifact paths scoped to one turn

    message_<index>.mp3   synthesized speech
    message_<index>.wav   converted waveform for lip-sync analysis
    message_<index>.json  viseme timeline
    """

    def __init__(self, turn_id: str, root: Optional[Path] = None):
        self.turn_id = turn_id
        self.root = Path(root or settings.ARTIFACT_DIR)
        self.directory = self.root / turn_id

    def audio_path(self, index: int) -> Path:
        return self.directory / f"message_{index}.mp3"

    def timeline_path(self, index: int) -> Path:
        return self.directory / f"message_{index}.json"

    def create(self) -> "TurnArtifacts":
        self.directory.mkdir(parents=True, exist_ok=True)
        return self

    def cleanup(self):
        """Remove the turn directory; failures are logged only"""
        try:
            shutil.rmtree(self.directory)
            logger.debug(f"Removed artifacts for turn {self.turn_id}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error cleaning up artifacts for turn {self.turn_id}: {e}")


@asynccontextmanager
async def staged_turn(
    turn_id: str,
    root: Optional[Path] = None,
    keep: Optional[bool] = None
) -> AsyncIterator[TurnArtifacts]:
    """
    Stage a turn's artifacts and remove them when the turn ends

    Args:
        turn_id: Identifier scoping the artifact directory
        root: Artifact root (ARTIFACT_DIR by default)
        keep: Keep files after the turn (KEEP_TURN_ARTIFACTS by default)
    """
    artifacts = TurnArtifacts(turn_id, root)
    await asyncio.to_thread(artifacts.create)
    try:
        yield artifacts
    finally:
        if keep is None:
            keep = settings.KEEP_TURN_ARTIFACTS
        if keep:
            logger.info(f"Keeping artifacts for turn {turn_id} in {artifacts.directory}")
        else:
            await asyncio.to_thread(artifacts.cleanup)
