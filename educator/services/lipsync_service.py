"""
Viseme timeline builders for avatar lip animation

Two strategies share one contract so callers never care which is active:

* PlaceholderTimelineBuilder - a fixed 2 second, four cue timeline that does
  not look at the audio at all. It is the default and is labelled as such in
  every timeline it writes.
* EnergyTimelineBuilder - maps windowed RMS energy of the converted WAV to
  mouth openness. Not phoneme-accurate, but follows the real audio.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

import numpy as np
from pydantic import ValidationError

from educator.core.artifacts import TurnArtifacts
from educator.core.config import settings
from educator.core.errors import LipSyncFailure
from educator.models.reply import MouthCue, MouthShape, TimelineMetadata, VisemeTimeline
from educator.utils.audio_utils import frame_rms, read_wav_mono

logger = logging.getLogger(__name__)


class VisemeTimelineBuilder(ABC):
    """Derives a mouth-shape timeline from a converted waveform"""

    strategy = "base"

    @abstractmethod
    def derive(self, converted_audio_path: Path) -> VisemeTimeline:
        """Compute the timeline for one waveform"""

    async def build_timeline(
        self,
        converted_audio_path: Path,
        index: int,
        artifacts: TurnArtifacts
    ) -> VisemeTimeline:
        """
        Build the timeline and persist it as the message's timeline artifact

        Args:
            converted_audio_path: WAV produced by AudioFormatConverter
            index: Message index within the turn
            artifacts: Turn staging area

        Returns:
            The timeline that was written

        Raises:
            LipSyncFailure: Analysis or artifact write failed
        """
        try:
            timeline = await asyncio.to_thread(self.derive, Path(converted_audio_path))
        except LipSyncFailure as e:
            raise e.at_index(index)
        except (OSError, ValueError, EOFError) as e:
            raise LipSyncFailure(f"{self.strategy} analysis failed: {e}", index=index)

        target = artifacts.timeline_path(index)
        payload = timeline.model_dump_json(by_alias=True, indent=2)
        try:
            await asyncio.to_thread(target.write_text, payload, "utf-8")
        except OSError as e:
            raise LipSyncFailure(f"Cannot write timeline {target.name}: {e}", index=index)

        logger.debug(f"Lip sync ({self.strategy}) written for message {index}")
        return timeline


class PlaceholderTimelineBuilder(VisemeTimelineBuilder):
    """
    Fixed timeline used until a real phoneme analyzer is wired in

    Always 2.0 seconds: closed, open, wide, closed in 0.5 second steps.
    """

    strategy = "placeholder"
    duration = 2.0
    shapes = (MouthShape.X, MouthShape.A, MouthShape.B, MouthShape.X)

    def derive(self, converted_audio_path: Path) -> VisemeTimeline:
        step = self.duration / len(self.shapes)
        cues = [
            MouthCue(start=i * step, end=(i + 1) * step, value=shape)
            for i, shape in enumerate(self.shapes)
        ]
        return VisemeTimeline(
            metadata=TimelineMetadata(sound_file=str(converted_audio_path), duration=self.duration),
            mouth_cues=cues
        )


class EnergyTimelineBuilder(VisemeTimelineBuilder):
    """
    Energy based timeline

    Each window's RMS, relative to the loudest window, selects a shape from
    rest (X) through closed (A), slightly open (B), open (C) to wide (D).
    Consecutive windows with the same shape are merged.
    """

    strategy = "energy"

    # (relative energy lower bound, shape), highest first
    bands = (
        (0.60, MouthShape.D),
        (0.35, MouthShape.C),
        (0.15, MouthShape.B),
        (0.05, MouthShape.A),
    )

    def __init__(self, window_seconds: float = 0.1, silence_floor: float = 0.01):
        self.window_seconds = window_seconds
        self.silence_floor = silence_floor

    def shape_for(self, relative_energy: float) -> MouthShape:
        for lower_bound, shape in self.bands:
            if relative_energy >= lower_bound:
                return shape
        return MouthShape.X

    def derive(self, converted_audio_path: Path) -> VisemeTimeline:
        samples, sample_rate = read_wav_mono(converted_audio_path)
        if len(samples) == 0 or sample_rate <= 0:
            raise LipSyncFailure(f"{converted_audio_path.name} contains no audio")

        duration = round(len(samples) / sample_rate, 3)
        rms = frame_rms(samples, sample_rate, self.window_seconds)
        peak = float(np.max(rms))
        if peak < self.silence_floor:
            relative = np.zeros_like(rms)
        else:
            relative = rms / peak

        shapes = [self.shape_for(float(value)) for value in relative]
        return VisemeTimeline(
            metadata=TimelineMetadata(sound_file=str(converted_audio_path), duration=duration),
            mouth_cues=self._merge(shapes, duration)
        )

    def _merge(self, shapes: List[MouthShape], duration: float) -> List[MouthCue]:
        # Boundaries are computed once and shared between neighbours so cues
        # stay exactly contiguous
        boundaries = [0.0]
        values: List[MouthShape] = []
        for i, shape in enumerate(shapes):
            end = min(round((i + 1) * self.window_seconds, 3), duration)
            if end <= boundaries[-1]:
                continue
            if values and values[-1] == shape:
                boundaries[-1] = end
            else:
                values.append(shape)
                boundaries.append(end)
        boundaries[-1] = duration

        return [
            MouthCue(start=boundaries[i], end=boundaries[i + 1], value=value)
            for i, value in enumerate(values)
        ]


def get_timeline_builder(strategy: Optional[str] = None) -> VisemeTimelineBuilder:
    """
    Build the configured timeline strategy

    Args:
        strategy: "placeholder" or "energy" (LIPSYNC_STRATEGY by default)
    """
    strategy = strategy or settings.LIPSYNC_STRATEGY
    if strategy == "energy":
        return EnergyTimelineBuilder()
    if strategy == "placeholder":
        return PlaceholderTimelineBuilder()
    raise ValueError(f"Unknown lip-sync strategy: {strategy}")


async def read_timeline(path: Path) -> VisemeTimeline:
    """
    Load a timeline artifact written by a builder

    Raises:
        LipSyncFailure: Missing file or invalid timeline
    """
    try:
        raw = await asyncio.to_thread(Path(path).read_text, "utf-8")
        return VisemeTimeline.model_validate(json.loads(raw))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise LipSyncFailure(f"Cannot read timeline {Path(path).name}: {e}")
