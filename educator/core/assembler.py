"""
Turn assembly
Runs each reply draft through synthesis, conversion and lip-sync and joins
the results by message index
"""
import logging
from typing import List, Optional

from educator.core.artifacts import TurnArtifacts
from educator.core.errors import PipelineFailure
from educator.core.latency_tracker import TurnLatencyTracker
from educator.models.reply import ReplyMessage, ReplyMessageDraft
from educator.services.lipsync_service import VisemeTimelineBuilder, get_timeline_builder, read_timeline
from educator.services.synthesis_service import SpeechSynthesizer
from educator.utils.audio_utils import AudioFormatConverter, audio_file_to_base64

logger = logging.getLogger(__name__)


class TurnAssembler:
    """
    Produces the finished, ordered message list for a turn

    Messages are processed strictly one after another. The first failure
    aborts the turn; no partial list is ever returned.
    """

    def __init__(
        self,
        synthesizer: Optional[SpeechSynthesizer] = None,
        converter: Optional[AudioFormatConverter] = None,
        timeline_builder: Optional[VisemeTimelineBuilder] = None
    ):
        self.synthesizer = synthesizer or SpeechSynthesizer()
        self.converter = converter or AudioFormatConverter()
        self.timeline_builder = timeline_builder or get_timeline_builder()

    async def assemble(
        self,
        drafts: List[ReplyMessageDraft],
        language_tag: str,
        artifacts: TurnArtifacts,
        tracker: Optional[TurnLatencyTracker] = None
    ) -> List[ReplyMessage]:
        """
        Attach audio and lip-sync to every draft

        Args:
            drafts: Ordered reply drafts
            language_tag: Resolved language for the whole turn
            artifacts: Turn staging area
            tracker: Optional latency tracker for the turn

        Returns:
            ReplyMessage list with indices 0..len(drafts)-1 in draft order

        Raises:
            PipelineFailure: Naming the failed stage and message index
        """
        tracker = tracker or TurnLatencyTracker(artifacts.turn_id)
        messages: List[ReplyMessage] = []

        for index, draft in enumerate(drafts):
            try:
                message = await self._assemble_one(index, draft, language_tag, artifacts, tracker)
            except PipelineFailure as e:
                e.at_index(index)
                logger.error(f"Turn {artifacts.turn_id} aborted: {e}")
                raise
            messages.append(message)

        logger.info(f"Assembled {len(messages)} messages for turn {artifacts.turn_id} in {language_tag}")
        return messages

    async def _assemble_one(
        self,
        index: int,
        draft: ReplyMessageDraft,
        language_tag: str,
        artifacts: TurnArtifacts,
        tracker: TurnLatencyTracker
    ) -> ReplyMessage:
        with tracker.measure("synthesis", index):
            audio_path = await self.synthesizer.synthesize(draft.text, language_tag, index, artifacts)

        with tracker.measure("conversion", index):
            wav_path = await self.converter.convert(audio_path)

        with tracker.measure("lipsync", index):
            await self.timeline_builder.build_timeline(wav_path, index, artifacts)

        with tracker.measure("encoding", index):
            audio = await audio_file_to_base64(audio_path)
            lipsync = await read_timeline(artifacts.timeline_path(index))

        return ReplyMessage(
            index=index,
            text=draft.text,
            facial_expression=draft.facial_expression,
            animation=draft.animation,
            audio=audio,
            lipsync=lipsync,
            language=language_tag,
            detected_language=language_tag,
        )
