"""
Unit tests for the turn orchestrator
"""
import io
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
from fastapi import UploadFile
from openai import APIConnectionError
from starlette.datastructures import Headers

from educator.core.assembler import TurnAssembler
from educator.core.config import settings
from educator.core.errors import RecognitionFailure, SynthesisFailure, UpstreamUnconfigured, ValidationFailure
from educator.core.orchestrator import TurnOrchestrator
from educator.models.reply import Animation, FacialExpression
from educator.services.lipsync_service import PlaceholderTimelineBuilder
from educator.services.recognition_service import SpeechRecognizer
from educator.services.reply_service import RUSSIAN_CLAUSE, ReplyComposer
from educator.services.synthesis_service import SpeechSynthesizer


def audio_upload(data: bytes = b"webm-audio", content_type: str = "audio/webm"):
    return UploadFile(file=io.BytesIO(data), filename="question.webm", headers=Headers({"content-type": content_type}))


def leftover(directory):
    return list(directory.iterdir()) if directory.exists() else []


@pytest.fixture
def orchestrator(openai_client, fake_converter):
    return TurnOrchestrator(
        composer=ReplyComposer(client=openai_client),
        assembler=TurnAssembler(
            synthesizer=SpeechSynthesizer(client=openai_client),
            converter=fake_converter,
            timeline_builder=PlaceholderTimelineBuilder(),
        ),
        recognizer=SpeechRecognizer(client=openai_client),
    )


class TestTextTurns:
    """Test /chat semantics"""

    @pytest.mark.parametrize("message", [None, ""])
    async def test_empty_message_returns_greeting(self, orchestrator, openai_client, api_key, message):
        reply = await orchestrator.chat(message, "en")

        assert [m.text for m in reply.messages] == [
            "Hey dear... How was your day?",
            "I missed you so much... Please don't go for so long!",
        ]
        assert [m.facial_expression for m in reply.messages] == [FacialExpression.SMILE, FacialExpression.SAD]
        assert [m.animation for m in reply.messages] == [Animation.TALKING_1, Animation.CRYING]
        assert all(m.audio and m.lipsync.duration == 2.0 for m in reply.messages)
        openai_client.chat.completions.create.assert_not_called()
        openai_client.audio.speech.create.assert_not_called()

    async def test_unconfigured_returns_api_key_reminder(self, orchestrator, openai_client):
        reply = await orchestrator.chat("What is gravity?", "en")

        assert [m.facial_expression for m in reply.messages] == [FacialExpression.ANGRY, FacialExpression.SMILE]
        assert [m.animation for m in reply.messages] == [Animation.ANGRY, Animation.LAUGHING]
        assert "OpenAI API key" in reply.messages[0].text
        openai_client.chat.completions.create.assert_not_called()

    async def test_generated_reply(self, orchestrator, openai_client, api_key):
        reply = await orchestrator.chat("Explain photosynthesis", "ru")

        assert [m.index for m in reply.messages] == [0, 1]
        assert reply.messages[0].text == "Plants turn light into food."
        assert reply.detected_language == "ru"
        assert reply.response_language == "ru"
        assert all(m.language == "ru" for m in reply.messages)
        system_prompt = openai_client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert system_prompt.endswith(RUSSIAN_CLAUSE)

    async def test_artifacts_removed_after_turn(self, orchestrator, api_key):
        await orchestrator.chat("Hello", "en")

        assert leftover(settings.ARTIFACT_DIR) == []

    async def test_pipeline_failure_propagates_and_cleans_up(self, orchestrator, openai_client, api_key):
        openai_client.audio.speech.create = AsyncMock(
            side_effect=APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/audio/speech"))
        )

        with pytest.raises(SynthesisFailure) as exc_info:
            await orchestrator.chat("Hello", "en")

        assert exc_info.value.index == 0
        assert leftover(settings.ARTIFACT_DIR) == []

    async def test_control_characters_stripped(self, orchestrator, openai_client, api_key):
        await orchestrator.chat("  what\x00 is\x07 pi  ", "en")

        user_turn = openai_client.chat.completions.create.call_args.kwargs["messages"][1]
        assert user_turn["content"] == "what is pi"

    async def test_stage_timings_logged_on_completion(self, orchestrator, api_key, caplog):
        with caplog.at_level("DEBUG", logger="educator.core.orchestrator"):
            await orchestrator.chat("Explain photosynthesis", "en")

        timings = [r.getMessage() for r in caplog.records if "Stage timings" in r.getMessage()]
        assert len(timings) == 1
        assert "'composition'" in timings[0]
        assert "'synthesis'" in timings[0]


class TestVoiceTurns:
    """Test /voice-chat and /transcribe semantics"""

    async def test_transcription_sanitized_before_composition(self, orchestrator, openai_client, api_key):
        openai_client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(
            text="what\x00 is\x07 pi" + " and more" * 600, language="english", duration=30.0, words=[]
        ))

        result = await orchestrator.handle_voice_turn(audio_upload(), "auto")

        user_turn = openai_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert user_turn.startswith("what is pi and more")
        assert len(user_turn) <= 4000
        assert "\x00" not in user_turn and "\x07" not in user_turn
        assert "\x07" in result.transcription.text

    async def test_detected_language_wins(self, orchestrator, openai_client, api_key):
        openai_client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(
            text="Что такое фотосинтез?", language="russian", duration=2.0, words=None
        ))

        result = await orchestrator.handle_voice_turn(audio_upload(), "en")

        assert result.transcription.language == "russian"
        assert result.transcription.words == []
        assert result.reply.response_language == "russian"
        assert result.reply.detected_language == "russian"
        compose_kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert compose_kwargs["messages"][0]["content"].endswith(RUSSIAN_CLAUSE)
        assert compose_kwargs["messages"][1]["content"] == "Что такое фотосинтез?"
        assert openai_client.audio.transcriptions.create.call_args.kwargs["language"] == "en"

    async def test_upload_removed_after_success(self, orchestrator, api_key):
        await orchestrator.handle_voice_turn(audio_upload(), "auto")

        assert leftover(settings.UPLOAD_DIR) == []
        assert leftover(settings.ARTIFACT_DIR) == []

    async def test_recognition_failure_removes_upload(self, orchestrator, openai_client, api_key):
        openai_client.audio.transcriptions.create = AsyncMock(
            side_effect=APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions"))
        )

        with pytest.raises(RecognitionFailure):
            await orchestrator.handle_voice_turn(audio_upload(), "auto")

        assert leftover(settings.UPLOAD_DIR) == []
        openai_client.chat.completions.create.assert_not_called()

    async def test_silent_recording_gets_greeting(self, orchestrator, openai_client, api_key):
        openai_client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(
            text="   ", language="english", duration=0.4, words=[]
        ))

        result = await orchestrator.handle_voice_turn(audio_upload(), "auto")

        assert result.reply.messages[0].text == "Hey dear... How was your day?"
        openai_client.chat.completions.create.assert_not_called()

    async def test_missing_upload_rejected(self, orchestrator, api_key):
        with pytest.raises(ValidationFailure):
            await orchestrator.handle_voice_turn(None, "auto")

    async def test_non_audio_rejected_before_recognition(self, orchestrator, openai_client, api_key):
        with pytest.raises(ValidationFailure):
            await orchestrator.transcribe_upload(audio_upload(b"%PDF", "application/pdf"), "auto")

        openai_client.audio.transcriptions.create.assert_not_called()
        assert leftover(settings.UPLOAD_DIR) == []

    async def test_unconfigured_voice_turn(self, orchestrator, openai_client):
        with pytest.raises(UpstreamUnconfigured):
            await orchestrator.handle_voice_turn(audio_upload(), "auto")

        assert leftover(settings.UPLOAD_DIR) == []
        openai_client.audio.transcriptions.create.assert_not_called()

    async def test_transcribe_upload(self, orchestrator, api_key):
        result = await orchestrator.transcribe_upload(audio_upload(), "auto")

        assert result.text == "What is photosynthesis?"
        assert result.language == "english"
        assert leftover(settings.UPLOAD_DIR) == []
