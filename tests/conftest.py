"""
Shared fixtures: isolated storage, fake OpenAI client, fake ffmpeg
"""
import json
import wave
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from educator.core.config import settings

TEST_API_KEY = "sk-test-0123456789abcdef"


def write_wav(path: Path, samples: np.ndarray, sample_rate: int = 8000, channels: int = 1) -> Path:
    """Write float samples in [-1, 1] as 16-bit PCM"""
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16)
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return path


def completion(content):
    """Chat completion shaped like the SDK response"""
    if not isinstance(content, str):
        content = json.dumps(content)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeConverter:
    """Stands in for ffmpeg: writes a short silent WAV next to the input"""

    def __init__(self, duration: float = 0.5):
        self.duration = duration
        self.calls = []

    async def convert(self, input_path):
        self.calls.append(Path(input_path))
        output = Path(input_path).with_suffix(".wav")
        return write_wav(output, np.zeros(int(8000 * self.duration), dtype=np.float32))


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch):
    """Point every writable directory at a temporary location"""
    monkeypatch.setattr(settings, "ARTIFACT_DIR", tmp_path / "audios")
    monkeypatch.setattr(settings, "UPLOAD_DIR", tmp_path / "uploads")
    monkeypatch.setattr(settings, "KEEP_TURN_ARTIFACTS", False)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    return tmp_path


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", TEST_API_KEY)
    return TEST_API_KEY


@pytest.fixture
def openai_client():
    """MagicMock client with the three endpoints the service uses"""
    client = MagicMock()
    client.audio.speech.create = AsyncMock(return_value=SimpleNamespace(content=b"ID3-fake-mp3-bytes"))
    client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(
        text=" What is photosynthesis? ",
        language="english",
        duration=1.5,
        words=[
            SimpleNamespace(word="What", start=0.0, end=0.3),
            SimpleNamespace(word="is", start=0.3, end=0.5),
            SimpleNamespace(word="photosynthesis", start=0.5, end=1.4),
        ],
    ))
    client.chat.completions.create = AsyncMock(return_value=completion({
        "messages": [
            {"text": "Plants turn light into food.", "facialExpression": "smile", "animation": "Talking_0"},
            {"text": "Shall we look at chlorophyll next?", "facialExpression": "surprised", "animation": "Talking_1"},
        ]
    }))
    return client


@pytest.fixture
def fake_converter():
    return FakeConverter()


@pytest.fixture
def wav_file(tmp_path):
    """Factory for WAV files under the test directory"""
    def _make(name: str, samples: np.ndarray, sample_rate: int = 8000, channels: int = 1) -> Path:
        return write_wav(tmp_path / name, samples, sample_rate, channels)
    return _make


@pytest.fixture
def chat_completion():
    return completion
