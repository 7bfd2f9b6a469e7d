"""
Unit tests for audio conversion and encoding helpers
"""
import asyncio
import base64
import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np

from educator.core.errors import ConversionFailure, EncodingFailure
from educator.utils.audio_utils import AudioFormatConverter, audio_file_to_base64, frame_rms, read_wav_mono


def fake_process(returncode=0, stderr=b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(b"", stderr))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


class TestAudioFormatConverter:
    """Test the ffmpeg subprocess wrapper"""

    def test_output_path_keeps_stem(self):
        converter = AudioFormatConverter(ffmpeg_path="ffmpeg")

        assert converter.output_path_for(Path("/tmp/turn/message_2.mp3")) == Path("/tmp/turn/message_2.wav")

    async def test_successful_conversion(self, tmp_path):
        source = tmp_path / "message_0.mp3"
        source.write_bytes(b"mp3")
        proc = fake_process()

        with patch("educator.utils.audio_utils.asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as mock_exec:
            output = await AudioFormatConverter(ffmpeg_path="/usr/bin/ffmpeg").convert(source)

        assert output == tmp_path / "message_0.wav"
        args = mock_exec.call_args.args
        assert args[0] == "/usr/bin/ffmpeg"
        assert "-y" in args
        assert args[-2:] == (str(source), str(output))

    async def test_non_zero_exit(self, tmp_path):
        proc = fake_process(returncode=1, stderr=b"Invalid data found when processing input")

        with patch("educator.utils.audio_utils.asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(ConversionFailure) as exc_info:
                await AudioFormatConverter().convert(tmp_path / "message_1.mp3")

        assert "Invalid data found" in exc_info.value.details
        assert exc_info.value.stage == "conversion"

    async def test_missing_binary(self, tmp_path):
        with patch("educator.utils.audio_utils.asyncio.create_subprocess_exec",
                   AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            with pytest.raises(ConversionFailure) as exc_info:
                await AudioFormatConverter(ffmpeg_path="no-such-ffmpeg").convert(tmp_path / "a.mp3")

        assert "not found" in exc_info.value.details

    async def test_timeout_kills_process(self, tmp_path):
        proc = fake_process()

        async def hang():
            await asyncio.sleep(10)

        proc.communicate = AsyncMock(side_effect=hang)

        with patch("educator.utils.audio_utils.asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(ConversionFailure) as exc_info:
                await AudioFormatConverter(timeout=0.05).convert(tmp_path / "a.mp3")

        proc.kill.assert_called_once()
        assert "timed out" in exc_info.value.details


class TestEncoding:
    """Test base64 transport encoding"""

    async def test_audio_file_to_base64(self, tmp_path):
        path = tmp_path / "message_0.mp3"
        path.write_bytes(b"\x00\x01ID3")

        encoded = await audio_file_to_base64(path)

        assert base64.b64decode(encoded) == b"\x00\x01ID3"

    async def test_missing_file(self, tmp_path):
        with pytest.raises(EncodingFailure):
            await audio_file_to_base64(tmp_path / "gone.mp3")

    async def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.mp3"
        path.write_bytes(b"")

        with pytest.raises(EncodingFailure) as exc_info:
            await audio_file_to_base64(path)

        assert exc_info.value.stage == "encoding"


class TestWaveAnalysis:
    """Test PCM loading and energy framing"""

    def test_read_wav_mono(self, wav_file):
        path = wav_file("half.wav", np.full(4000, 0.5, dtype=np.float32), sample_rate=8000)

        samples, rate = read_wav_mono(path)

        assert rate == 8000
        assert len(samples) == 4000
        assert samples.dtype == np.float32
        assert np.allclose(samples, 0.5, atol=1e-3)

    def test_frame_rms_keeps_partial_window(self):
        samples = np.ones(250, dtype=np.float32)

        rms = frame_rms(samples, sample_rate=1000, window_seconds=0.1)

        assert len(rms) == 3
        assert np.allclose(rms[:2], 1.0)
        assert 0 < rms[2] < 1.0

    def test_frame_rms_empty(self):
        assert len(frame_rms(np.zeros(0, dtype=np.float32), 8000, 0.1)) == 0
