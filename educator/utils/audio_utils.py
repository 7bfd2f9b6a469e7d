"""
Audio utility functions for format conversion and encoding
Converts synthesized speech to PCM WAV for lip-sync analysis
"""
import asyncio
import base64
import logging
import wave
from pathlib import Path
from typing import Optional, Tuple

import numpy as np

from educator.core.config import settings
from educator.core.errors import ConversionFailure, EncodingFailure

logger = logging.getLogger(__name__)


class AudioFormatConverter:
    """
    Converts synthesized audio to WAV with an external ffmpeg process
    Output path keeps the input stem with a .wav extension
    """

    target_suffix = ".wav"

    def __init__(self, ffmpeg_path: Optional[str] = None, timeout: Optional[float] = None):
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.timeout = timeout or settings.FFMPEG_TIMEOUT_SECONDS

    def output_path_for(self, input_path: Path) -> Path:
        return Path(input_path).with_suffix(self.target_suffix)

    async def convert(self, input_path: Path) -> Path:
        """
        Convert an audio file to WAV

        Args:
            input_path: Synthesized audio file

        Returns:
            Path of the converted file

        Raises:
            ConversionFailure: ffmpeg missing, timed out or exited non-zero
        """
        input_path = Path(input_path)
        output_path = self.output_path_for(input_path)
        started = asyncio.get_running_loop().time()

        try:
            proc = await asyncio.create_subprocess_exec(
                self.ffmpeg_path,
                "-hide_banner",
                "-loglevel", "error",
                "-y",  # overwrite the target
                "-i", str(input_path),
                str(output_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise ConversionFailure(f"ffmpeg not found at {self.ffmpeg_path!r}")

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ConversionFailure(f"ffmpeg timed out after {self.timeout}s converting {input_path.name}")

        if proc.returncode != 0:
            detail = (stderr or b"").decode(errors="ignore").strip()[:200]
            raise ConversionFailure(f"ffmpeg exited with {proc.returncode}: {detail}")

        elapsed_ms = (asyncio.get_running_loop().time() - started) * 1000
        logger.debug(f"Conversion of {input_path.name} done in {elapsed_ms:.0f}ms")
        return output_path


def _read_bytes(path: Path) -> bytes:
    return Path(path).read_bytes()


async def audio_file_to_base64(path: Path) -> str:
    """
    Read an audio file and encode it for JSON transport

    Raises:
        EncodingFailure: File missing, unreadable or empty
    """
    try:
        data = await asyncio.to_thread(_read_bytes, path)
    except OSError as e:
        raise EncodingFailure(f"Cannot read audio {Path(path).name}: {e}")
    if not data:
        raise EncodingFailure(f"Audio {Path(path).name} is empty")
    return base64.b64encode(data).decode("ascii")


def read_wav_mono(path: Path) -> Tuple[np.ndarray, int]:
    """
    Load a 16-bit PCM WAV file as mono float samples in [-1, 1]

    Args:
        path: WAV file (as produced by AudioFormatConverter)

    Returns:
        Tuple of (samples, sample_rate)
    """
    with wave.open(str(path), "rb") as wav:
        channels = wav.getnchannels()
        sample_width = wav.getsampwidth()
        sample_rate = wav.getframerate()
        frames = wav.readframes(wav.getnframes())

    if sample_width != 2:
        raise ValueError(f"Unsupported sample width: {sample_width * 8} bits")

    # Ensure we have an even number of bytes (16-bit samples)
    if len(frames) % 2 != 0:
        logger.warning("PCM data has odd number of bytes, truncating last byte")
        frames = frames[:-1]

    samples = np.frombuffer(frames, dtype=np.int16).astype(np.float32) / 32768.0
    if channels > 1:
        usable = len(samples) - len(samples) % channels
        samples = samples[:usable].reshape(-1, channels).mean(axis=1)

    return samples, sample_rate


def frame_rms(samples: np.ndarray, sample_rate: int, window_seconds: float) -> np.ndarray:
    """
    Root-mean-square energy per fixed window

    The last partial window is kept so the windows cover every sample.
    """
    window = max(1, int(round(sample_rate * window_seconds)))
    if len(samples) == 0:
        return np.zeros(0, dtype=np.float32)
    padded_length = int(np.ceil(len(samples) / window)) * window
    padded = np.zeros(padded_length, dtype=np.float32)
    padded[:len(samples)] = samples
    frames = padded.reshape(-1, window)
    return np.sqrt(np.mean(np.square(frames), axis=1))
