"""
Minimal WAV / 16-bit PCM helpers.

This is the only file-format code in the package: it extracts the PCM
payload of a RIFF/WAVE file as normalized float samples. Anything beyond
16-bit integer PCM is rejected.

Convention: decode divides by 32768.0; encode rounds ``sample * 32768``
and clamps to [-32768, 32767].
"""

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from scipy.io import wavfile

from .errors import WavFormatError

logger = logging.getLogger(__name__)

PCM16_SCALE = 32768.0
MIN_WAV_SIZE = 44
RIFF_HEADER_SIZE = 12
DEFAULT_SAMPLE_RATE = 44100


@dataclass
class WavData:
    """Decoded PCM payload of a WAV file."""

    samples: np.ndarray  # float64, mono, [-1, 1]
    sample_rate: int
    channels: int = 1

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return len(self.samples) / self.sample_rate if self.sample_rate else 0.0


def decode_pcm16(data: bytes) -> np.ndarray:
    """
    Convert little-endian signed 16-bit PCM bytes to float samples.

    A trailing odd byte is ignored.
    """
    usable = len(data) - (len(data) % 2)
    pcm = np.frombuffer(data[:usable], dtype="<i2")
    return pcm.astype(np.float64) / PCM16_SCALE


def encode_pcm16(samples) -> bytes:
    """Convert float samples to little-endian signed 16-bit PCM bytes."""
    values = np.asarray(samples, dtype=np.float64)
    pcm = np.clip(np.round(values * PCM16_SCALE), -32768, 32767).astype("<i2")
    return pcm.tobytes()


def read_wav_bytes(data: bytes, default_sample_rate: int = DEFAULT_SAMPLE_RATE) -> WavData:
    """
    Extract normalized samples from an in-memory WAV file.

    Walks the chunk list after the 12-byte RIFF/WAVE header looking for
    ``fmt `` (sample rate, channels, bit depth) and ``data``. Multi-channel
    audio is averaged down to mono.

    Args:
        data: Complete WAV file contents
        default_sample_rate: Used when the file has no ``fmt `` chunk

    Returns:
        WavData with float64 mono samples

    Raises:
        WavFormatError: File too small, missing RIFF/WAVE markers, missing
            data chunk, or unsupported sample format
    """
    if len(data) < MIN_WAV_SIZE:
        raise WavFormatError(f"Invalid WAV file - too small ({len(data)} bytes)")
    if data[0:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise WavFormatError("Invalid WAV file format - missing RIFF/WAVE header")

    sample_rate = default_sample_rate
    channels = 1
    bits_per_sample = 16
    payload: Optional[bytes] = None

    offset = RIFF_HEADER_SIZE
    while offset + 8 <= len(data):
        chunk_id = data[offset : offset + 4]
        (chunk_size,) = struct.unpack_from("<I", data, offset + 4)
        body_start = offset + 8

        if chunk_id == b"fmt " and chunk_size >= 16:
            if body_start + 16 > len(data):
                raise WavFormatError("Invalid WAV file - truncated fmt chunk")
            audio_format, channels, sample_rate, _, _, bits_per_sample = struct.unpack_from(
                "<HHIIHH", data, body_start
            )
            if audio_format != 1 or bits_per_sample != 16:
                raise WavFormatError(
                    f"Unsupported WAV encoding (format={audio_format}, bits={bits_per_sample}); "
                    "only 16-bit PCM is supported"
                )
        elif chunk_id == b"data":
            end = min(len(data), body_start + chunk_size)
            payload = data[body_start:end]
            logger.debug(f"Found data chunk at offset {body_start} with size {chunk_size}")
            break

        # Chunks are word-aligned
        offset = body_start + chunk_size + (chunk_size % 2)

    if payload is None:
        raise WavFormatError("Invalid WAV file - no data chunk")
    if channels <= 0 or sample_rate <= 0:
        raise WavFormatError(f"Invalid WAV header: channels={channels}, rate={sample_rate}")

    samples = decode_pcm16(payload)
    if channels > 1:
        frames = len(samples) // channels
        samples = samples[: frames * channels].reshape(frames, channels).mean(axis=1)

    logger.debug(
        f"Extracted {len(samples)} samples at {sample_rate}Hz "
        f"({len(samples) / sample_rate:.2f}s, {channels} channel(s) in file)"
    )
    return WavData(samples=samples, sample_rate=int(sample_rate), channels=int(channels))


def read_wav(path: Union[str, Path], default_sample_rate: int = DEFAULT_SAMPLE_RATE) -> WavData:
    """Read a WAV file from disk. See read_wav_bytes."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"WAV file not found: {file_path}")
    return read_wav_bytes(file_path.read_bytes(), default_sample_rate)


def write_wav(path: Union[str, Path], samples, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Path:
    """
    Write mono float samples as a 16-bit PCM WAV file.

    Returns:
        Path of the written file
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    pcm = np.frombuffer(encode_pcm16(samples), dtype="<i2")
    wavfile.write(str(file_path), int(sample_rate), pcm)
    logger.info(f"Wrote {len(pcm)} samples to {file_path} at {sample_rate}Hz")
    return file_path
