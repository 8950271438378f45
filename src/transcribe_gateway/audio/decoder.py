from __future__ import annotations

import asyncio
from pathlib import Path

import numpy as np
import soundfile as sf

from ..errors import DecodeFailed
from .normalizer import TARGET_CHANNELS, TARGET_SAMPLE_RATE
from .types import NormalizedAudio, SampleBuffer

EXPECTED_FORMATS = ("WAV", "WAVEX")
EXPECTED_SUBTYPE = "PCM_16"


class WavDecoder:
    """Reads the normalized WAV container into float32 samples in [-1.0, 1.0].

    The normalizer guarantees the format, so any mismatch here means the
    transcoder produced something unexpected and is reported as a server error.
    """

    def __init__(
        self,
        *,
        expected_sample_rate: int = TARGET_SAMPLE_RATE,
        expected_channels: int = TARGET_CHANNELS,
    ) -> None:
        self._expected_sample_rate = expected_sample_rate
        self._expected_channels = expected_channels

    async def decode(self, audio: NormalizedAudio) -> SampleBuffer:
        return await asyncio.to_thread(self.decode_file, audio.path)

    def decode_file(self, path: Path) -> SampleBuffer:
        try:
            info = sf.info(str(path))
        except (RuntimeError, OSError) as exc:
            raise DecodeFailed(f"normalized audio is not a readable WAV container: {exc}") from exc

        if info.format not in EXPECTED_FORMATS or info.subtype != EXPECTED_SUBTYPE:
            raise DecodeFailed(
                f"unexpected container {info.format}/{info.subtype}, expected WAV/{EXPECTED_SUBTYPE}"
            )
        if info.channels != self._expected_channels:
            raise DecodeFailed(f"unexpected channel count {info.channels}, expected {self._expected_channels}")
        if info.samplerate != self._expected_sample_rate:
            raise DecodeFailed(
                f"unexpected sample rate {info.samplerate}, expected {self._expected_sample_rate}"
            )

        try:
            data, sample_rate = sf.read(str(path), dtype="float32", always_2d=True)
        except (RuntimeError, OSError) as exc:
            raise DecodeFailed(f"failed to read normalized audio: {exc}") from exc

        samples = np.ascontiguousarray(data[:, 0], dtype=np.float32)
        return SampleBuffer(samples=samples, sample_rate=int(sample_rate))
