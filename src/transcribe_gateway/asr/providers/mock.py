from __future__ import annotations

import numpy as np

from ..types import AsrOptions, AsrResult, AsrSegment
from .base import AsrProvider


class MockAsrProvider(AsrProvider):
    name = "mock"

    def __init__(self, text: str = "mock transcription") -> None:
        self._text = text

    async def transcribe(self, *, audio: np.ndarray, options: AsrOptions) -> AsrResult:
        duration = None
        if options.sample_rate:
            duration = float(len(audio)) / float(options.sample_rate)
        return AsrResult(
            text=self._text,
            segments=[AsrSegment(text=self._text)],
            duration_seconds=duration,
            provider=self.name,
        )
