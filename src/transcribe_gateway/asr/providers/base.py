from __future__ import annotations

import abc

import numpy as np

from ..types import AsrOptions, AsrResult


class AsrProvider(abc.ABC):
    """Interface for ASR providers."""

    name: str

    def load(self) -> None:
        """Load model weights. Blocking; called once from a worker thread."""

    @abc.abstractmethod
    async def transcribe(self, *, audio: np.ndarray, options: AsrOptions) -> AsrResult:
        """Produce a transcription for mono float32 samples."""
        raise NotImplementedError
