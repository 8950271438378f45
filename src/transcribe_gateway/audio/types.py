from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np


@dataclass(slots=True)
class UploadArtifact:
    """Raw client upload persisted to the uploads directory."""

    path: Path
    filename: Optional[str]
    size: int
    content_type: Optional[str] = None


@dataclass(slots=True)
class NormalizedAudio:
    """Transcoder output: mono 16 kHz signed 16-bit PCM in a WAV container."""

    path: Path
    sample_rate: int
    channels: int


@dataclass(slots=True)
class SampleBuffer:
    """Decoded float32 samples ready for ASR consumption."""

    samples: np.ndarray
    sample_rate: int

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return float(len(self.samples)) / float(self.sample_rate)
