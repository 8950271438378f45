from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional


class ModelState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(slots=True)
class AsrOptions:
    lang: Optional[str] = None
    sample_rate: Optional[int] = None


@dataclass(slots=True)
class AsrSegment:
    text: str
    confidence: Optional[float] = None


@dataclass(slots=True)
class AsrResult:
    text: str
    segments: Iterable[AsrSegment] | None = None
    duration_seconds: Optional[float] = None
    provider: Optional[str] = None
