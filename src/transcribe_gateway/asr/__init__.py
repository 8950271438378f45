"""Speech recognition providers and the shared model handle."""

from .service import AsrService
from .types import AsrOptions, AsrResult, AsrSegment, ModelState

__all__ = ["AsrService", "AsrOptions", "AsrResult", "AsrSegment", "ModelState"]
