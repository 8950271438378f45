from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import MissingInput, PayloadTooLarge
from .artifacts import ArtifactTracker
from .types import UploadArtifact

CHUNK_SIZE = 1024 * 1024
_MAX_SUFFIX_LENGTH = 16


@dataclass(slots=True)
class IngestLimits:
    max_bytes: int


class AudioIngestor:
    """Persists a multipart upload to a unique temp path, enforcing the size ceiling."""

    def __init__(self, *, limits: IngestLimits, chunk_size: int = CHUNK_SIZE) -> None:
        self._limits = limits
        self._chunk_size = max(1, chunk_size)

    @property
    def limits(self) -> IngestLimits:
        return self._limits

    async def from_upload(self, upload: Any, *, tracker: ArtifactTracker) -> UploadArtifact:
        if upload is None or not callable(getattr(upload, "read", None)):
            raise MissingInput("No audio file provided")

        filename = getattr(upload, "filename", None) or None
        path = tracker.new_path("upload", _safe_suffix(filename))
        size = 0
        with open(path, "wb") as handle:
            while True:
                chunk = await upload.read(self._chunk_size)
                if not chunk:
                    break
                size += len(chunk)
                self._enforce_size(size)
                await asyncio.to_thread(handle.write, chunk)

        if size == 0:
            raise MissingInput("Uploaded audio file is empty")

        return UploadArtifact(
            path=path,
            filename=filename,
            size=size,
            content_type=getattr(upload, "content_type", None),
        )

    def _enforce_size(self, size: int) -> None:
        if size > self._limits.max_bytes:
            raise PayloadTooLarge(
                f"audio payload exceeds configured size limit of {self._limits.max_bytes} bytes"
            )


def _safe_suffix(filename: Optional[str]) -> str:
    # ffmpeg probes the content, the extension is only a hint
    if not filename:
        return ""
    suffix = os.path.splitext(os.path.basename(filename))[1].lower()
    if len(suffix) > _MAX_SUFFIX_LENGTH or not suffix[1:].isalnum():
        return ""
    return suffix
