from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)


class ArtifactTracker:
    """Hands out unique temp paths for one request and removes them afterwards.

    Paths are recorded before anything is written to them, so a stage that
    fails halfway still has its partial output removed by :meth:`cleanup`.
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self._directory = Path(directory)
        self._paths: List[Path] = []

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    def new_path(self, prefix: str, suffix: str = "") -> Path:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._directory / f"{prefix}_{uuid.uuid4().hex}{suffix}"
        self._paths.append(path)
        return path

    def cleanup(self) -> None:
        while self._paths:
            path = self._paths.pop()
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(
                    "cleanup.failed path=%s error=%s",
                    path,
                    exc,
                    extra={"path": str(path), "error": str(exc)},
                )
