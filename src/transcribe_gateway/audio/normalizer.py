from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError

from ..errors import ConversionFailed
from .artifacts import ArtifactTracker
from .types import NormalizedAudio, UploadArtifact

TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
TARGET_SAMPLE_WIDTH = 2  # bytes, s16le
TARGET_FORMAT = "wav"

_STDERR_TAIL_LINES = 5

logger = logging.getLogger(__name__)


class AudioNormalizer:
    """Transcodes arbitrary uploads to mono 16 kHz s16le WAV.

    Decoding is delegated to ffmpeg through pydub; the channel, rate and
    sample-width conversion and the WAV export happen on the decoded segment.
    """

    def __init__(
        self,
        *,
        ffmpeg_binary: str = "ffmpeg",
        timeout_seconds: Optional[float] = None,
        target_sample_rate: int = TARGET_SAMPLE_RATE,
        target_channels: int = TARGET_CHANNELS,
    ) -> None:
        self._ffmpeg_binary = ffmpeg_binary
        self._timeout_seconds = timeout_seconds
        self._target_sample_rate = target_sample_rate
        self._target_channels = target_channels

    async def normalize(self, upload: UploadArtifact, *, tracker: ArtifactTracker) -> NormalizedAudio:
        target = tracker.new_path("converted", ".wav")
        abandoned = threading.Event()

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.convert_file, upload.path, target, abandoned),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ConversionFailed(
                f"audio conversion timed out after {self._timeout_seconds:g}s"
            ) from exc
        finally:
            # the worker thread cannot be interrupted; on timeout or cancellation
            # it drops whatever it writes once it finishes
            abandoned.set()

        if not target.exists() or target.stat().st_size == 0:
            raise ConversionFailed("audio conversion failed: transcoder produced no output")

        return NormalizedAudio(
            path=target,
            sample_rate=self._target_sample_rate,
            channels=self._target_channels,
        )

    def convert_file(self, source: Path, target: Path, abandoned: Optional[threading.Event] = None) -> None:
        # pydub reads the transcoder location from a class attribute
        AudioSegment.converter = self._ffmpeg_binary
        try:
            segment = AudioSegment.from_file(str(source))
            segment = (
                segment.set_channels(self._target_channels)
                .set_frame_rate(self._target_sample_rate)
                .set_sample_width(TARGET_SAMPLE_WIDTH)
            )
            segment.export(str(target), format=TARGET_FORMAT)
        except (CouldntDecodeError, CouldntEncodeError) as exc:
            message = _stderr_tail(str(exc)) or exc.__class__.__name__
            raise ConversionFailed(f"audio conversion failed: {message}") from exc
        except FileNotFoundError as exc:
            raise ConversionFailed(f"unable to start transcoder {self._ffmpeg_binary!r}: {exc}") from exc
        except (IndexError, ValueError) as exc:
            # probe output without a usable audio stream
            raise ConversionFailed(f"audio conversion failed: no decodable audio stream ({exc})") from exc
        finally:
            if abandoned is not None and abandoned.is_set():
                target.unlink(missing_ok=True)
                logger.info("convert.discarded path=%s", target, extra={"path": str(target)})


def _stderr_tail(output: Optional[str]) -> str:
    if not output:
        return ""
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return " | ".join(lines[-_STDERR_TAIL_LINES:])
