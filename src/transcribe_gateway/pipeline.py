"""Transcription request pipeline.

upload -> convert -> decode -> infer, with every temp artifact removed before
the caller sees the outcome. Stages are not retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from .asr import AsrOptions, AsrResult, AsrService
from .audio import ArtifactTracker, AudioIngestor, AudioNormalizer, IngestLimits, WavDecoder
from .errors import TranscriptionError
from .settings import PipelineSettings

logger = logging.getLogger(__name__)


class RequestStage(str, Enum):
    RECEIVED = "received"
    UPLOADED = "uploaded"
    CONVERTED = "converted"
    DECODED = "decoded"
    TRANSCRIBED = "transcribed"
    FAILED = "failed"


@dataclass(slots=True)
class TranscriptionOutcome:
    request_id: str
    text: str
    result: AsrResult
    timings_ms: dict[str, float]


class TranscriptionPipeline:
    def __init__(
        self,
        *,
        upload_dir: Union[str, Path],
        ingestor: AudioIngestor,
        normalizer: AudioNormalizer,
        decoder: WavDecoder,
        asr_service: AsrService,
        max_concurrent_jobs: int = 4,
    ) -> None:
        self._upload_dir = Path(upload_dir)
        self._ingestor = ingestor
        self._normalizer = normalizer
        self._decoder = decoder
        self._asr_service = asr_service
        self._jobs = asyncio.Semaphore(max(1, max_concurrent_jobs))

    @classmethod
    def from_settings(cls, cfg: PipelineSettings, *, asr_service: AsrService) -> "TranscriptionPipeline":
        return cls(
            upload_dir=cfg.upload_dir,
            ingestor=AudioIngestor(limits=IngestLimits(max_bytes=cfg.max_upload_bytes)),
            normalizer=AudioNormalizer(
                ffmpeg_binary=cfg.ffmpeg_binary,
                timeout_seconds=cfg.conversion_timeout_seconds,
            ),
            decoder=WavDecoder(),
            asr_service=asr_service,
            max_concurrent_jobs=cfg.max_concurrent_jobs,
        )

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    @property
    def max_upload_bytes(self) -> int:
        return self._ingestor.limits.max_bytes

    def new_tracker(self) -> ArtifactTracker:
        return ArtifactTracker(self._upload_dir)

    async def run(
        self,
        upload: Any,
        *,
        request_id: Optional[str] = None,
        options: Optional[AsrOptions] = None,
        tracker: Optional[ArtifactTracker] = None,
    ) -> TranscriptionOutcome:
        request_id = request_id or uuid.uuid4().hex[:12]
        tracker = tracker or self.new_tracker()
        stage = RequestStage.RECEIVED
        timings: dict[str, float] = {}
        started = time.perf_counter()

        try:
            artifact = await self._ingestor.from_upload(upload, tracker=tracker)
            stage = RequestStage.UPLOADED
            logger.info(
                "transcribe.received request_id=%s size_bytes=%d",
                request_id,
                artifact.size,
                extra={
                    "request_id": request_id,
                    "upload_name": artifact.filename,
                    "size_bytes": artifact.size,
                },
            )

            # fail fast on an unloaded model instead of holding a job slot
            await self._asr_service.wait_ready()

            async with self._jobs:
                mark = time.perf_counter()
                normalized = await self._normalizer.normalize(artifact, tracker=tracker)
                stage = RequestStage.CONVERTED
                timings["convert_ms"] = _elapsed_ms(mark)

                buffer = await self._decoder.decode(normalized)
                stage = RequestStage.DECODED

                mark = time.perf_counter()
                result = await self._asr_service.transcribe(buffer, options=options)
                stage = RequestStage.TRANSCRIBED
                timings["infer_ms"] = _elapsed_ms(mark)
        except TranscriptionError as exc:
            logger.warning(
                "transcribe.failed request_id=%s stage=%s code=%s error=%s",
                request_id,
                stage.value,
                exc.code,
                exc.message,
                extra={
                    "request_id": request_id,
                    "state": RequestStage.FAILED.value,
                    "stage": stage.value,
                    "code": exc.code,
                    "error": exc.message,
                },
            )
            raise
        finally:
            # synchronous so a cancelled request still removes its files
            tracker.cleanup()

        timings["total_ms"] = _elapsed_ms(started)
        confidence = _mean_confidence(result)
        logger.info(
            "transcribe.completed request_id=%s audio_seconds=%.2f confidence=%s total_ms=%.1f",
            request_id,
            buffer.duration_seconds,
            "n/a" if confidence is None else f"{confidence:.3f}",
            timings["total_ms"],
            extra={
                "request_id": request_id,
                "audio_seconds": round(buffer.duration_seconds, 2),
                "mean_confidence": confidence,
                "provider": result.provider,
                **timings,
            },
        )
        return TranscriptionOutcome(request_id=request_id, text=result.text, result=result, timings_ms=timings)


def _mean_confidence(result: AsrResult) -> Optional[float]:
    values = [s.confidence for s in result.segments or [] if s.confidence is not None]
    if not values:
        return None
    return round(sum(values) / len(values), 3)


def _elapsed_ms(since: float) -> float:
    return round((time.perf_counter() - since) * 1000.0, 1)
