from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Optional

from ..audio.types import SampleBuffer
from ..errors import InferenceFailed, ModelNotReady, TranscriptionError
from ..settings import AsrSettings
from .providers.base import AsrProvider
from .providers.mock import MockAsrProvider
from .providers.whisper import WhisperAsrProvider
from .types import AsrOptions, AsrResult, ModelState

logger = logging.getLogger(__name__)


class AsrService:
    """Owns the shared model handle and gates inference on its readiness.

    State moves ``loading -> ready`` or ``loading -> failed`` exactly once, driven
    by :meth:`load`. Requests arriving while loading wait up to
    ``ready_wait_seconds`` and are then rejected with :class:`ModelNotReady`.
    The provider is used read-only after loading and may be called concurrently.
    """

    def __init__(
        self,
        *,
        provider: Optional[AsrProvider] = None,
        model_id: str = "mock",
        ready_wait_seconds: float = 0.0,
        timeout_seconds: Optional[float] = None,
        default_lang: Optional[str] = None,
    ) -> None:
        self._provider = provider or MockAsrProvider()
        self._model_id = model_id
        self._ready_wait_seconds = max(0.0, ready_wait_seconds)
        self._timeout_seconds = timeout_seconds
        self._default_lang = default_lang
        self._state = ModelState.LOADING
        self._load_error: Optional[str] = None
        self._settled = asyncio.Event()

    @classmethod
    def from_settings(cls, cfg: AsrSettings | None, *, timeout_seconds: Optional[float] = None) -> "AsrService":
        if cfg is None:
            return cls(timeout_seconds=timeout_seconds)
        provider_name = (cfg.provider or "mock").strip().lower()
        if provider_name in {"mock", "fake"}:
            provider: AsrProvider = MockAsrProvider()
        elif provider_name in {"whisper", "faster-whisper"}:
            provider = WhisperAsrProvider(
                model=cfg.whisper_model,
                device=cfg.whisper_device,
                compute_type=cfg.whisper_compute_type,
                beam_size=cfg.whisper_beam_size,
                cache_dir=cfg.whisper_cache_dir,
                default_lang=cfg.default_lang,
            )
        else:
            raise RuntimeError(f"unsupported ASR provider: {cfg.provider}")
        return cls(
            provider=provider,
            model_id=cfg.model_id,
            ready_wait_seconds=cfg.ready_wait_seconds,
            timeout_seconds=timeout_seconds,
            default_lang=cfg.default_lang,
        )

    @property
    def provider(self) -> AsrProvider:
        return self._provider

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def load_error(self) -> Optional[str]:
        return self._load_error

    async def load(self) -> None:
        if self._settled.is_set():
            return
        logger.info("model.loading", extra={"model": self._model_id, "provider": self._provider.name})
        try:
            await asyncio.to_thread(self._provider.load)
        except Exception as exc:
            self._state = ModelState.FAILED
            self._load_error = str(exc) or exc.__class__.__name__
            logger.exception("model.load_failed model=%s", self._model_id, extra={"model": self._model_id})
        else:
            self._state = ModelState.READY
            logger.info("model.ready", extra={"model": self._model_id})
        finally:
            if self._state is not ModelState.LOADING:
                self._settled.set()

    async def wait_ready(self) -> None:
        if self._state is ModelState.LOADING and self._ready_wait_seconds > 0:
            try:
                await asyncio.wait_for(self._settled.wait(), timeout=self._ready_wait_seconds)
            except asyncio.TimeoutError:
                pass
        if self._state is ModelState.READY:
            return
        if self._state is ModelState.FAILED:
            raise ModelNotReady(f"model {self._model_id} failed to load: {self._load_error}")
        raise ModelNotReady(f"model {self._model_id} is still loading")

    async def transcribe(self, buffer: SampleBuffer, *, options: Optional[AsrOptions] = None) -> AsrResult:
        await self.wait_ready()
        base = options or AsrOptions()
        opts = dataclasses.replace(
            base,
            sample_rate=base.sample_rate or buffer.sample_rate,
            lang=base.lang or self._default_lang,
        )
        try:
            result = await asyncio.wait_for(
                self._provider.transcribe(audio=buffer.samples, options=opts),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise InferenceFailed(f"inference timed out after {self._timeout_seconds:g}s") from exc
        except TranscriptionError:
            raise
        except Exception as exc:
            raise InferenceFailed(str(exc) or exc.__class__.__name__) from exc
        return AsrResult(
            text=(result.text or "").strip(),
            segments=list(result.segments or []),
            duration_seconds=result.duration_seconds
            if result.duration_seconds is not None
            else buffer.duration_seconds,
            provider=result.provider or self._provider.name,
        )
