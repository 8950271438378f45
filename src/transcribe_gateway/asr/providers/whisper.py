from __future__ import annotations

import asyncio
import math
import threading
from typing import TYPE_CHECKING, Iterable, Optional

import numpy as np

from ..types import AsrOptions, AsrResult, AsrSegment
from .base import AsrProvider

if TYPE_CHECKING:  # pragma: no cover
    from faster_whisper import WhisperModel


class WhisperAsrProvider(AsrProvider):
    """ASR provider backed by faster-whisper."""

    name = "whisper"

    def __init__(
        self,
        *,
        model: str = "tiny.en",
        device: str = "auto",
        compute_type: str = "int8",
        beam_size: int = 1,
        temperature: float = 0.0,
        cache_dir: Optional[str] = None,
        default_lang: Optional[str] = None,
    ) -> None:
        self._model_name = model
        self._device = device
        self._compute_type = compute_type
        self._beam_size = max(1, beam_size)
        self._temperature = max(0.0, temperature)
        self._cache_dir = cache_dir
        self._default_lang = default_lang

        self._model: WhisperModel | None = None
        self._model_lock = threading.Lock()

    def load(self) -> None:
        self._ensure_model()

    async def transcribe(self, *, audio: np.ndarray, options: AsrOptions) -> AsrResult:
        language = options.lang or self._default_lang

        segments, info = await asyncio.to_thread(self._run_transcribe, audio, language)

        parts: list[AsrSegment] = []
        text_parts: list[str] = []
        for segment in segments:
            segment_text = (segment.text or "").strip()
            if not segment_text:
                continue
            text_parts.append(segment_text)
            parts.append(AsrSegment(text=segment_text, confidence=_estimate_segment_confidence(segment)))

        return AsrResult(
            text=" ".join(text_parts).strip(),
            segments=parts,
            duration_seconds=getattr(info, "duration", None),
            provider=self.name,
        )

    def _run_transcribe(self, audio: np.ndarray, language: Optional[str]) -> tuple[Iterable[object], object]:
        model = self._ensure_model()
        segments, info = model.transcribe(
            np.asarray(audio, dtype=np.float32),
            language=language,
            beam_size=self._beam_size,
            temperature=self._temperature,
            without_timestamps=True,
            task="transcribe",
        )
        # segments is a lazy generator; decoding happens while it is consumed
        return list(segments), info

    def _ensure_model(self) -> "WhisperModel":
        if self._model is None:
            with self._model_lock:
                if self._model is None:
                    try:
                        from faster_whisper import WhisperModel
                    except ImportError as exc:
                        raise RuntimeError(
                            "faster-whisper must be installed to use WhisperAsrProvider "
                            "(pip install 'transcribe-gateway[whisper]')"
                        ) from exc
                    self._model = WhisperModel(
                        self._model_name,
                        device=self._device,
                        compute_type=self._compute_type,
                        download_root=self._cache_dir,
                    )
        return self._model


def _estimate_segment_confidence(segment: object) -> Optional[float]:
    """Derive a rough confidence estimate from whisper segment metadata."""

    avg_logprob = getattr(segment, "avg_logprob", None)
    no_speech_prob = getattr(segment, "no_speech_prob", None)
    if avg_logprob is None and no_speech_prob is None:
        return None

    confidence = 1.0
    if avg_logprob is not None:
        # avg_logprob is a mean log-probability in (-inf, 0]
        confidence = math.exp(min(0.0, float(avg_logprob)))
    if no_speech_prob is not None:
        confidence *= 1.0 - max(0.0, min(1.0, float(no_speech_prob)))
    return max(0.0, min(1.0, confidence))
