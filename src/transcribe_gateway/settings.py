from __future__ import annotations

"""Runtime configuration helpers for transcribe-gateway."""

import os
from dataclasses import dataclass

_DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _positive_or_none(value: float) -> float | None:
    return value if value > 0 else None


@dataclass(frozen=True)
class ServerSettings:
    host: str
    port: int
    cors_origins: tuple[str, ...]
    log_level: str
    log_file: str | None


@dataclass(frozen=True)
class PipelineSettings:
    upload_dir: str
    max_upload_bytes: int
    ffmpeg_binary: str
    conversion_timeout_seconds: float | None
    inference_timeout_seconds: float | None
    max_concurrent_jobs: int


@dataclass(frozen=True)
class AsrSettings:
    provider: str
    model_id: str
    ready_wait_seconds: float
    default_lang: str | None
    whisper_model: str
    whisper_device: str
    whisper_compute_type: str
    whisper_beam_size: int
    whisper_cache_dir: str | None


@dataclass(frozen=True)
class Settings:
    server: ServerSettings
    pipeline: PipelineSettings
    asr: AsrSettings


def load_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""

    origins = os.getenv("CORS_ORIGINS", "*")
    server_settings = ServerSettings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_env_int("PORT", 3000),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()) or ("*",),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=_env_optional("LOG_FILE"),
    )

    pipeline_settings = PipelineSettings(
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", _DEFAULT_MAX_UPLOAD_BYTES),
        ffmpeg_binary=os.getenv("FFMPEG_BINARY", "ffmpeg"),
        conversion_timeout_seconds=_positive_or_none(_env_float("CONVERSION_TIMEOUT_SECONDS", 120.0)),
        inference_timeout_seconds=_positive_or_none(_env_float("INFERENCE_TIMEOUT_SECONDS", 300.0)),
        max_concurrent_jobs=max(1, _env_int("MAX_CONCURRENT_JOBS", 4)),
    )

    asr_settings = AsrSettings(
        provider=os.getenv("ASR_PROVIDER", "whisper"),
        model_id=os.getenv("ASR_MODEL_ID", "whisper-tiny.en"),
        ready_wait_seconds=max(0.0, _env_float("MODEL_READY_WAIT_SECONDS", 30.0)),
        default_lang=_env_optional("ASR_DEFAULT_LANG"),
        whisper_model=os.getenv("ASR_WHISPER_MODEL", "tiny.en"),
        whisper_device=os.getenv("ASR_WHISPER_DEVICE", "auto"),
        whisper_compute_type=os.getenv("ASR_WHISPER_COMPUTE_TYPE", "int8"),
        whisper_beam_size=_env_int("ASR_WHISPER_BEAM_SIZE", 1),
        whisper_cache_dir=_env_optional("ASR_WHISPER_CACHE_DIR"),
    )

    return Settings(
        server=server_settings,
        pipeline=pipeline_settings,
        asr=asr_settings,
    )


__all__ = [
    "Settings",
    "ServerSettings",
    "PipelineSettings",
    "AsrSettings",
    "load_settings",
]
