"""
pytest configuration: shared fixtures and fakes for the transcription pipeline.
"""

import io
import threading
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest
import soundfile as sf
from pydub.exceptions import CouldntDecodeError

from transcribe_gateway.settings import AsrSettings, PipelineSettings, ServerSettings, Settings


def make_wav_bytes(
    *,
    seconds: float = 0.5,
    sample_rate: int = 16000,
    channels: int = 1,
    subtype: str = "PCM_16",
    frequency: float = 440.0,
) -> bytes:
    t = np.arange(int(seconds * sample_rate), dtype=np.float32) / float(sample_rate)
    tone = (0.5 * np.sin(2 * np.pi * frequency * t)).astype(np.float32)
    if channels > 1:
        tone = np.stack([tone] * channels, axis=1)
    buf = io.BytesIO()
    sf.write(buf, tone, sample_rate, subtype=subtype, format="WAV")
    return buf.getvalue()


class FakeUpload:
    """Stand-in for a multipart UploadFile."""

    def __init__(self, data: bytes, filename: Optional[str] = "clip.wav", content_type: str = "audio/wav") -> None:
        self._buffer = io.BytesIO(data)
        self.filename = filename
        self.content_type = content_type

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


class FakeSegment:
    """Decoded audio as the fake transcoder sees it; export writes the source bytes back out."""

    def __init__(self, owner: "FakeTranscoder", source: Path) -> None:
        self.owner = owner
        self.source = source
        self.target: Optional[Path] = None
        self.conversions: List[tuple] = []
        self._data = source.read_bytes()

    def set_channels(self, channels: int) -> "FakeSegment":
        self.conversions.append(("channels", channels))
        return self

    def set_frame_rate(self, frame_rate: int) -> "FakeSegment":
        self.conversions.append(("frame_rate", frame_rate))
        return self

    def set_sample_width(self, sample_width: int) -> "FakeSegment":
        self.conversions.append(("sample_width", sample_width))
        return self

    def export(self, out_f: str, format: str = "mp3", **kwargs) -> None:
        self.target = Path(out_f)
        if self.owner.hang:
            self.owner.release.wait(timeout=5)
        self.target.write_bytes(self._data)
        self.owner.exported += 1


class FakeTranscoder:
    """Replaces pydub's AudioSegment; every ``from_file`` call is recorded in ``segments``."""

    def __init__(self) -> None:
        self.converter = "ffmpeg"
        self.decode_error: Optional[str] = None
        self.missing = False
        self.hang = False
        self.release = threading.Event()
        self.exported = 0
        self.segments: List[FakeSegment] = []

    def from_file(self, file: str, format: Optional[str] = None, **kwargs) -> FakeSegment:
        if self.missing:
            raise FileNotFoundError(2, "No such file or directory", self.converter)
        if self.decode_error is not None:
            raise CouldntDecodeError(
                "Decoding failed. ffmpeg returned error code: 1\n\n"
                f"Output from ffmpeg/avlib:\n\n{self.decode_error}"
            )
        segment = FakeSegment(self, Path(file))
        self.segments.append(segment)
        return segment


@pytest.fixture
def fake_transcoder(monkeypatch):
    fake = FakeTranscoder()
    monkeypatch.setattr("transcribe_gateway.audio.normalizer.AudioSegment", fake)
    yield fake
    # let any worker thread still parked in export finish
    fake.release.set()


@pytest.fixture
def upload_dir(tmp_path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def settings(upload_dir) -> Settings:
    return Settings(
        server=ServerSettings(
            host="127.0.0.1",
            port=3000,
            cors_origins=("*",),
            log_level="INFO",
            log_file=None,
        ),
        pipeline=PipelineSettings(
            upload_dir=str(upload_dir),
            max_upload_bytes=1024 * 1024,
            ffmpeg_binary="ffmpeg",
            conversion_timeout_seconds=5.0,
            inference_timeout_seconds=5.0,
            max_concurrent_jobs=4,
        ),
        asr=AsrSettings(
            provider="mock",
            model_id="whisper-tiny.en",
            ready_wait_seconds=5.0,
            default_lang=None,
            whisper_model="tiny.en",
            whisper_device="cpu",
            whisper_compute_type="int8",
            whisper_beam_size=1,
            whisper_cache_dir=None,
        ),
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests")
    config.addinivalue_line("markers", "integration: tests that need ffmpeg on PATH")
