"""Upload ingestion, ffmpeg normalization and WAV decoding."""

from .artifacts import ArtifactTracker
from .decoder import WavDecoder
from .ingest import AudioIngestor, IngestLimits
from .normalizer import AudioNormalizer
from .types import NormalizedAudio, SampleBuffer, UploadArtifact

__all__ = [
    "ArtifactTracker",
    "AudioIngestor",
    "IngestLimits",
    "AudioNormalizer",
    "WavDecoder",
    "NormalizedAudio",
    "SampleBuffer",
    "UploadArtifact",
]
