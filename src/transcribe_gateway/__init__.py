"""HTTP transcription gateway: upload -> ffmpeg -> decode -> Whisper -> JSON."""

__version__ = "0.1.0"
