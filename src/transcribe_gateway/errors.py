"""Error taxonomy for the transcription pipeline.

Every stage raises one of these; the HTTP layer maps ``status_code`` and
``code`` into the JSON error body.
"""

from __future__ import annotations


class TranscriptionError(Exception):
    code = "InternalError"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


class MissingInput(TranscriptionError):
    code = "MissingInput"
    status_code = 400


class PayloadTooLarge(TranscriptionError):
    code = "PayloadTooLarge"
    status_code = 413


class ConversionFailed(TranscriptionError):
    code = "ConversionFailed"
    status_code = 500


class DecodeFailed(TranscriptionError):
    code = "DecodeFailed"
    status_code = 500


class InferenceFailed(TranscriptionError):
    code = "InferenceFailed"
    status_code = 500


class ModelNotReady(TranscriptionError):
    code = "ModelNotReady"
    status_code = 503


__all__ = [
    "TranscriptionError",
    "MissingInput",
    "PayloadTooLarge",
    "ConversionFailed",
    "DecodeFailed",
    "InferenceFailed",
    "ModelNotReady",
]
