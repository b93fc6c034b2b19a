"""Exception hierarchy for acoustic ingestion and session control.

Ingestion errors are expected at the upload / capture boundary and are
caught there by :class:`~mcp_server_acoustic.analysis.session.AnalysisSession`.
:class:`InvalidTransitionError` signals misuse of the state machine and
propagates.
"""

from __future__ import annotations


class AcousticError(Exception):
    """Base class for all errors raised by the acoustic analysis package."""


class IngestError(AcousticError):
    """An input clip or capture stream could not be accepted.

    Attributes:
        user_message: Short message suitable for display to an operator.
    """

    user_message = "The audio input could not be processed."

    def __init__(self, detail: str = "", user_message: str | None = None) -> None:
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class OversizeInput(IngestError):
    """Input exceeds the configured maximum size; rejected before decode."""

    def __init__(self, size_bytes: int, max_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        max_mb = max_bytes / (1024 * 1024)
        super().__init__(
            f"Input is {size_bytes} bytes, limit is {max_bytes} bytes",
            user_message=f"File too large. Max {max_mb:g}MB allowed.",
        )


class DecodeFailure(IngestError):
    """The byte stream could not be decoded into audio samples."""

    user_message = (
        "Could not decode audio file. Please use WAV, MP3, OGG, FLAC, or M4A format."
    )


class UnsupportedFormat(DecodeFailure):
    """No accepted container could parse the byte stream."""


class EmptyAudio(DecodeFailure):
    """Decoding succeeded but produced zero samples (degenerate clip)."""


class PermissionDenied(IngestError):
    """Access to the capture device was refused."""

    user_message = "Please allow microphone access to use acoustic monitoring."


class InvalidTransitionError(AcousticError):
    """A session state transition outside the allowed table was attempted."""

    def __init__(self, current: object, target: object) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition from {current} to {target}")
