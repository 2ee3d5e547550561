"""
Error types for the part inspection package.

Every failure the detector raises derives from InspectionError and carries
a coarse ErrorKind plus a retryable flag, so callers can tell a bad upload
(retake the photo) from a misconfigured service.
"""

from enum import Enum


class ErrorKind(Enum):
    """Coarse classification of inspection failures.

    Attributes:
        DECODE: Input bytes are not a decodable image.
        QUALITY_GATE: Photo rejected by the quality checks.
        ALIGNMENT: Base and current photos could not be registered.
        NOT_CONFIGURED: Detector or pipeline is not set up.
        PRECONDITION: Internal shape or argument mismatch.
        BASE_PHOTO_MISSING: Current photo sent before any base photo.
        PROCESSING: Any other processing failure.
    """

    DECODE = "decode"
    QUALITY_GATE = "quality_gate"
    ALIGNMENT = "alignment"
    NOT_CONFIGURED = "not_configured"
    PRECONDITION = "precondition"
    BASE_PHOTO_MISSING = "base_photo_missing"
    PROCESSING = "processing"


class InspectionError(Exception):
    """Base class for all inspection failures."""

    kind: ErrorKind = ErrorKind.PROCESSING
    retryable: bool = False


class DecodeError(InspectionError):
    """Raised when image bytes cannot be decoded."""

    kind = ErrorKind.DECODE


class QualityGateError(InspectionError):
    """Raised when a photo fails the quality gate.

    Attributes:
        reason: Human-readable reason, e.g. "image is blurry (edge_ratio=0.0031)".
    """

    kind = ErrorKind.QUALITY_GATE
    retryable = True

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AlignmentError(InspectionError):
    """Raised when base and current photos cannot be registered."""

    kind = ErrorKind.ALIGNMENT
    retryable = True


class ConfigurationError(InspectionError):
    """Raised when a component is used before it is configured."""

    kind = ErrorKind.NOT_CONFIGURED


class PreconditionError(InspectionError):
    """Raised when buffers of different shapes are combined."""

    kind = ErrorKind.PRECONDITION


class BasePhotoNotFoundError(InspectionError):
    """Raised when a current photo arrives with no stored base photo."""

    kind = ErrorKind.BASE_PHOTO_MISSING
    retryable = True


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception to an ErrorKind.

    Args:
        exc: Exception raised by an inspection call.

    Returns:
        The exception's kind, or PROCESSING for foreign exceptions.
    """
    if isinstance(exc, InspectionError):
        return exc.kind
    return ErrorKind.PROCESSING
