"""Error taxonomy for the scan-to-catalog workflow."""

from __future__ import annotations


class ShelfscanError(Exception):
    """Base class for every workflow error."""


class ValidationError(ShelfscanError):
    """A required record field is missing or malformed before saving."""


class LookupFailure(ShelfscanError):
    """The metadata lookup failed (network, HTTP status or body)."""


class SaveFailure(ShelfscanError):
    """The catalog service rejected or never acknowledged a save."""


class CameraError(ShelfscanError):
    """Camera enumeration or start failed."""


class NoCameraError(CameraError):
    def __init__(self, message: str = "No camera found. Please grant camera permissions.") -> None:
        super().__init__(message)


class CameraStartError(CameraError):
    def __init__(self, message: str = "Failed to start the camera. Please check permissions.") -> None:
        super().__init__(message)
