"""Camera backend whose barcode decoder runs in the operator's browser."""

from __future__ import annotations

from typing import Callable

import structlog

from ..core.camera import CameraDevice, ScanConfig
from ..core.errors import CameraError, CameraStartError

log = structlog.get_logger()


class BrowserCamera:
    """Relays the browser's device list and decoded frames to a capture session.

    The page enumerates cameras itself and posts them when the scanner
    opens; every decoded frame is posted back and pushed through here.
    """

    def __init__(self) -> None:
        self.devices: list[CameraDevice] = []
        self.enumeration_error: str | None = None
        self.active_device: str | None = None
        self.config: ScanConfig | None = None
        self._on_detected: Callable[[str], None] | None = None
        self._on_frame_error: Callable[[object], None] | None = None

    def announce(self, devices: list[dict], error: str | None = None) -> None:
        self.devices = [
            CameraDevice(id=str(d.get("id", "")), label=str(d.get("label", "")))
            for d in devices
            if d.get("id")
        ]
        self.enumeration_error = error

    async def list_devices(self) -> list[CameraDevice]:
        if self.enumeration_error:
            raise CameraError(self.enumeration_error)
        return list(self.devices)

    async def start(
        self,
        device_id: str,
        config: ScanConfig,
        on_detected: Callable[[str], None],
        on_frame_error: Callable[[object], None],
    ) -> None:
        if self.active_device is not None:
            raise CameraStartError("Camera is already in use.")
        if device_id not in {d.id for d in self.devices}:
            raise CameraStartError()
        self.active_device = device_id
        self.config = config
        self._on_detected = on_detected
        self._on_frame_error = on_frame_error

    async def stop(self) -> None:
        self.active_device = None
        self._on_detected = None
        self._on_frame_error = None

    @property
    def streaming(self) -> bool:
        return self.active_device is not None

    def push(self, text: str) -> bool:
        """Forward one decoded frame. Returns False if no stream is running."""
        if self._on_detected is None:
            log.debug("detection_without_stream", text=text)
            return False
        self._on_detected(text)
        return True

    def push_error(self, error: object) -> None:
        if self._on_frame_error is not None:
            self._on_frame_error(error)
