"""Camera capture session: device pick, decode stream, one-shot acceptance."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import structlog

from .errors import CameraStartError, NoCameraError
from .isbn import normalize_scanned
from .models import CameraStatus

log = structlog.get_logger()

ENUMERATION_FAILED_MESSAGE = "Could not access camera."


@dataclass(frozen=True)
class CameraDevice:
    id: str
    label: str = ""


@dataclass(frozen=True)
class ScanConfig:
    fps: int = 10
    box_width: int = 250
    box_height: int = 150


class CameraBackend(Protocol):
    """What the engine needs from a camera + barcode decoder.

    The backend calls on_detected(text) for every decoded frame and
    on_frame_error(error) for frames it could not decode, synchronously
    from its own decode loop.
    """

    async def list_devices(self) -> list[CameraDevice]: ...

    async def start(
        self,
        device_id: str,
        config: ScanConfig,
        on_detected: Callable[[str], None],
        on_frame_error: Callable[[object], None],
    ) -> None: ...

    async def stop(self) -> None: ...


def pick_device(devices: list[CameraDevice]) -> CameraDevice:
    """Prefer a rear-facing camera, else the first one listed."""
    for device in devices:
        if "back" in (device.label or "").lower():
            return device
    if devices:
        return devices[0]
    raise NoCameraError()


class CaptureSession:
    """One camera acquisition, from device pick to release.

    Idle -> Initializing -> (Error | Scanning) -> Stopped. A session never
    returns to Scanning; open a new one instead. The first detection that
    normalizes to an ISBN disarms the session, stops the stream and only
    then hands the ISBN to on_accepted.
    """

    def __init__(
        self,
        backend: CameraBackend,
        on_accepted: Callable[[str], Awaitable[None]],
        config: ScanConfig | None = None,
        on_status: Callable[[CameraStatus, str], None] | None = None,
    ) -> None:
        self.backend = backend
        self.on_accepted = on_accepted
        self.config = config or ScanConfig()
        self.on_status = on_status
        self.status = CameraStatus.IDLE
        self.message = ""
        self.device: CameraDevice | None = None
        self._armed = False
        self._streaming = False
        self._disposed = False
        self._release_task: asyncio.Task | None = None
        self.accept_task: asyncio.Task | None = None
        # Set whenever this session holds no device and is not starting one.
        self._device_free = asyncio.Event()
        self._device_free.set()

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def released(self) -> None:
        """Wait until the camera device is no longer held by this session."""
        await self._device_free.wait()

    def _set_status(self, status: CameraStatus, message: str = "") -> None:
        self.status = status
        self.message = message
        if self.on_status and not self._disposed:
            self.on_status(status, message)

    async def start(self, wait_for: Awaitable[None] | None = None) -> None:
        """Pick a device and start decoding. Failures end in the Error state.

        wait_for is awaited first; pass the previous session's released()
        so two sessions never hold the device at once.
        """
        if self.status is not CameraStatus.IDLE:
            raise RuntimeError(f"capture session already {self.status.value}")
        self._set_status(CameraStatus.INITIALIZING, "Initializing camera...")
        if wait_for is not None:
            await wait_for
        if self._disposed:
            return

        self._device_free.clear()
        try:
            await self._open()
        finally:
            if not self._streaming:
                self._device_free.set()

    async def _open(self) -> None:
        try:
            devices = await self.backend.list_devices()
            device = pick_device(devices)
        except Exception as e:
            self._fail(str(e) or ENUMERATION_FAILED_MESSAGE, e)
            return
        if self._disposed:
            return

        self.device = device
        log.debug("camera_selected", device_id=device.id, label=device.label)
        try:
            await self.backend.start(device.id, self.config, self._on_detected, self._on_frame_error)
        except Exception as e:
            self._fail(str(CameraStartError()), e)
            return

        self._streaming = True
        if self._disposed:
            # Disposed while the backend was still starting.
            await self._release()
            return
        self._armed = True
        self._set_status(CameraStatus.SCANNING)
        log.info("camera_scanning", device_id=device.id, fps=self.config.fps)

    def _fail(self, message: str, error: Exception) -> None:
        log.warning("camera_error", error=str(error), error_type=type(error).__name__)
        if self._disposed:
            return
        self._set_status(CameraStatus.ERROR, message)

    def _on_frame_error(self, error: object) -> None:
        # Most frames hold no barcode.
        pass

    def _on_detected(self, text: str) -> None:
        if not self._armed:
            return
        isbn = normalize_scanned(text)
        if isbn is None:
            return
        self._armed = False
        log.info("isbn_detected", isbn=isbn, raw=text)
        self.accept_task = asyncio.get_running_loop().create_task(self._accept(isbn))

    async def _accept(self, isbn: str) -> None:
        release = self._release()
        if release is not None:
            await release
        if self._disposed:
            return
        self._disposed = True
        self.status = CameraStatus.STOPPED
        await self.on_accepted(isbn)

    def _release(self) -> asyncio.Task | None:
        if self._release_task is None and self._streaming:
            self._release_task = asyncio.get_running_loop().create_task(self._stop_backend())
        return self._release_task

    async def _stop_backend(self) -> None:
        try:
            await self.backend.stop()
        except Exception as e:
            log.warning("camera_stop_failed", error=str(e))
        finally:
            self._streaming = False
            self._device_free.set()
            log.debug("camera_released", device_id=self.device.id if self.device else None)

    def dispose(self) -> asyncio.Task | None:
        """Tear the session down now. Never raises.

        Returns the task releasing the device, if a stream was running.
        """
        if self._disposed:
            return self._release_task
        self._disposed = True
        self._armed = False
        self.status = CameraStatus.STOPPED
        return self._release()
