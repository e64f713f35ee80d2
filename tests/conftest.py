"""Shared fakes: a scriptable camera and an in-memory catalog service."""

import asyncio
import json

import httpx
import pytest

from shelfscan.core.camera import CameraDevice
from shelfscan.core.client import CatalogClient
from shelfscan.core.workflow import Workflow, WorkflowConfig

CLEAN_CODE = "9780132350884"


class FakeCamera:
    """Camera backend driven by the test instead of a decoder."""

    def __init__(
        self,
        devices=None,
        list_error=None,
        start_error=None,
        stop_error=None,
        stop_delay=0.0,
    ):
        if devices is None:
            devices = [
                CameraDevice("front-1", "Front Camera"),
                CameraDevice("back-1", "Back Camera (environment)"),
            ]
        self.devices = devices
        self.list_error = list_error
        self.start_error = start_error
        self.stop_error = stop_error
        self.stop_delay = stop_delay
        self.start_gate: asyncio.Event | None = None
        self.started: list[str] = []
        self.stop_calls = 0
        self.streaming = False
        self.config = None
        self._on_detected = None
        self._on_frame_error = None

    async def list_devices(self):
        if self.list_error:
            raise self.list_error
        return list(self.devices)

    async def start(self, device_id, config, on_detected, on_frame_error):
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error:
            raise self.start_error
        if self.streaming:
            raise AssertionError("camera opened twice")
        self.streaming = True
        self.started.append(device_id)
        self.config = config
        self._on_detected = on_detected
        self._on_frame_error = on_frame_error

    async def stop(self):
        self.stop_calls += 1
        if self.stop_delay:
            await asyncio.sleep(self.stop_delay)
        self.streaming = False
        if self.stop_error:
            raise self.stop_error

    def emit(self, text):
        self._on_detected(text)

    def emit_error(self, error="NotFoundException"):
        self._on_frame_error(error)


class CatalogService:
    """Stands in for the remote /receive_isbn and /save_title endpoints."""

    def __init__(self):
        self.titles: dict[str, dict] = {}
        self.lookup_calls: list[str] = []
        self.save_calls: list[dict] = []
        self.lookup_status = 200
        self.save_status = 200
        self.lookup_error: Exception | None = None
        self.save_error: Exception | None = None
        self.lookup_body: bytes | None = None
        self.lookup_delay = 0.0
        self.lookup_gate: asyncio.Event | None = None
        self.save_gate: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if request.url.path == "/receive_isbn":
            self.lookup_calls.append(body["isbn"])
            if self.lookup_gate is not None:
                await self.lookup_gate.wait()
            if self.lookup_delay:
                await asyncio.sleep(self.lookup_delay)
            if self.lookup_error is not None:
                raise self.lookup_error
            if self.lookup_body is not None:
                return httpx.Response(self.lookup_status, content=self.lookup_body)
            return httpx.Response(self.lookup_status, json=self.titles.get(body["isbn"], {}))
        if request.url.path == "/save_title":
            self.save_calls.append(body)
            if self.save_gate is not None:
                await self.save_gate.wait()
            if self.save_error is not None:
                raise self.save_error
            return httpx.Response(self.save_status, json={"status": "ok"})
        return httpx.Response(404, json={"error": "not found"})

    def client(self) -> CatalogClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return CatalogClient(base_url="http://catalog.test", http=http)


async def wait_until(predicate, timeout=1.0):
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


@pytest.fixture
def service():
    svc = CatalogService()
    svc.titles[CLEAN_CODE] = {"title": "Clean Code", "author": "Robert C. Martin"}
    return svc


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def make_workflow(service, camera):
    def _make(**overrides):
        options = {"min_loading": 0.01, "reset_delay": 0.02}
        options.update(overrides)
        return Workflow(service.client(), camera, WorkflowConfig(**options))

    return _make
