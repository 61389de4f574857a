import asyncio
import base64
import copy
import itertools
from typing import Any, Dict, List, Optional

import pytest

from shotsets.emitter import EventEmitter
from shotsets.entities import make_set
from shotsets.errors import TransportError
from shotsets.gateway import encode_collection


PNG_1X1 = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAwMCAO7+fJ8AAAAASUVORK5CYII="
)
PNG_OTHER = b"\x89PNG\r\n\x1a\n" + b"not-really-pixels"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def png() -> bytes:
    return PNG_1X1


@pytest.fixture
def png_other() -> bytes:
    return PNG_OTHER


class FakeDevice:
    """Plays back a list of (event, args) on the loop after each request."""

    def __init__(self, plan: Optional[List[tuple]] = None) -> None:
        self.events = EventEmitter()
        self.plan = list(plan or [])
        self.requests = 0
        self.disconnects = 0

    def request_screenshot(self) -> None:
        self.requests += 1
        loop = asyncio.get_running_loop()
        for event, args in self.plan:
            loop.call_soon(self.events.emit, event, *args)

    def disconnect(self) -> None:
        self.disconnects += 1


class FakeGateway:
    """In-memory backend that assigns ids on save like the real one."""

    def __init__(self, sets: Optional[List[Dict[str, Any]]] = None) -> None:
        self.sets = sets or []
        self.saves: List[tuple] = []
        self.fail_load: Optional[str] = None
        self.fail_save: Optional[str] = None
        self.delay = 0.0
        self._ids = itertools.count(1)

    async def load(self, test_id):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_load:
            raise TransportError(self.fail_load)
        return [make_set(s) for s in copy.deepcopy(self.sets)]

    async def save(self, test_id, collection):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_save:
            raise TransportError(self.fail_save)
        screenshots, blobs = encode_collection(collection)
        self.saves.append((screenshots, blobs))
        stored = []
        for shot in screenshots:
            files = {}
            for platform, cell in shot["files"].items():
                fid = cell.get("id") or f"sf_{next(self._ids)}"
                files[platform] = {"id": fid, "src": f"/api/screenshots/files/{fid}"}
            stored.append({"id": shot.get("id") or f"ss_{next(self._ids)}", "name": shot["name"], "files": files})
        self.sets = stored
        return {"saved": len(stored)}


class Recorder:
    def __init__(self, emitter: EventEmitter, *events: str) -> None:
        self.calls: List[tuple] = []
        for event in events:
            emitter.on(event, lambda *args, _event=event: self.calls.append((_event, args)))

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def count(self, event: str) -> int:
        return self.names().count(event)

    def last(self, event: str) -> tuple:
        return [args for name, args in self.calls if name == event][-1]


ALL_EVENTS = ("changed", "progress", "disable", "enable", "error", "saved", "waiting")


@pytest.fixture
def make_device():
    return FakeDevice


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def record():
    def _record(emitter, *events):
        return Recorder(emitter, *(events or ALL_EVENTS))

    return _record
