from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .emitter import EventEmitter, Listener
from .entities import ACCEPTED_CONTENT_TYPE, Blob, ScreenshotFile, data_uri
from .errors import CaptureError

log = logging.getLogger("shotsets.capture")

ProgressCallback = Callable[[float], None]


class Device(Protocol):
    """A connected watch or emulator.

    Emits ``screenshot:progress(received, expected)``,
    ``screenshot:complete(png_bytes)``, ``screenshot:failed(message)`` and
    ``close()`` on ``events``.
    """

    events: EventEmitter

    def request_screenshot(self) -> object: ...

    def disconnect(self) -> object: ...


@dataclass
class AcquiredDevice:
    device: Device
    virtual: bool = False


class DeviceBroker(Protocol):
    async def get_device(self) -> AcquiredDevice: ...


class StaticDeviceBroker:
    """Hands out one already-connected device."""

    def __init__(self, device: Optional[Device] = None, virtual: bool = False) -> None:
        self.device = device
        self.virtual = virtual

    async def get_device(self) -> AcquiredDevice:
        if self.device is None:
            raise CaptureError("No device connected.")
        return AcquiredDevice(self.device, self.virtual)


def percentage(received: float, expected: float) -> float:
    # Devices may report expected=0 before the size is known
    if not expected or expected <= 0:
        return 0.0
    return max(0.0, min(100.0, (received / expected) * 100.0))


async def _maybe_await(result: object) -> None:
    if inspect.isawaitable(result):
        await result


class CaptureSession:
    """One screenshot request against a device.

    States go ``requesting`` -> ``complete`` | ``failed`` | ``disconnected``.
    Every subscription made on the device is dropped before ``run`` returns or
    raises. Physical devices are disconnected afterwards; virtual ones stay up.
    """

    def __init__(self, acquired: AcquiredDevice, on_progress: Optional[ProgressCallback] = None) -> None:
        self.acquired = acquired
        self.on_progress = on_progress
        self.state = "idle"

    async def run(self) -> ScreenshotFile:
        device = self.acquired.device
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future = loop.create_future()
        listener = Listener()

        def settle(state: str, result: object = None, error: Optional[Exception] = None) -> None:
            if outcome.done():
                return
            self.state = state
            if error is not None:
                outcome.set_exception(error)
            else:
                outcome.set_result(result)

        def on_progress(received: float, expected: float) -> None:
            if self.on_progress is not None and not outcome.done():
                self.on_progress(percentage(received, expected))

        def on_complete(image: bytes) -> None:
            blob = Blob(name="screenshot.png", content_type=ACCEPTED_CONTENT_TYPE, data=image)
            settle("complete", ScreenshotFile(src=data_uri(image), pending_blob=blob, is_new=True, changed=True))

        def on_failed(error: object) -> None:
            settle("failed", error=CaptureError(f"Screenshot failed: {getattr(error, 'message', error)}"))

        def on_close() -> None:
            settle("disconnected", error=CaptureError("Disconnected from device."))

        listener.listen_to(device.events, "close", on_close)
        listener.listen_to(device.events, "screenshot:failed", on_failed)
        listener.listen_to(device.events, "screenshot:progress", on_progress)
        listener.listen_to(device.events, "screenshot:complete", on_complete)

        self.state = "requesting"
        try:
            try:
                await _maybe_await(device.request_screenshot())
            except CaptureError as e:
                settle("failed", error=e)
            except (OSError, RuntimeError) as e:
                settle("failed", error=CaptureError(f"Screenshot failed: {e}"))
            return await outcome
        finally:
            listener.stop_listening()
            if self.state != "disconnected" and not self.acquired.virtual:
                await self._release(device)
            log.debug("Capture session finished in state %s", self.state)

    async def _release(self, device: Device) -> None:
        try:
            await _maybe_await(device.disconnect())
        except (OSError, RuntimeError):
            log.warning("Failed to disconnect device after capture", exc_info=True)


async def take_screenshot(broker: DeviceBroker, on_progress: Optional[ProgressCallback] = None) -> ScreenshotFile:
    """Acquire the current device from ``broker`` and capture one screenshot."""
    acquired = await broker.get_device()
    return await CaptureSession(acquired, on_progress).run()
