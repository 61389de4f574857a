from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from . import capture
from .capture import DeviceBroker
from .emitter import EventEmitter
from .entities import Blob, ScreenshotFile, ScreenshotSet, data_uri
from .errors import CaptureError, ScreenshotError, ValidationError
from .gateway import PersistenceGateway

log = logging.getLogger("shotsets.model")

WAITING_DELAY = 0.5

ProgressMap = Dict[Optional[int], Dict[str, float]]


@dataclass
class Placement:
    row: ScreenshotSet
    platform: str
    file: ScreenshotFile
    previous: Optional[ScreenshotFile]
    appended: bool = False


@dataclass
class ErrorReport:
    message: str
    error_for: str

    def to_dict(self) -> Dict[str, str]:
        return {"message": self.message, "errorFor": self.error_for}


class ScreenshotsModel(EventEmitter):
    """Screenshot sets for one test, plus the edits not yet saved.

    Events:
        ``changed(screenshots)`` when sets or files are added or modified
        ``progress(progress)`` as a capture advances or finishes
        ``disable()`` / ``enable()`` around a capture or save
        ``error(ErrorReport)`` when an operation fails
        ``saved(True)`` once the backend accepted a save
        ``waiting()`` when a load or save is slow

    Captures and saves are serialized by a single busy flag; anything
    mutating that arrives while busy is dropped, not queued. Loading is
    always allowed.
    """

    def __init__(
        self,
        test_id: str,
        gateway: PersistenceGateway,
        devices: Optional[DeviceBroker] = None,
        waiting_delay: float = WAITING_DELAY,
    ) -> None:
        super().__init__()
        self.test_id = test_id
        self.gateway = gateway
        self.devices = devices
        self.waiting_delay = waiting_delay
        self._screenshots: List[ScreenshotSet] = []
        self._baseline: List[ScreenshotSet] = []
        self._progress: ProgressMap = {}
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def progress(self) -> ProgressMap:
        return {index: dict(cells) for index, cells in self._progress.items()}

    def get_screenshots(self) -> List[ScreenshotSet]:
        return list(self._screenshots)

    def changed_sets(self) -> List[Tuple[int, ScreenshotSet]]:
        """Rows with edits made since the last load."""
        return [(i, shot) for i, shot in enumerate(self._screenshots) if shot.is_dirty]

    def has_unsaved_changes(self) -> bool:
        return len(self._screenshots) != len(self._baseline) or bool(self.changed_sets())

    # -- internals -------------------------------------------------------

    def _row(self, index: Optional[int]) -> Optional[ScreenshotSet]:
        if index is None or not 0 <= index < len(self._screenshots):
            return None
        return self._screenshots[index]

    def _place(self, index: Optional[int], platform: str, files: Sequence[ScreenshotFile]) -> List[Placement]:
        """Put files[i] in row index+i, appending new rows once past the end.

        Returns what each file displaced so the placement can be undone.
        """
        placed: List[Placement] = []
        for i, new_file in enumerate(files):
            row = None if index is None else self._row(index + i)
            if row is None:
                for rest in files[i:]:
                    rest.changed = True
                    shot = ScreenshotSet(files={platform: rest}, changed=True)
                    self._screenshots.append(shot)
                    placed.append(Placement(shot, platform, rest, None, appended=True))
                return placed
            previous = row.files.get(platform)
            # Keep the server id so the backend treats this as a replacement
            new_file.id = previous.id if previous is not None else None
            new_file.changed = True
            row.files[platform] = new_file
            placed.append(Placement(row, platform, new_file, previous))
        return placed

    def _unplace(self, placed: Sequence[Placement]) -> None:
        # Only undo cells that still hold what was placed; a reload may have replaced them
        for p in reversed(placed):
            if p.row.files.get(p.platform) is not p.file:
                continue
            if p.appended:
                if any(shot is p.row for shot in self._screenshots):
                    self._screenshots = [shot for shot in self._screenshots if shot is not p.row]
            elif p.previous is None:
                del p.row.files[p.platform]
            else:
                p.row.files[p.platform] = p.previous

    def _set_busy(self, busy: bool) -> None:
        self._busy = busy
        self.emit("disable" if busy else "enable")

    def _set_progress(self, index: Optional[int], platform: str, percent: float) -> None:
        self._progress.setdefault(index, {})[platform] = percent
        self.emit("progress", self.progress)

    def _clear_progress(self, index: Optional[int], platform: str) -> None:
        cells = self._progress.get(index)
        if cells is not None:
            cells.pop(platform, None)
            if not cells:
                del self._progress[index]
        self.emit("progress", self.progress)

    def _start_waiting(self) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(self.waiting_delay, self.emit, "waiting")

    def _report(self, error: Exception, error_for: str) -> None:
        log.warning("Failed to %s for test %s: %s", error_for, self.test_id, error)
        self.emit("error", ErrorReport(message=str(error), error_for=error_for))

    # -- operations ------------------------------------------------------

    async def add_uploaded_files(self, files: Sequence[Blob], index: Optional[int], platform: str) -> None:
        """Add PNG files to the collection for ``platform``.

        With ``index=None`` every file becomes a new, unnamed set. Otherwise
        file ``i`` goes into row ``index + i``; files that run past the end
        are appended as new sets. ``changed`` fires once, after every
        preview has been read.
        """
        if self._busy:
            return
        files = list(files)
        if not all(f.is_image for f in files):
            self._report(ValidationError("screenshots must be PNG files."), "add files")
            return

        # Rows are addressed now, before any await, so a concurrent save or load sees them
        new_files = [ScreenshotFile(pending_blob=blob, is_new=True) for blob in files]
        placed = self._place(index, platform, new_files)

        async def read(screenshot: ScreenshotFile) -> None:
            blob = screenshot.pending_blob
            try:
                data = await blob.read()
            except OSError as e:
                raise ValidationError(f"could not read {blob.name}: {e.strerror or e}") from e
            screenshot.pending_blob = Blob(name=blob.name, content_type=blob.content_type, data=data)
            screenshot.src = data_uri(data, blob.content_type)

        results = await asyncio.gather(*(read(f) for f in new_files), return_exceptions=True)
        for result in results:
            if isinstance(result, ScreenshotError):
                self._unplace(placed)
                self._report(result, "add files")
                return
            if isinstance(result, BaseException):
                raise result
        self.emit("changed", self.get_screenshots())

    async def take_screenshot(self, index: Optional[int], platform: str) -> None:
        if self._busy:
            return
        self._set_busy(True)
        self._set_progress(index, platform, 0)
        try:
            if self.devices is None:
                raise CaptureError("No device available.")
            screenshot = await capture.take_screenshot(
                self.devices, lambda percent: self._set_progress(index, platform, percent)
            )
            self._place(index, platform, [screenshot])
            self.emit("changed", self.get_screenshots())
        except ScreenshotError as e:
            self._report(e, "take screenshot")
        finally:
            self._clear_progress(index, platform)
            self._set_busy(False)

    async def load_screenshots(self) -> None:
        waiting = self._start_waiting()
        try:
            result = await self.gateway.load(self.test_id)
        except ScreenshotError as e:
            self._report(e, "get screenshots")
            return
        finally:
            waiting.cancel()
        self._screenshots = list(result)
        self._baseline = [shot.clone() for shot in result]
        log.debug("Loaded %d screenshot sets for test %s", len(result), self.test_id)
        self.emit("changed", self.get_screenshots())

    def delete_file(self, index: int, platform: str) -> None:
        if self._busy:
            return
        row = self._row(index)
        if row is None:
            return
        current = row.files.get(platform)
        if current is None or current.is_empty:
            return
        row.files[platform] = ScreenshotFile(is_new=True, changed=True)
        self.emit("changed", self.get_screenshots())

    def set_name(self, index: int, name: str) -> None:
        """Rename a row.

        ``changed`` is decided against the baseline row at the same position,
        so inserting rows above an edited one can misreport it.
        """
        if self._busy or not isinstance(name, str):
            return
        row = self._row(index)
        if row is None:
            return
        original = self._baseline[index] if index < len(self._baseline) else None
        row.name = name
        row.changed = original is None or name != original.name
        self.emit("changed", self.get_screenshots())

    async def save(self) -> None:
        if self._busy:
            return
        self._set_busy(True)
        waiting = self._start_waiting()
        try:
            await self.gateway.save(self.test_id, self.get_screenshots())
            self.emit("saved", True)
            await self.load_screenshots()
        except ScreenshotError as e:
            self._report(e, "save screenshots")
        finally:
            waiting.cancel()
            self._set_busy(False)
