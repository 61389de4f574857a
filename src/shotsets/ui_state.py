from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from .config import DEFAULT_PLATFORMS
from .emitter import EventEmitter

log = logging.getLogger("shotsets.ui_state")

PlatformsSource = Callable[[], Awaitable[Sequence[str]]]


class UIState(EventEmitter):
    """Which platform column is showing, out of the platforms the app builds for.

    Emits ``changed({"platforms": [...]})`` whenever the visible list may
    have changed.
    """

    def __init__(self, platforms_source: Optional[PlatformsSource] = None, supported: Optional[Sequence[str]] = None) -> None:
        super().__init__()
        self.platforms_source = platforms_source
        self._supported: List[str] = list(supported or DEFAULT_PLATFORMS)
        self._single: Optional[str] = None

    @property
    def selected(self) -> Optional[str]:
        return self._single

    @property
    def platforms(self) -> List[str]:
        return [self._single] if self._single else list(self._supported)

    def initial(self) -> List[str]:
        return list(self._supported)

    def toggle(self, platform: str) -> None:
        # Clicking the selected platform goes back to showing all of them
        self._single = None if self._single == platform else platform
        self.update()

    def update(self) -> None:
        self.emit("changed", {"platforms": self.platforms})

    async def update_supported_platforms(self) -> None:
        if self.platforms_source is not None:
            platforms = list(await self.platforms_source())
            if platforms:
                self._supported = sorted(platforms)
            else:
                log.debug("No compiled platforms reported; keeping %s", self._supported)
        self.update()
