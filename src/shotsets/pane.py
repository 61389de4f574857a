from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from .capture import DeviceBroker
from .entities import ScreenshotSet
from .gateway import PersistenceGateway
from .model import WAITING_DELAY, ScreenshotsModel
from .ui_state import PlatformsSource, UIState

log = logging.getLogger("shotsets.pane")


class ScreenshotPane:
    """Screenshot editor for one test: a model and a platform filter kept together."""

    def __init__(
        self,
        test_id: str,
        gateway: PersistenceGateway,
        devices: Optional[DeviceBroker] = None,
        platforms_source: Optional[PlatformsSource] = None,
        supported_platforms: Optional[List[str]] = None,
        waiting_delay: float = WAITING_DELAY,
    ) -> None:
        self.test_id = test_id
        self.screenshots: Optional[ScreenshotsModel] = ScreenshotsModel(
            test_id, gateway, devices=devices, waiting_delay=waiting_delay
        )
        self.ui_state: Optional[UIState] = UIState(platforms_source, supported=supported_platforms)

    @property
    def destroyed(self) -> bool:
        return self.screenshots is None

    async def open(self) -> None:
        if self.destroyed:
            return
        await asyncio.gather(self.screenshots.load_screenshots(), self.ui_state.update_supported_platforms())

    async def restore(self) -> None:
        """Refresh both screenshots and platforms after the pane comes back into view."""
        await self.open()

    def get_screenshots(self) -> List[ScreenshotSet]:
        if self.destroyed:
            return []
        return self.screenshots.get_screenshots()

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.screenshots.remove_all_listeners()
        self.ui_state.remove_all_listeners()
        self.screenshots = None
        self.ui_state = None
        log.debug("Destroyed screenshot pane for test %s", self.test_id)
