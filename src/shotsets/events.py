import asyncio
import json
import logging
from typing import Any, Dict

from .state import get_app_state

log = logging.getLogger("shotsets.events")


def broadcast(key: str, event: str, payload: Dict[str, Any]) -> None:
    """Send an event to the WebSocket watchers of one test.

    Inside a running loop the sends are scheduled as a task; from a worker
    thread they are run through anyio on the loop that owns the sockets.
    """
    st = get_app_state()
    sockets = st.watchers_for(key)
    if not sockets:
        return
    data = json.dumps({"event": event, "data": payload})

    async def _send_all() -> None:
        for ws in sockets:
            try:
                await ws.send_text(data)
            except Exception:
                log.debug("Dropping closed watcher for %s", key)
                st.unwatch(key, ws)

    try:
        loop = asyncio.get_running_loop()
        loop.create_task(_send_all())
    except RuntimeError:
        import anyio

        anyio.from_thread.run(_send_all)
