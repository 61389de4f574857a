from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..state import get_app_state, watch_key


router = APIRouter()


@router.websocket("/ws/projects/{project_id}/tests/{test_id}")
async def watch_test(ws: WebSocket, project_id: str, test_id: str) -> None:
    """Push ``screenshots.saved`` for one test so other open panes can reload."""
    await ws.accept()
    st = get_app_state()
    key = watch_key(project_id, test_id)
    st.watch(key, ws)
    try:
        while True:
            await ws.receive_text()  # keepalive; client messages are ignored
    except WebSocketDisconnect:
        pass
    finally:
        st.unwatch(key, ws)
