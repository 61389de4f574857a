from dataclasses import dataclass, field
from typing import Dict, List, Optional


def watch_key(project_id: str, test_id: str) -> str:
    return f"{project_id}/{test_id}"


@dataclass
class AppState:
    # websockets per "project/test", told when that test's screenshots are saved
    watchers: Dict[str, List] = field(default_factory=dict)

    def watch(self, key: str, ws) -> None:
        self.watchers.setdefault(key, []).append(ws)

    def unwatch(self, key: str, ws) -> None:
        sockets = self.watchers.get(key, [])
        try:
            sockets.remove(ws)
        except ValueError:
            pass
        if not sockets:
            self.watchers.pop(key, None)

    def watchers_for(self, key: str) -> List:
        return list(self.watchers.get(key, []))


_app_state: Optional[AppState] = None


def get_app_state() -> AppState:
    global _app_state
    if _app_state is None:
        _app_state = AppState()
    return _app_state
