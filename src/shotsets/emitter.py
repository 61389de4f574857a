from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

log = logging.getLogger("shotsets.emitter")

Callback = Callable[..., Any]


@dataclass
class Subscription:
    emitter: "EventEmitter"
    event: str
    callback: Callback

    def cancel(self) -> None:
        self.emitter.off(self.event, self.callback)


class EventEmitter:
    """Named events with explicit register/unregister/notify."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callback]] = {}

    def on(self, event: str, callback: Callback) -> Subscription:
        self._listeners.setdefault(event, []).append(callback)
        return Subscription(self, event, callback)

    def off(self, event: str, callback: Callback) -> None:
        callbacks = self._listeners.get(event)
        if not callbacks:
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            pass
        if not callbacks:
            del self._listeners[event]

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(cbs) for cbs in self._listeners.values())

    def emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(*args)
            except Exception:
                log.exception("Listener for %r failed", event)


class Listener:
    """Tracks subscriptions made on other emitters so they can be dropped together."""

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []

    def listen_to(self, emitter: EventEmitter, event: str, callback: Callback) -> Subscription:
        sub = emitter.on(event, callback)
        self._subscriptions.append(sub)
        return sub

    def stop_listening(self) -> None:
        subs, self._subscriptions = self._subscriptions, []
        for sub in subs:
            sub.cancel()
