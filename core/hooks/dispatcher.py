# core/hooks/dispatcher.py
from __future__ import annotations
from typing import Any, Callable, Dict, List
import structlog

log = structlog.get_logger()

class EventControl:
    """Per-dispatch flags a handler can set on the event it is looking at."""
    __slots__ = ("propagation_stopped", "default_prevented")

    def __init__(self):
        self.propagation_stopped = False
        self.default_prevented = False

    def stop_propagation(self) -> None:
        self.propagation_stopped = True

    def prevent_default(self) -> None:
        self.default_prevented = True

Handler = Callable[[Any, EventControl], None]

class EventDispatcher:
    """
    In-process event source: subscribe/unsubscribe handlers per event type.
    - Handlers run in subscription order, on the caller's thread.
    - A handler that stops propagation hides the event from later handlers.
    - A failing handler is logged; delivery to the rest continues.
    """
    def __init__(self, name: str = "default"):
        self.name = name
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, ()))

    def dispatch(self, event_type: str, event: Any) -> EventControl:
        ctl = EventControl()
        # copy: handlers may (un)subscribe while we iterate
        for handler in list(self._handlers.get(event_type, ())):
            try:
                handler(event, ctl)
            except Exception as e:
                log.warning("dispatch.handler.error", source=self.name, event_type=event_type, err=str(e))
            if ctl.propagation_stopped:
                break
        return ctl

    def __repr__(self) -> str:
        return f"<EventDispatcher {self.name}>"
