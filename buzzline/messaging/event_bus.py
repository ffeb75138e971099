from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any


Handler = Callable[[str, dict[str, Any]], None]


class EventBus:
    """Synchronous observer registry.

    Handlers run in subscription order on the publishing thread, before
    ``publish`` returns. Wildcard handlers (``event_type=None``) run after
    the typed ones. A handler that raises does not stop delivery to the
    rest; ``publish`` returns the collected errors to the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[str | None, list[Handler]] = defaultdict(list)
        self.published = 0
        self.handler_errors = 0

    def subscribe(self, event_type: str | None, handler: Handler) -> Callable[[], None]:
        key = _key(event_type)
        self._handlers[key].append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(key, handler)

        return _unsubscribe

    def unsubscribe(self, event_type: str | None, handler: Handler) -> None:
        handlers = self._handlers.get(_key(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_type: str, payload: dict[str, Any] | None = None) -> list[Exception]:
        key = _key(event_type)
        body = payload or {}
        self.published += 1
        errors: list[Exception] = []
        handlers = list(self._handlers.get(key, [])) + list(self._handlers.get(None, []))
        for handler in handlers:
            try:
                handler(key, body)
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)
        self.handler_errors += len(errors)
        return errors


def _key(event_type: Any) -> str | None:
    if event_type is None:
        return None
    return str(getattr(event_type, "value", event_type))
