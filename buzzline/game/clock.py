from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field


# Absorbs float drift when due times are summed from many frame deltas.
_DUE_EPSILON = 1e-9


@dataclass
class ScheduledCall:
    due: float
    seq: int
    callback: Callable[[], None] = field(repr=False)
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class Scheduler:
    """Cooperative tick source shared by the engines.

    Time only advances through ``tick``. Delayed callbacks fire in due-time
    order (ties in scheduling order), then per-tick listeners receive the
    frame delta. A callback scheduled while ticking fires in the same tick
    if it is already due.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._calls: list[ScheduledCall] = []
        self._tick_listeners: list[Callable[[float], None]] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        self._seq += 1
        call = ScheduledCall(due=self.now + max(0.0, delay), seq=self._seq, callback=callback)
        self._calls.append(call)
        return call

    def add_tick_listener(self, listener: Callable[[float], None]) -> Callable[[], None]:
        self._tick_listeners.append(listener)

        def _remove() -> None:
            if listener in self._tick_listeners:
                self._tick_listeners.remove(listener)

        return _remove

    def pending_count(self) -> int:
        return sum(1 for call in self._calls if call.pending)

    def tick(self, dt: float) -> None:
        if dt < 0:
            raise ValueError("Scheduler cannot tick backwards")
        self.now += dt
        while True:
            due = [call for call in self._calls if call.pending and call.due <= self.now + _DUE_EPSILON]
            if not due:
                break
            call = min(due, key=lambda c: (c.due, c.seq))
            call.fired = True
            call.callback()
        self._calls = [call for call in self._calls if call.pending]
        for listener in list(self._tick_listeners):
            listener(dt)
