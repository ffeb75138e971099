from __future__ import annotations

from buzzline.game.clock import ScheduledCall, Scheduler
from buzzline.game.models import LockoutEntry


class LockoutTracker:
    def __init__(self, scheduler: Scheduler, player_count: int = 0):
        self.scheduler = scheduler
        self.entries: dict[int, LockoutEntry] = {}
        self._unlocks: dict[int, ScheduledCall] = {}
        self.reset(player_count)

    def reset(self, player_count: int) -> None:
        self.cancel_all()
        self.entries = {index: LockoutEntry() for index in range(player_count)}

    def cancel_all(self) -> None:
        for call in self._unlocks.values():
            call.cancel()
        self._unlocks = {}

    def is_locked(self, index: int) -> bool:
        entry = self.entries.get(index)
        return entry is not None and entry.locked

    def lock_for(self, index: int, duration: float) -> bool:
        entry = self.entries.get(index)
        if entry is None or entry.locked:
            return False
        entry.locked = True
        entry.unlock_at = self.scheduler.now + duration
        self._unlocks[index] = self.scheduler.call_later(duration, lambda: self._release(index))
        return True

    def lock_permanently(self, index: int) -> None:
        entry = self.entries.get(index)
        if entry is None:
            return
        self._cancel_unlock(index)
        entry.locked = True
        entry.unlock_at = None

    def clear_timed(self) -> list[int]:
        cleared: list[int] = []
        for index, entry in self.entries.items():
            if entry.locked and entry.unlock_at is not None:
                self._cancel_unlock(index)
                entry.locked = False
                entry.unlock_at = None
                cleared.append(index)
        return cleared

    def any_unlocked(self) -> bool:
        return any(not entry.locked for entry in self.entries.values())

    def locked_indices(self) -> list[int]:
        return [index for index, entry in self.entries.items() if entry.locked]

    def _release(self, index: int) -> None:
        self._unlocks.pop(index, None)
        entry = self.entries.get(index)
        if entry is None or entry.unlock_at is None:
            return
        entry.locked = False
        entry.unlock_at = None

    def _cancel_unlock(self, index: int) -> None:
        call = self._unlocks.pop(index, None)
        if call is not None:
            call.cancel()
