from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from buzzline.game.answer_flow import AnswerFlowEngine
from buzzline.game.collaborators import Playback
from buzzline.game.driver import FrameDriver
from buzzline.game.models import Board, Clue, GameEvent
from buzzline.game.roster import Roster
from buzzline.game.selection import SelectionResolver
from buzzline.logging.game_logger import GameLogger
from buzzline.messaging.event_bus import EventBus


Outcome = tuple[str, dict[str, Any]]


class GameSession:
    """Plays a board to the end: the chooser picks, the clue runs, repeat.

    Both engines run on the driver's scheduler; the session only waits for
    their terminal events. A pick that cannot be resolved falls back to the
    lowest-value clue still on the board.
    """

    source = "session"

    def __init__(
        self,
        roster: Roster,
        board: Board,
        flow: AnswerFlowEngine,
        resolver: SelectionResolver,
        playback: Playback,
        driver: FrameDriver,
        bus: EventBus,
        logger: GameLogger | None = None,
        step_timeout_seconds: float = 120.0,
    ):
        self.roster = roster
        self.board = board
        self.flow = flow
        self.resolver = resolver
        self.playback = playback
        self.driver = driver
        self.bus = bus
        self.logger = logger
        self.step_timeout_seconds = step_timeout_seconds
        self.clues_played = 0

    async def run(self, max_clues: int | None = None) -> dict[str, Any]:
        self.resolver.set_board(self.board)
        self._record(
            "game_started",
            {"players": [player.name for player in self.roster.players], "categories": self.board.category_titles()},
        )
        while not self.board.all_clues_used():
            if max_clues is not None and self.clues_played >= max_clues:
                break
            clue = await self.select_clue()
            if clue is None:
                break
            await self.play_clue(clue)

        summary = {
            "clues_played": self.clues_played,
            "scores": self.roster.scores(),
            "board_cleared": self.board.all_clues_used(),
        }
        self._record("game_over", summary)
        return summary

    async def select_clue(self) -> Clue | None:
        chooser = self.roster.current_chooser()
        outcome = await self._wait_for(
            lambda: self.resolver.start_selection(chooser.name),
            {GameEvent.SELECTION_RESOLVED.value, GameEvent.SELECTION_CANCELLED.value},
        )
        if outcome is None:
            self.resolver.cancel_selection()
            return self.fallback_clue()

        event_type, payload = outcome
        if event_type == GameEvent.SELECTION_RESOLVED.value:
            clue = self.board.get_clue(payload["category_index"], payload["row_index"])
            if clue is not None:
                return clue
        return self.fallback_clue()

    def fallback_clue(self) -> Clue | None:
        for row_index in range(len(self.board.row_values)):
            for category_index in range(len(self.board.categories)):
                clue = self.board.get_clue(category_index, row_index)
                if clue is not None:
                    self._record("fallback_pick", {"category_index": category_index, "row_index": row_index})
                    return clue
        return None

    async def play_clue(self, clue: Clue) -> bool:
        """Run one clue through the answer flow; False if it had to be cut short."""

        def _read_done() -> None:
            if self.flow.clue is clue:
                self.flow.notify_question_read_complete()

        def _start() -> bool:
            self.flow.start_flow(clue)
            try:
                self.playback.speak(clue.question, _read_done)
            except Exception as exc:  # noqa: BLE001
                self._record("collaborator_error", {"step": "read_question", "error": str(exc)})
                _read_done()
            return True

        outcome = await self._wait_for(_start, {GameEvent.FLOW_COMPLETE.value})
        if outcome is None:
            self._record("clue_timeout", {"answer": clue.answer})
            self.flow.end_flow()
        self.clues_played += 1
        return outcome is not None

    async def _wait_for(self, start: Callable[[], bool], event_types: set[str]) -> Outcome | None:
        done = asyncio.Event()
        seen: list[Outcome] = []

        def _on_event(event_type: str, payload: dict[str, Any]) -> None:
            if event_type in event_types and not seen:
                seen.append((event_type, payload))
                done.set()

        unsubscribe = self.bus.subscribe(None, _on_event)
        try:
            if not start():
                return None
            await self.driver.run_until(done, timeout=self.step_timeout_seconds)
        finally:
            unsubscribe()
        return seen[0] if seen else None

    def _record(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.logger is not None:
            self.logger.log_event(event_type, self.source, "playing", payload, game_time=self.driver.scheduler.now)
