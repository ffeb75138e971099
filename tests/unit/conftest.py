from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from buzzline.config.settings import GameConfig
from buzzline.game.answer_flow import AnswerFlowEngine
from buzzline.game.clock import Scheduler
from buzzline.game.models import Board, Category, Clue, Cue
from buzzline.game.roster import Roster
from buzzline.game.selection import SelectionResolver
from buzzline.messaging.event_bus import EventBus


CATEGORY_TITLES = ["HISTORY", "SCIENCE", "WORLD CAPITALS", "POTENT POTABLES", "FAMOUS PAINTERS", "SPORTS"]


@dataclass
class FakeCapture:
    has_device: bool = True
    is_recording: bool = False
    started: int = 0
    cancelled: int = 0
    callbacks: list[Callable[[bytes | None], None]] = field(default_factory=list)

    def start_recording(self) -> None:
        self.is_recording = True

    def start_auto_recording(self, on_complete: Callable[[bytes | None], None]) -> None:
        self.started += 1
        self.is_recording = True
        self.callbacks.append(on_complete)

    def stop_recording(self) -> None:
        self.is_recording = False

    def cancel_recording(self) -> None:
        self.cancelled += 1
        self.is_recording = False

    def finish(self, audio: bytes | None = b"voice") -> None:
        self.is_recording = False
        self.callbacks[-1](audio)


@dataclass
class FakeTranscriber:
    auto_text: str | None = None
    requests: list[tuple[bytes, Callable[[str], None], Callable[[str], None]]] = field(default_factory=list)

    def transcribe(self, audio: bytes, on_success: Callable[[str], None], on_error: Callable[[str], None]) -> None:
        self.requests.append((audio, on_success, on_error))
        if self.auto_text is not None:
            on_success(self.auto_text)

    def succeed(self, text: str) -> None:
        self.requests[-1][1](text)

    def fail(self, reason: str = "service unavailable") -> None:
        self.requests[-1][2](reason)


@dataclass
class FakeJudge:
    verdict: bool | None = None
    requests: list[tuple[str, str, Callable[[bool, str], None]]] = field(default_factory=list)

    def judge(self, transcript: str, correct_answer: str, on_result: Callable[[bool, str], None]) -> None:
        self.requests.append((transcript, correct_answer, on_result))
        if self.verdict is not None:
            on_result(self.verdict, "scripted")

    def answer(self, correct: bool, rationale: str = "scripted") -> None:
        self.requests[-1][2](correct, rationale)


@dataclass
class FakePlayback:
    auto_complete: bool = True
    calls: list[tuple[str, Any]] = field(default_factory=list)
    pending: list[Callable[[], None]] = field(default_factory=list)

    def play_announcement(self, name: str, on_complete: Callable[[], None] | None) -> None:
        self._record("announce", name, on_complete)

    def play_cue(self, cue: Cue, on_complete: Callable[[], None] | None) -> None:
        self._record("cue", cue, on_complete)

    def speak(self, text: str, on_complete: Callable[[], None] | None) -> None:
        self._record("speak", text, on_complete)

    def cues(self) -> list[Cue]:
        return [arg for kind, arg in self.calls if kind == "cue"]

    def spoken(self) -> list[str]:
        return [arg for kind, arg in self.calls if kind == "speak"]

    def complete_pending(self) -> None:
        pending, self.pending = self.pending, []
        for callback in pending:
            callback()

    def _record(self, kind: str, arg: Any, on_complete: Callable[[], None] | None) -> None:
        self.calls.append((kind, arg))
        if on_complete is None:
            return
        if self.auto_complete:
            on_complete()
        else:
            self.pending.append(on_complete)


@dataclass
class FakeLLM:
    response: str | None = None
    error: str | None = None
    requests: list[tuple[str, str]] = field(default_factory=list)
    callbacks: list[tuple[Callable[[str], None], Callable[[str], None]]] = field(default_factory=list)

    def complete(
        self,
        system_prompt: str,
        user_text: str,
        on_success: Callable[[str], None],
        on_error: Callable[[str], None],
    ) -> None:
        self.requests.append((system_prompt, user_text))
        self.callbacks.append((on_success, on_error))
        if self.error is not None:
            on_error(self.error)
        elif self.response is not None:
            on_success(self.response)


@dataclass
class EventRecorder:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def __call__(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event_type]

    def states(self) -> list[str]:
        return [payload["state"] for payload in self.of("state_changed")]


def make_board(titles: list[str] | None = None) -> Board:
    board = Board()
    for title in titles or CATEGORY_TITLES:
        clues = [Clue(question=f"{title} {value}", answer=f"{title.lower()} answer {value}", value=value) for value in board.row_values]
        board.categories.append(Category(title=title, clues=clues))
    return board


def tick_for(scheduler: Scheduler, seconds: float, step: float = 0.05) -> None:
    elapsed = 0.0
    while elapsed < seconds - 1e-9:
        dt = min(step, seconds - elapsed)
        scheduler.tick(dt)
        elapsed += dt


@pytest.fixture
def config() -> GameConfig:
    return GameConfig(player_names=["Ana", "Ben", "Cy"])


@pytest.fixture
def scheduler() -> Scheduler:
    return Scheduler()


@pytest.fixture
def roster(config: GameConfig) -> Roster:
    return Roster(config.player_names)


@pytest.fixture
def board() -> Board:
    return make_board()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    recorder = EventRecorder()
    bus.subscribe(None, recorder)
    return recorder


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def judge() -> FakeJudge:
    return FakeJudge()


@pytest.fixture
def playback() -> FakePlayback:
    return FakePlayback()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def flow(config, scheduler, roster, board, capture, transcriber, judge, playback, bus, recorder) -> AnswerFlowEngine:
    return AnswerFlowEngine(
        config=config,
        scheduler=scheduler,
        roster=roster,
        board=board,
        capture=capture,
        transcriber=transcriber,
        judge=judge,
        playback=playback,
        bus=bus,
    )


@pytest.fixture
def resolver(config, scheduler, board, capture, transcriber, llm, playback, bus, recorder) -> SelectionResolver:
    return SelectionResolver(
        config=config,
        scheduler=scheduler,
        capture=capture,
        transcriber=transcriber,
        llm=llm,
        playback=playback,
        board=board,
        bus=bus,
    )


@pytest.fixture
def advance(scheduler: Scheduler) -> Callable[..., None]:
    def _advance(seconds: float, step: float = 0.05) -> None:
        tick_for(scheduler, seconds, step)

    return _advance


@pytest.fixture
def board_factory() -> Callable[..., Board]:
    return make_board
