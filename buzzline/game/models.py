from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


DEFAULT_ROW_VALUES: tuple[int, ...] = (200, 400, 600, 800, 1000)


class FlowState(str, Enum):
    WAITING_FOR_QUESTION_READ = "waiting_for_question_read"
    WAITING_FOR_BUZZ = "waiting_for_buzz"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    JUDGING = "judging"
    SHOWING_RESULT = "showing_result"
    COMPLETE = "complete"


class Cue(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    ANYONE_ELSE = "anyone_else"
    TIMEOUT = "timeout"


class GameEvent(str, Enum):
    STATE_CHANGED = "state_changed"
    PLAYER_BUZZED = "player_buzzed"
    EARLY_BUZZ = "early_buzz"
    TRANSCRIPT_READY = "transcript_ready"
    JUDGMENT_READY = "judgment_ready"
    FLOW_COMPLETE = "flow_complete"
    QUESTION_TIMER_UPDATE = "question_timer_update"
    QUESTION_TIMER_EXPIRED = "question_timer_expired"
    RESPONSE_TIMER_UPDATE = "response_timer_update"
    RESPONSE_TIMER_EXPIRED = "response_timer_expired"
    SELECTION_PROMPT = "selection_prompt"
    SELECTION_HEARD = "selection_heard"
    SELECTION_RESOLVED = "selection_resolved"
    SELECTION_CANCELLED = "selection_cancelled"


@dataclass(eq=False)
class Clue:
    question: str
    answer: str
    value: int
    used: bool = False


@dataclass
class Category:
    title: str
    clues: list[Clue] = field(default_factory=list)


@dataclass
class Board:
    categories: list[Category] = field(default_factory=list)
    row_values: tuple[int, ...] = DEFAULT_ROW_VALUES

    def category_titles(self) -> list[str]:
        return [category.title for category in self.categories]

    def row_index_for_value(self, value: int) -> int:
        try:
            return self.row_values.index(value)
        except ValueError:
            return -1

    def get_clue(self, category_index: int, row_index: int) -> Clue | None:
        if category_index < 0 or category_index >= len(self.categories):
            return None
        if row_index < 0 or row_index >= len(self.row_values):
            return None
        target_value = self.row_values[row_index]
        for clue in self.categories[category_index].clues:
            if clue.value == target_value and not clue.used:
                return clue
        return None

    def mark_used(self, clue: Clue) -> bool:
        if clue.used:
            return False
        clue.used = True
        return True

    def all_clues_used(self) -> bool:
        return all(clue.used for category in self.categories for clue in category.clues)


@dataclass
class Player:
    index: int
    name: str
    score: int = 0


@dataclass
class LockoutEntry:
    locked: bool = False
    unlock_at: float | None = None


@dataclass
class QuestionTimer:
    duration: float
    remaining: float = 0.0
    paused: bool = False
    running: bool = False

    def start(self) -> None:
        self.remaining = self.duration
        self.paused = False
        self.running = True

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def cancel(self) -> None:
        self.running = False
        self.paused = False


@dataclass
class ResponseTimer:
    duration: float
    remaining: float = 0.0
    running: bool = False

    def start(self) -> None:
        self.remaining = self.duration
        self.running = True

    def cancel(self) -> None:
        self.running = False


@dataclass
class JudgeResult:
    is_correct: bool
    rationale: str = ""


@dataclass(frozen=True)
class SelectionResult:
    category_index: int
    row_index: int
    value: int
    stage: int
