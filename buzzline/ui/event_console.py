from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from buzzline.game.clock import Scheduler
from buzzline.game.models import Cue, GameEvent
from buzzline.game.roster import Roster
from buzzline.messaging.event_bus import EventBus


QUIET_EVENTS = {GameEvent.QUESTION_TIMER_UPDATE.value, GameEvent.RESPONSE_TIMER_UPDATE.value}

CUE_LINES: dict[Cue, str] = {
    Cue.CORRECT: "Correct!",
    Cue.INCORRECT: "Sorry, no.",
    Cue.ANYONE_ELSE: "Anyone else?",
    Cue.TIMEOUT: "Time's up.",
}


@dataclass
class EventConsole:
    roster: Roster
    max_lines: int = 12
    history_lines: int = 500
    event_lines: list[str] = field(default_factory=list)
    state_snapshot: dict[str, Any] = field(default_factory=dict)
    question_remaining: float | None = None
    response_remaining: float | None = None

    def attach(self, bus: EventBus) -> Callable[[], None]:
        return bus.subscribe(None, self.on_event)

    def on_event(self, event_type: str, payload: dict[str, Any]) -> None:
        if event_type == GameEvent.QUESTION_TIMER_UPDATE.value:
            self.question_remaining = float(payload.get("remaining", 0.0))
        elif event_type == GameEvent.RESPONSE_TIMER_UPDATE.value:
            self.response_remaining = float(payload.get("remaining", 0.0))
        elif event_type == GameEvent.STATE_CHANGED.value:
            self.state_snapshot["state"] = payload.get("state")
        if event_type in QUIET_EVENTS:
            return
        line = describe_event(event_type, payload)
        if line:
            self.add_event(line)

    def add_event(self, line: str) -> None:
        self.event_lines.append(line)
        self.event_lines = self.event_lines[-self.history_lines :]

    def _event_style(self, content: str) -> str:
        lower = content.lower()
        if any(word in lower for word in ("incorrect", "expired", "cancelled", "locked")):
            return "bold red"
        if any(word in lower for word in ("early", "retry", "heard")):
            return "bold yellow"
        if any(word in lower for word in ("correct", "selected", "complete")):
            return "bold bright_cyan"
        return "cyan"

    def _render_scoreboard(self) -> Table:
        table = Table(title="Scores", expand=True)
        table.add_column("Player")
        table.add_column("Score", justify="right")
        for player in self.roster.players:
            marker = " *" if player.index == self.roster.chooser_index else ""
            style = "red" if player.score < 0 else "green"
            table.add_row(f"{player.name}{marker}", Text(f"${player.score}", style=style))
        return table

    def _render_events(self) -> Text:
        lines = self.event_lines[-self.max_lines :]
        if not lines:
            return Text("No events yet")
        output = Text()
        for index, line in enumerate(lines):
            output.append(line, style=self._event_style(line))
            if index < len(lines) - 1:
                output.append("\n")
        return output

    def _status_line(self) -> Text:
        state = str(self.state_snapshot.get("state") or "-").replace("_", " ").upper()
        parts = [f"State: {state}"]
        if self.question_remaining is not None:
            parts.append(f"buzz window {self.question_remaining:.1f}s")
        if self.response_remaining is not None:
            parts.append(f"answer clock {self.response_remaining:.1f}s")
        return Text(" | ".join(parts), style="bold")

    def render(self) -> Group:
        return Group(
            self._status_line(),
            self._render_scoreboard(),
            Panel(self._render_events(), title="Game Events"),
        )


def describe_event(event_type: str, payload: dict[str, Any]) -> str:
    if event_type == GameEvent.PLAYER_BUZZED.value:
        return f"{payload.get('player')} buzzed in"
    if event_type == GameEvent.EARLY_BUZZ.value:
        return f"{payload.get('player')} buzzed early and is locked for {payload.get('lockout_seconds')}s"
    if event_type == GameEvent.TRANSCRIPT_READY.value:
        return f'Heard answer: "{payload.get("transcript", "")}"'
    if event_type == GameEvent.JUDGMENT_READY.value:
        verdict = "Correct" if payload.get("correct") else "Incorrect"
        rationale = payload.get("rationale") or ""
        return f"{verdict}. {rationale}".strip()
    if event_type == GameEvent.QUESTION_TIMER_EXPIRED.value:
        return f"Buzz window expired. Answer: {payload.get('answer', '')}"
    if event_type == GameEvent.RESPONSE_TIMER_EXPIRED.value:
        return "Answer clock expired"
    if event_type == GameEvent.FLOW_COMPLETE.value:
        return "Clue complete"
    if event_type == GameEvent.SELECTION_PROMPT.value:
        return str(payload.get("text", ""))
    if event_type == GameEvent.SELECTION_HEARD.value:
        transcript = payload.get("transcript") or "(nothing)"
        return f'Attempt {payload.get("attempt")}: heard "{transcript}"'
    if event_type == GameEvent.SELECTION_RESOLVED.value:
        return f"Selected {payload.get('category')} for ${payload.get('value')}"
    if event_type == GameEvent.SELECTION_CANCELLED.value:
        return f"Selection cancelled ({payload.get('reason')})"
    return ""


class ConsolePlayback:
    """Playback that prints lines instead of speaking them.

    Completion is reported after a reading-time delay on the scheduler so
    the engines see the same suspension they would with real audio.
    """

    def __init__(self, scheduler: Scheduler, console: Console | None = None, seconds_per_word: float = 0.3):
        self.scheduler = scheduler
        self.console = console or Console()
        self.seconds_per_word = seconds_per_word

    def play_announcement(self, name: str, on_complete: Callable[[], None] | None) -> None:
        self._say(f"{name}?", on_complete, style="bold magenta")

    def play_cue(self, cue: Cue, on_complete: Callable[[], None] | None) -> None:
        self._say(CUE_LINES.get(cue, cue.value), on_complete, style="bold")

    def speak(self, text: str, on_complete: Callable[[], None] | None) -> None:
        self._say(text, on_complete, style="italic")

    def _say(self, text: str, on_complete: Callable[[], None] | None, style: str) -> None:
        self.console.print(Text(f"Host: {text}", style=style))
        if on_complete is not None:
            delay = max(1, len(text.split())) * self.seconds_per_word
            self.scheduler.call_later(delay, on_complete)
