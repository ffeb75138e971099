from __future__ import annotations

from collections.abc import Callable
from typing import Any

from buzzline.config.settings import GameConfig
from buzzline.game.clock import ScheduledCall, Scheduler
from buzzline.game.collaborators import AudioCapture, LLMParser, Playback, Transcription
from buzzline.game.models import Board, GameEvent, SelectionResult
from buzzline.game.selection_parser import build_llm_prompt, parse_llm_selection, parse_selection
from buzzline.logging.game_logger import GameLogger
from buzzline.messaging.event_bus import EventBus


GENERIC_RETRY_PROMPT = "Sorry, I didn't catch that."
CORRECTIVE_RETRY_PROMPT = "Please say a category and a dollar amount."

Ticket = tuple[int, int]


class SelectionResolver:
    """Turns the chooser's spoken pick into a board position.

    Each attempt listens once, tries the deterministic parse, then the LLM
    fallback. After ``max_selection_retries + 1`` failed attempts the
    selection is cancelled. A session emits exactly one of
    ``selection_resolved`` or ``selection_cancelled``.
    """

    source = "selection"

    def __init__(
        self,
        config: GameConfig,
        scheduler: Scheduler,
        capture: AudioCapture,
        transcriber: Transcription,
        llm: LLMParser,
        playback: Playback,
        board: Board | None = None,
        bus: EventBus | None = None,
        logger: GameLogger | None = None,
    ):
        self.config = config
        self.scheduler = scheduler
        self.capture = capture
        self.transcriber = transcriber
        self.llm = llm
        self.playback = playback
        self.bus = bus or EventBus()
        self.logger = logger

        self.board: Board | None = None
        self.last_category_index = -1
        self.attempt = 0
        self.last_utterance = ""
        self._first_selection = True
        self._skip_player_name = False
        self._session = 0
        self._active = False
        self._request_id = 0
        self._request_timeout: ScheduledCall | None = None
        if board is not None:
            self.set_board(board)

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def max_attempts(self) -> int:
        return self.config.max_selection_retries + 1

    def set_board(self, board: Board) -> None:
        self.board = board
        self.last_category_index = -1
        self._first_selection = True

    def reset_first_selection(self) -> None:
        self._first_selection = True

    def set_skip_player_name(self, skip: bool) -> None:
        self._skip_player_name = skip

    def parse_selection(self, text: str) -> SelectionResult | None:
        if self.board is None:
            return None
        return parse_selection(text, self.board, self.last_category_index)

    def start_selection(self, chooser_name: str) -> bool:
        if self.board is None:
            self._record("selection_rejected", {"reason": "no_board"})
            return False
        if self._active:
            self._record("selection_rejected", {"reason": "already_listening"})
            return False

        self._session += 1
        self._active = True
        self.attempt = 0
        self.last_utterance = ""

        skip_name = self._skip_player_name
        self._skip_player_name = False
        if self._first_selection:
            kind, prompt = "first", f"{chooser_name}, pick the first category."
            self._first_selection = False
        elif skip_name:
            kind, prompt = "short", "Your pick."
        else:
            kind, prompt = "full", f"{chooser_name}, your pick."

        if self.logger is not None:
            self.logger.log_section(f"Selection by {chooser_name}")
        self._emit(GameEvent.SELECTION_PROMPT, {"kind": kind, "chooser": chooser_name, "text": prompt})
        self._say(prompt, self._next_attempt)
        return True

    def cancel_selection(self) -> None:
        if not self._active:
            return
        self._cancel("cancelled")

    def _next_attempt(self) -> None:
        self.attempt += 1
        if self.attempt > self.max_attempts:
            self._cancel("max_retries_exhausted")
            return
        self._listen()

    def _listen(self) -> None:
        ticket = self._begin_request(self.config.listen_timeout_seconds, self._on_listen_timeout)
        if not self.capture.has_device:
            if self._settle(ticket):
                self._record("collaborator_error", {"step": "recording", "error": "no_device"})
                self._on_heard("")
            return

        def _on_audio(audio: bytes | None) -> None:
            if not self._is_current(ticket):
                return
            if not audio:
                if self._settle(ticket):
                    self._on_heard("")
                return
            try:
                self.transcriber.transcribe(
                    audio,
                    self._guarded(ticket, self._on_heard),
                    self._guarded(ticket, self._on_transcription_error),
                )
            except Exception as exc:  # noqa: BLE001
                if self._settle(ticket):
                    self._on_transcription_error(str(exc))

        try:
            self.capture.start_auto_recording(_on_audio)
        except Exception as exc:  # noqa: BLE001
            if self._settle(ticket):
                self._record("collaborator_error", {"step": "recording", "error": str(exc)})
                self._on_heard("")

    def _on_listen_timeout(self) -> None:
        self._release_device()
        self._on_heard("")

    def _on_transcription_error(self, reason: str) -> None:
        self._record("transcription_error", {"attempt": self.attempt, "error": reason})
        self._on_heard("")

    def _on_heard(self, text: str | None) -> None:
        utterance = (text or "").strip()
        self.last_utterance = utterance
        self._emit(GameEvent.SELECTION_HEARD, {"attempt": self.attempt, "transcript": utterance})
        if self.logger is not None:
            self.logger.log_transcript_line(f"Selection attempt {self.attempt}", utterance)
        if not utterance:
            self._retry(GENERIC_RETRY_PROMPT)
            return

        result = self.parse_selection(utterance)
        if result is not None:
            self._resolve(result)
            return
        self._record("stage1_failed", {"attempt": self.attempt, "transcript": utterance})
        self._run_llm_fallback(utterance)

    def _run_llm_fallback(self, utterance: str) -> None:
        board = self.board
        if board is None:
            self._retry(CORRECTIVE_RETRY_PROMPT)
            return
        system_prompt = build_llm_prompt(board, self.last_category_index)

        def _on_success(text: str) -> None:
            self._log_llm(system_prompt, utterance, text, "ok")
            result = parse_llm_selection(text, board) if (text or "").strip() else None
            if result is None:
                self._record("stage2_failed", {"attempt": self.attempt, "reason": "unparseable"})
                self._retry(CORRECTIVE_RETRY_PROMPT)
                return
            self._resolve(result)

        def _on_error(reason: str) -> None:
            self._log_llm(system_prompt, utterance, "", reason)
            self._record("stage2_failed", {"attempt": self.attempt, "reason": reason})
            self._retry(CORRECTIVE_RETRY_PROMPT)

        ticket = self._begin_request(self.config.llm_timeout_seconds, lambda: _on_error("llm_timeout"))
        try:
            self.llm.complete(
                system_prompt,
                utterance,
                self._guarded(ticket, _on_success),
                self._guarded(ticket, _on_error),
            )
        except Exception as exc:  # noqa: BLE001
            if self._settle(ticket):
                _on_error(str(exc))

    def _retry(self, prompt: str) -> None:
        if self.attempt >= self.max_attempts:
            self._next_attempt()
            return
        self._say(prompt, self._next_attempt)

    def _resolve(self, result: SelectionResult) -> None:
        self._cancel_request()
        self._release_device()
        self._active = False
        self._session += 1
        self.last_category_index = result.category_index
        title = self.board.categories[result.category_index].title if self.board else ""
        self._emit(
            GameEvent.SELECTION_RESOLVED,
            {
                "category_index": result.category_index,
                "row_index": result.row_index,
                "value": result.value,
                "category": title,
                "stage": result.stage,
                "attempt": self.attempt,
            },
        )

    def _cancel(self, reason: str) -> None:
        self._cancel_request()
        self._release_device()
        self._active = False
        self._session += 1
        self._emit(GameEvent.SELECTION_CANCELLED, {"reason": reason, "attempts": min(self.attempt, self.max_attempts)})

    def _say(self, text: str, then: Callable[[], None]) -> None:
        ticket = self._begin_request(self.config.playback_timeout_seconds, then)
        try:
            self.playback.speak(text, self._guarded(ticket, then))
        except Exception as exc:  # noqa: BLE001
            if self._settle(ticket):
                self._record("collaborator_error", {"step": "playback", "error": str(exc)})
                then()

    def _release_device(self) -> None:
        try:
            if self.capture.is_recording:
                self.capture.cancel_recording()
        except Exception as exc:  # noqa: BLE001
            self._record("collaborator_error", {"step": "cancel_recording", "error": str(exc)})

    def _begin_request(self, timeout: float, on_timeout: Callable[[], None]) -> Ticket:
        self._cancel_request()
        ticket = (self._session, self._request_id)

        def _expire() -> None:
            if self._settle(ticket):
                self._record("request_timeout", {"attempt": self.attempt, "timeout_seconds": timeout})
                on_timeout()

        self._request_timeout = self.scheduler.call_later(timeout, _expire)
        return ticket

    def _is_current(self, ticket: Ticket) -> bool:
        return self._active and ticket == (self._session, self._request_id)

    def _settle(self, ticket: Ticket) -> bool:
        if not self._is_current(ticket):
            return False
        self._cancel_request()
        return True

    def _cancel_request(self) -> None:
        if self._request_timeout is not None:
            self._request_timeout.cancel()
            self._request_timeout = None
        self._request_id += 1

    def _guarded(self, ticket: Ticket, handler: Callable[..., None]) -> Callable[..., None]:
        def _callback(*args: Any) -> None:
            if self._settle(ticket):
                handler(*args)

        return _callback

    def _log_llm(self, system_prompt: str, utterance: str, response_text: str, status: str) -> None:
        if self.logger is not None:
            self.logger.log_llm(
                role="selection",
                prompt={"system": system_prompt, "user": utterance},
                response_text=response_text,
                raw_response=None,
                metadata={"attempt": self.attempt, "status": status},
            )

    def _emit(self, event: GameEvent, payload: dict[str, Any]) -> None:
        for exc in self.bus.publish(event.value, payload):
            self._record("observer_error", {"event": event.value, "error": str(exc)})
        self._record(event.value, payload)

    def _record(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.logger is not None:
            state = "listening" if self._active else "idle"
            self.logger.log_event(event_type, self.source, state, payload, game_time=self.scheduler.now)
