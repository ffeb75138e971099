from __future__ import annotations

from collections.abc import Callable
from typing import Any

from buzzline.config.settings import GameConfig
from buzzline.game.clock import ScheduledCall, Scheduler
from buzzline.game.collaborators import AudioCapture, Judge, Playback, Transcription
from buzzline.game.judging import heuristic_judge
from buzzline.game.lockout import LockoutTracker
from buzzline.game.models import (
    Board,
    Clue,
    Cue,
    FlowState,
    GameEvent,
    JudgeResult,
    QuestionTimer,
    ResponseTimer,
)
from buzzline.game.roster import Roster
from buzzline.logging.game_logger import GameLogger
from buzzline.messaging.event_bus import EventBus


# Timer remainders below this are treated as elapsed.
_TIMER_EPSILON = 1e-9

Ticket = tuple[int, int]


class AnswerFlowEngine:
    """Runs one clue from question read-out to scoring.

    Every collaborator request is issued under a ticket of
    ``(session, request_id)``. Only the callback holding the current ticket
    may advance the flow; a timeout, a newer request, ``end_flow`` or a new
    ``start_flow`` retires the ticket and the late callback is dropped.
    """

    source = "answer_flow"

    def __init__(
        self,
        config: GameConfig,
        scheduler: Scheduler,
        roster: Roster,
        board: Board,
        capture: AudioCapture,
        transcriber: Transcription,
        judge: Judge,
        playback: Playback,
        bus: EventBus | None = None,
        logger: GameLogger | None = None,
    ):
        self.config = config
        self.scheduler = scheduler
        self.roster = roster
        self.board = board
        self.capture = capture
        self.transcriber = transcriber
        self.judge = judge
        self.playback = playback
        self.bus = bus or EventBus()
        self.logger = logger

        self.state = FlowState.COMPLETE
        self.clue: Clue | None = None
        self.buzzer_index = -1
        self.last_transcript = ""
        self.last_judgment: JudgeResult | None = None
        self.lockouts = LockoutTracker(scheduler)
        self.question_timer = QuestionTimer(duration=config.question_time_seconds)
        self.response_timer = ResponseTimer(duration=config.response_time_seconds)

        self._session = 0
        self._active = False
        self._request_id = 0
        self._request_timeout: ScheduledCall | None = None
        self._completion: ScheduledCall | None = None
        self.scheduler.add_tick_listener(self._on_tick)

    @property
    def active(self) -> bool:
        return self._active

    def start_flow(self, clue: Clue) -> None:
        if self._active:
            self._record("flow_abandoned", {"answer": self.clue.answer if self.clue else None})
            self._cancel_pending()
        self._session += 1
        self._active = True
        self.clue = clue
        self.buzzer_index = -1
        self.last_transcript = ""
        self.last_judgment = None
        self.lockouts.reset(len(self.roster))
        self.question_timer = QuestionTimer(duration=self.config.question_time_seconds)
        self.response_timer = ResponseTimer(duration=self.config.response_time_seconds)
        if self.capture.is_recording:
            self._record("device_reclaimed", {})
            self._cancel_capture()
        if self.logger is not None:
            self.logger.log_section(f"${clue.value}: {clue.question}")
        self._set_state(FlowState.WAITING_FOR_QUESTION_READ)

    def notify_question_read_complete(self) -> bool:
        if not self._active or self.state != FlowState.WAITING_FOR_QUESTION_READ:
            return False
        cleared = self.lockouts.clear_timed()
        if cleared:
            self._record("early_lockouts_cleared", {"players": cleared})
        self._set_state(FlowState.WAITING_FOR_BUZZ)
        self.question_timer.start()
        return True

    def try_buzz(self, player_index: int) -> bool:
        if not self._active:
            return False
        if self.state == FlowState.WAITING_FOR_QUESTION_READ:
            self._handle_early_buzz(player_index)
            return False
        if self.state != FlowState.WAITING_FOR_BUZZ or self.buzzer_index != -1:
            return False
        if player_index not in self.lockouts.entries or self.lockouts.is_locked(player_index):
            return False

        self.question_timer.pause()
        self.buzzer_index = player_index
        name = self.roster.name_of(player_index)
        self._emit(
            GameEvent.PLAYER_BUZZED,
            {
                "player_index": player_index,
                "player": name,
                "question_time_remaining": round(self.question_timer.remaining, 3),
            },
        )
        ticket = self._begin_request(self.config.playback_timeout_seconds, self._after_announcement)
        self._request_playback(
            ticket,
            lambda done: self.playback.play_announcement(name, done),
            self._after_announcement,
        )
        return True

    def begin_recording(self) -> bool:
        if not self._active or self.buzzer_index < 0 or self.state != FlowState.WAITING_FOR_BUZZ:
            return False
        self._cancel_request()
        if not self.capture.has_device:
            self._handle_incorrect("no_device")
            return False

        self._set_state(FlowState.RECORDING)
        self.response_timer.start()
        ticket = self._begin_request(None, None)
        try:
            self.capture.start_auto_recording(self._guarded(ticket, self._on_recording_complete))
        except Exception as exc:  # noqa: BLE001
            if self._settle(ticket):
                self._record("collaborator_error", {"step": "recording", "error": str(exc)})
                self.response_timer.cancel()
                self._handle_incorrect("recording_failed")
        return True

    def end_flow(self) -> None:
        if not self._active:
            return
        self._active = False
        self._cancel_pending()
        self._session += 1
        self._set_state(FlowState.COMPLETE)
        clue = self.clue
        if clue is not None:
            self.board.mark_used(clue)
        buzzer = self.buzzer_index
        self.buzzer_index = -1
        self._emit(
            GameEvent.FLOW_COMPLETE,
            {
                "last_buzzer_index": buzzer,
                "correct": bool(self.last_judgment and self.last_judgment.is_correct),
                "scores": self.roster.scores(),
            },
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "clue_value": self.clue.value if self.clue else None,
            "buzzer_index": self.buzzer_index,
            "question_time_remaining": round(self.question_timer.remaining, 3),
            "question_timer_paused": self.question_timer.paused,
            "response_time_remaining": round(self.response_timer.remaining, 3),
            "locked_players": self.lockouts.locked_indices(),
            "transcript": self.last_transcript,
            "scores": self.roster.scores(),
        }

    def _handle_early_buzz(self, player_index: int) -> None:
        duration = self.config.early_buzz_lockout_seconds
        if not self.lockouts.lock_for(player_index, duration):
            return
        self._emit(
            GameEvent.EARLY_BUZZ,
            {
                "player_index": player_index,
                "player": self.roster.name_of(player_index),
                "lockout_seconds": duration,
            },
        )

    def _after_announcement(self) -> None:
        self.begin_recording()

    def _on_recording_complete(self, audio: bytes | None) -> None:
        self.response_timer.cancel()
        if not audio:
            self._handle_incorrect("recording_empty")
            return

        self._set_state(FlowState.TRANSCRIBING)
        ticket = self._begin_request(
            self.config.transcription_timeout_seconds,
            lambda: self._handle_incorrect("transcription_timeout"),
        )
        try:
            self.transcriber.transcribe(
                audio,
                self._guarded(ticket, self._on_transcription_success),
                self._guarded(ticket, self._on_transcription_error),
            )
        except Exception as exc:  # noqa: BLE001
            if self._settle(ticket):
                self._on_transcription_error(str(exc))

    def _on_transcription_success(self, text: str | None) -> None:
        transcript = (text or "").strip()
        self.last_transcript = transcript
        self._emit(GameEvent.TRANSCRIPT_READY, {"player_index": self.buzzer_index, "transcript": transcript})
        if self.logger is not None:
            self.logger.log_transcript_line(self.roster.name_of(self.buzzer_index), transcript)
        if not transcript:
            self._handle_incorrect("transcription_empty")
            return

        self._set_state(FlowState.JUDGING)
        answer = self.clue.answer if self.clue else ""

        def _fallback() -> None:
            self._on_judgment(heuristic_judge(transcript, answer))

        ticket = self._begin_request(self.config.judge_timeout_seconds, _fallback)
        on_result = self._guarded(ticket, lambda ok, why: self._on_judgment(JudgeResult(bool(ok), why or "")))
        try:
            self.judge.judge(transcript, answer, on_result)
        except Exception as exc:  # noqa: BLE001
            if self._settle(ticket):
                self._record("collaborator_error", {"step": "judge", "error": str(exc)})
                _fallback()

    def _on_transcription_error(self, reason: str) -> None:
        self._record("transcription_error", {"error": reason})
        self._handle_incorrect("transcription_error")

    def _on_judgment(self, result: JudgeResult) -> None:
        self.last_judgment = result
        self._set_state(FlowState.SHOWING_RESULT)
        if result.is_correct:
            value = self.clue.value if self.clue else 0
            if self.buzzer_index >= 0:
                self.roster.award(self.buzzer_index, value)
            self._emit_judgment(result)
            self._play_cue(Cue.CORRECT)
            self._schedule_completion()
            return

        self._apply_penalty()
        self._emit_judgment(result)
        self._continue_after_incorrect()

    def _emit_judgment(self, result: JudgeResult) -> None:
        self._emit(
            GameEvent.JUDGMENT_READY,
            {
                "player_index": self.buzzer_index,
                "correct": result.is_correct,
                "rationale": result.rationale,
                "transcript": self.last_transcript,
                "scores": self.roster.scores(),
            },
        )

    def _handle_incorrect(self, reason: str) -> None:
        self._record("answer_incorrect", {"player_index": self.buzzer_index, "reason": reason})
        self._apply_penalty()
        self._continue_after_incorrect()

    def _apply_penalty(self) -> None:
        if self.buzzer_index < 0:
            return
        value = self.clue.value if self.clue else 0
        self.roster.deduct(self.buzzer_index, value)
        self.lockouts.lock_permanently(self.buzzer_index)
        self._play_cue(Cue.INCORRECT)

    def _continue_after_incorrect(self) -> None:
        if self.lockouts.any_unlocked():
            self.buzzer_index = -1
            self._set_state(FlowState.WAITING_FOR_BUZZ)
            ticket = self._begin_request(self.config.playback_timeout_seconds, self._resume_question_timer)
            self._request_playback(
                ticket,
                lambda done: self.playback.play_cue(Cue.ANYONE_ELSE, done),
                self._resume_question_timer,
            )
            return

        self._cancel_request()
        if self.state != FlowState.SHOWING_RESULT:
            self._set_state(FlowState.SHOWING_RESULT)
        answer = self.clue.answer if self.clue else ""
        self._record("answer_revealed", {"answer": answer})
        try:
            self.playback.speak(f"The correct response is {answer}.", None)
        except Exception as exc:  # noqa: BLE001
            self._record("collaborator_error", {"step": "reveal", "error": str(exc)})
        self._schedule_completion()

    def _resume_question_timer(self) -> None:
        if self.state == FlowState.WAITING_FOR_BUZZ and self.buzzer_index == -1:
            self.question_timer.resume()

    def _on_tick(self, dt: float) -> None:
        if not self._active:
            return
        if self.state == FlowState.WAITING_FOR_BUZZ:
            timer = self.question_timer
            if not timer.running or timer.paused:
                return
            timer.remaining = _countdown(timer.remaining, dt)
            self._emit(GameEvent.QUESTION_TIMER_UPDATE, {"remaining": timer.remaining}, log=False)
            if timer.remaining <= 0 and self.buzzer_index == -1:
                self._on_question_timer_expired()
        elif self.state == FlowState.RECORDING:
            timer = self.response_timer
            if not timer.running:
                return
            timer.remaining = _countdown(timer.remaining, dt)
            self._emit(GameEvent.RESPONSE_TIMER_UPDATE, {"remaining": timer.remaining}, log=False)
            if timer.remaining <= 0:
                self._on_response_timer_expired()

    def _on_question_timer_expired(self) -> None:
        self.question_timer.cancel()
        self._cancel_request()
        self._emit(GameEvent.QUESTION_TIMER_EXPIRED, {"answer": self.clue.answer if self.clue else ""})
        self._set_state(FlowState.SHOWING_RESULT)
        self._play_cue(Cue.TIMEOUT)
        self._schedule_completion()

    def _on_response_timer_expired(self) -> None:
        self.response_timer.cancel()
        self._cancel_request()
        self._cancel_capture()
        self._emit(GameEvent.RESPONSE_TIMER_EXPIRED, {"player_index": self.buzzer_index})
        self._handle_incorrect("response_timeout")

    def _schedule_completion(self) -> None:
        if self._completion is not None:
            self._completion.cancel()
        session = self._session

        def _complete() -> None:
            if session == self._session:
                self.end_flow()

        self._completion = self.scheduler.call_later(self.config.result_display_seconds, _complete)

    def _begin_request(self, timeout: float | None, on_timeout: Callable[[], None] | None) -> Ticket:
        self._cancel_request()
        ticket = (self._session, self._request_id)
        if timeout is not None and on_timeout is not None:

            def _expire() -> None:
                if self._settle(ticket):
                    self._record("request_timeout", {"state": self.state.value, "timeout_seconds": timeout})
                    on_timeout()

            self._request_timeout = self.scheduler.call_later(timeout, _expire)
        return ticket

    def _settle(self, ticket: Ticket) -> bool:
        if not self._active or ticket != (self._session, self._request_id):
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

    def _request_playback(
        self,
        ticket: Ticket,
        invoke: Callable[[Callable[[], None]], None],
        then: Callable[[], None],
    ) -> None:
        try:
            invoke(self._guarded(ticket, then))
        except Exception as exc:  # noqa: BLE001
            if self._settle(ticket):
                self._record("collaborator_error", {"step": "playback", "error": str(exc)})
                then()

    def _play_cue(self, cue: Cue) -> None:
        try:
            self.playback.play_cue(cue, None)
        except Exception as exc:  # noqa: BLE001
            self._record("collaborator_error", {"step": f"cue:{cue.value}", "error": str(exc)})

    def _cancel_capture(self) -> None:
        try:
            if self.capture.is_recording:
                self.capture.cancel_recording()
        except Exception as exc:  # noqa: BLE001
            self._record("collaborator_error", {"step": "cancel_recording", "error": str(exc)})

    def _cancel_pending(self) -> None:
        self._cancel_request()
        if self._completion is not None:
            self._completion.cancel()
            self._completion = None
        self.lockouts.cancel_all()
        self.question_timer.cancel()
        self.response_timer.cancel()
        self._cancel_capture()

    def _set_state(self, state: FlowState) -> None:
        self.state = state
        self._emit(GameEvent.STATE_CHANGED, {"state": state.value})

    def _emit(self, event: GameEvent, payload: dict[str, Any], log: bool = True) -> None:
        for exc in self.bus.publish(event.value, payload):
            self._record("observer_error", {"event": event.value, "error": str(exc)})
        if log:
            self._record(event.value, payload)

    def _record(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.logger is not None:
            self.logger.log_event(event_type, self.source, self.state.value, payload, game_time=self.scheduler.now)


def _countdown(remaining: float, dt: float) -> float:
    value = remaining - dt
    return 0.0 if value < _TIMER_EPSILON else value
