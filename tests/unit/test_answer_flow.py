from __future__ import annotations

import pytest

from buzzline.game.models import Clue, Cue, FlowState


def _clue(value: int = 400, answer: str = "Paris") -> Clue:
    return Clue(question="This city hosts the Louvre", answer=answer, value=value)


def _open_buzzing(flow, clue: Clue) -> None:
    flow.start_flow(clue)
    assert flow.notify_question_read_complete()


def test_correct_answer_awards_points_and_completes(flow, capture, transcriber, judge, roster, recorder, advance) -> None:
    clue = _clue(400)
    transcriber.auto_text = "what is paris"
    judge.verdict = True
    _open_buzzing(flow, clue)

    assert flow.try_buzz(0)
    assert flow.state == FlowState.RECORDING
    capture.finish(b"audio")

    assert flow.state == FlowState.SHOWING_RESULT
    assert roster.players[0].score == 400
    assert roster.chooser_index == 0
    assert judge.requests[0][:2] == ("what is paris", "Paris")

    advance(2.0)

    assert flow.state == FlowState.COMPLETE
    assert flow.buzzer_index == -1
    assert clue.used is True
    assert len(recorder.of("judgment_ready")) == 1
    assert len(recorder.of("flow_complete")) == 1
    assert recorder.states() == [
        "waiting_for_question_read",
        "waiting_for_buzz",
        "recording",
        "transcribing",
        "judging",
        "showing_result",
        "complete",
    ]


def test_question_timer_expiry_completes_without_scoring(flow, roster, recorder, playback, advance) -> None:
    clue = _clue(600)
    _open_buzzing(flow, clue)

    advance(4.9)
    assert recorder.of("question_timer_expired") == []
    advance(0.1)

    assert len(recorder.of("question_timer_expired")) == 1
    assert flow.state == FlowState.SHOWING_RESULT
    assert Cue.TIMEOUT in playback.cues()
    assert not flow.try_buzz(0)

    advance(2.0)

    assert flow.state == FlowState.COMPLETE
    assert clue.used is True
    assert len(recorder.of("question_timer_expired")) == 1
    assert [player.score for player in roster.players] == [0, 0, 0]


def test_second_buzz_while_first_is_active_is_ignored(flow, playback, recorder) -> None:
    playback.auto_complete = False
    _open_buzzing(flow, _clue())

    assert flow.try_buzz(0)
    assert not flow.try_buzz(1)
    assert not flow.try_buzz(0)
    assert flow.buzzer_index == 0
    assert len(recorder.of("player_buzzed")) == 1

    playback.complete_pending()
    assert flow.state == FlowState.RECORDING
    assert not flow.try_buzz(2)
    assert flow.buzzer_index == 0


def test_buzz_notification_precedes_announcement(flow, playback, bus) -> None:
    seen: list[list[tuple[str, object]]] = []
    bus.subscribe("player_buzzed", lambda _event, _payload: seen.append(list(playback.calls)))
    _open_buzzing(flow, _clue())

    flow.try_buzz(2)

    assert seen == [[]]
    assert playback.calls[0] == ("announce", "Cy")


def test_raising_subscriber_does_not_stall_the_flow(flow, bus, capture, recorder) -> None:
    def _crash(_event: str, _payload: dict) -> None:
        raise RuntimeError("ui crashed")

    bus.subscribe("player_buzzed", _crash)
    _open_buzzing(flow, _clue())

    assert flow.try_buzz(0)

    assert flow.state == FlowState.RECORDING
    assert capture.is_recording
    assert flow.question_timer.paused
    assert len(recorder.of("player_buzzed")) == 1
    assert bus.handler_errors == 1


def test_scores_update_before_judgment_is_published(flow, capture, transcriber, judge, roster, bus) -> None:
    observed: list[int] = []
    bus.subscribe("judgment_ready", lambda _event, _payload: observed.append(roster.players[1].score))
    transcriber.auto_text = "rome"
    judge.verdict = False
    _open_buzzing(flow, _clue(200))

    flow.try_buzz(1)
    capture.finish()

    assert observed == [-200]


def test_wrong_answer_reopens_buzzing_and_resumes_question_timer(
    flow, capture, transcriber, judge, roster, playback, advance
) -> None:
    transcriber.auto_text = "what is rome"
    judge.verdict = False
    _open_buzzing(flow, _clue(400))
    advance(1.0)

    assert flow.try_buzz(0)
    assert flow.question_timer.paused
    paused_at = flow.question_timer.remaining
    capture.finish()

    assert roster.players[0].score == -400
    assert flow.state == FlowState.WAITING_FOR_BUZZ
    assert flow.buzzer_index == -1
    assert flow.lockouts.is_locked(0)
    assert playback.cues()[:2] == [Cue.INCORRECT, Cue.ANYONE_ELSE]
    assert not flow.question_timer.paused
    assert flow.question_timer.remaining == pytest.approx(paused_at)
    assert paused_at == pytest.approx(4.0)

    advance(1.0)
    assert flow.question_timer.remaining == pytest.approx(3.0)
    assert not flow.try_buzz(0)
    assert flow.try_buzz(1)


def test_question_timer_stays_paused_until_anyone_else_cue_finishes(flow, capture, transcriber, judge, playback, advance) -> None:
    transcriber.auto_text = "rome"
    judge.verdict = False
    _open_buzzing(flow, _clue())
    flow.try_buzz(0)
    playback.auto_complete = False
    capture.finish()

    remaining = flow.question_timer.remaining
    advance(0.5)
    assert flow.question_timer.remaining == pytest.approx(remaining)

    playback.complete_pending()
    advance(0.5)
    assert flow.question_timer.remaining == pytest.approx(remaining - 0.5)


def test_everyone_wrong_reveals_answer_once(flow, capture, transcriber, judge, roster, playback, recorder, advance) -> None:
    clue = _clue(800, answer="Paris")
    transcriber.auto_text = "london"
    judge.verdict = False
    _open_buzzing(flow, clue)

    for index in range(3):
        assert flow.try_buzz(index)
        capture.finish()

    assert flow.state == FlowState.SHOWING_RESULT
    assert [player.score for player in roster.players] == [-800, -800, -800]
    assert any("Paris" in line for line in playback.spoken())
    assert not flow.try_buzz(0)

    advance(2.0)

    assert flow.state == FlowState.COMPLETE
    assert clue.used is True
    assert len(recorder.of("flow_complete")) == 1


def test_response_timer_expiry_counts_as_wrong_answer(flow, capture, transcriber, roster, recorder, advance) -> None:
    _open_buzzing(flow, _clue(400))
    advance(0.5)
    flow.try_buzz(2)
    question_left = flow.question_timer.remaining

    advance(9.9)
    assert flow.state == FlowState.RECORDING
    assert flow.question_timer.remaining == pytest.approx(question_left)
    advance(0.1)

    assert len(recorder.of("response_timer_expired")) == 1
    assert capture.cancelled == 1
    assert roster.players[2].score == -400
    assert flow.state == FlowState.WAITING_FOR_BUZZ

    capture.finish(b"late audio")
    assert transcriber.requests == []
    assert roster.players[2].score == -400


def test_missing_microphone_is_treated_as_no_answer(flow, capture, roster) -> None:
    capture.has_device = False
    _open_buzzing(flow, _clue(200))

    assert flow.try_buzz(1)

    assert capture.started == 0
    assert roster.players[1].score == -200
    assert flow.lockouts.is_locked(1)
    assert flow.state == FlowState.WAITING_FOR_BUZZ


def test_empty_audio_is_incorrect(flow, capture, transcriber, roster) -> None:
    _open_buzzing(flow, _clue(200))
    flow.try_buzz(0)

    capture.finish(b"")

    assert transcriber.requests == []
    assert roster.players[0].score == -200


def test_transcription_error_is_incorrect(flow, capture, transcriber, judge, roster) -> None:
    _open_buzzing(flow, _clue(600))
    flow.try_buzz(0)
    capture.finish()
    assert flow.state == FlowState.TRANSCRIBING

    transcriber.fail("503")

    assert judge.requests == []
    assert roster.players[0].score == -600


def test_blank_transcript_is_incorrect(flow, capture, transcriber, judge, roster, recorder) -> None:
    transcriber.auto_text = "   "
    _open_buzzing(flow, _clue(600))
    flow.try_buzz(0)
    capture.finish()

    assert judge.requests == []
    assert roster.players[0].score == -600
    assert recorder.of("transcript_ready")[0]["transcript"] == ""


def test_transcription_timeout_is_incorrect(flow, capture, roster, advance) -> None:
    _open_buzzing(flow, _clue(200))
    flow.try_buzz(0)
    capture.finish()

    advance(10.0)

    assert roster.players[0].score == -200
    assert flow.state == FlowState.WAITING_FOR_BUZZ


def test_judge_timeout_falls_back_to_heuristic(flow, capture, transcriber, judge, roster, advance) -> None:
    transcriber.auto_text = "what is paris"
    _open_buzzing(flow, _clue(400, answer="Paris"))
    flow.try_buzz(0)
    capture.finish()
    assert flow.state == FlowState.JUDGING

    advance(10.0)

    assert roster.players[0].score == 400
    assert flow.last_judgment is not None and flow.last_judgment.is_correct

    judge.answer(False)
    assert roster.players[0].score == 400


def test_judge_exception_falls_back_to_heuristic(flow, capture, transcriber, roster) -> None:
    class ExplodingJudge:
        def judge(self, transcript, correct_answer, on_result):  # noqa: ANN001
            raise RuntimeError("judge offline")

    flow.judge = ExplodingJudge()
    transcriber.auto_text = "the eiffel tower"
    _open_buzzing(flow, _clue(1000, answer="Eiffel Tower"))
    flow.try_buzz(0)

    capture.finish()

    assert roster.players[0].score == 1000
    assert flow.state == FlowState.SHOWING_RESULT


def test_correct_and_incorrect_each_score_once(flow, capture, transcriber, judge, roster, advance) -> None:
    clue = _clue(400)
    judge.verdict = False
    transcriber.auto_text = "rome"
    _open_buzzing(flow, clue)
    flow.try_buzz(0)
    capture.finish()

    judge.verdict = True
    transcriber.auto_text = "paris"
    flow.try_buzz(1)
    capture.finish()
    advance(2.0)

    assert [player.score for player in roster.players] == [-400, 400, 0]
    assert roster.chooser_index == 1
    assert clue.used is True


def test_end_flow_is_idempotent(flow, recorder, capture) -> None:
    clue = _clue()
    _open_buzzing(flow, clue)
    flow.try_buzz(0)

    flow.end_flow()
    flow.end_flow()

    assert capture.cancelled == 1
    assert len(recorder.of("flow_complete")) == 1
    assert flow.state == FlowState.COMPLETE
    assert clue.used is True


def test_restarting_abandons_stale_session(flow, capture, transcriber, roster) -> None:
    first = _clue(200, answer="Paris")
    second = _clue(400, answer="Rome")
    transcriber.auto_text = "paris"
    _open_buzzing(flow, first)
    flow.try_buzz(0)
    stale_callback = capture.callbacks[-1]

    flow.start_flow(second)
    stale_callback(b"old audio")

    assert flow.state == FlowState.WAITING_FOR_QUESTION_READ
    assert transcriber.requests == []
    assert first.used is False
    assert roster.players[0].score == 0
    assert flow.clue is second


def test_early_buzz_locks_for_configured_duration(flow, recorder, advance) -> None:
    flow.start_flow(_clue())

    assert not flow.try_buzz(1)
    assert flow.buzzer_index == -1
    assert flow.lockouts.is_locked(1)
    assert flow.lockouts.entries[1].unlock_at == pytest.approx(0.75)
    assert recorder.of("early_buzz")[0]["player_index"] == 1

    advance(0.7)
    assert flow.lockouts.is_locked(1)
    advance(0.05)
    assert not flow.lockouts.is_locked(1)
    assert flow.state == FlowState.WAITING_FOR_QUESTION_READ


def test_early_buzz_lockout_window(flow, scheduler, advance) -> None:
    flow.start_flow(_clue())
    advance(0.2)
    flow.try_buzz(1)

    advance(0.3)
    assert not flow.try_buzz(1)
    assert flow.lockouts.entries[1].unlock_at == pytest.approx(0.95)
    assert flow.lockouts.is_locked(1)

    advance(0.45)
    assert scheduler.now == pytest.approx(0.95)
    assert not flow.lockouts.is_locked(1)
    assert flow.notify_question_read_complete()
    assert flow.try_buzz(1)


def test_read_completion_clears_early_lockouts(flow, advance) -> None:
    flow.start_flow(_clue())
    flow.try_buzz(0)
    advance(0.1)

    flow.notify_question_read_complete()

    assert not flow.lockouts.is_locked(0)
    assert flow.try_buzz(0)


def test_question_timer_does_not_run_before_read_completes(flow, advance) -> None:
    flow.start_flow(_clue())
    advance(3.0)

    assert not flow.question_timer.running
    flow.notify_question_read_complete()
    assert flow.question_timer.remaining == pytest.approx(5.0)


def test_announcement_timeout_still_starts_recording(flow, playback, capture, advance) -> None:
    playback.auto_complete = False
    _open_buzzing(flow, _clue())
    flow.try_buzz(0)

    advance(5.9)
    assert flow.state == FlowState.WAITING_FOR_BUZZ
    advance(0.1)

    assert flow.state == FlowState.RECORDING
    assert capture.started == 1

    playback.complete_pending()
    assert capture.started == 1


def test_invalid_player_index_is_rejected(flow) -> None:
    _open_buzzing(flow, _clue())

    assert not flow.try_buzz(7)
    assert not flow.try_buzz(-1)
    assert flow.buzzer_index == -1


def test_snapshot_reports_paused_timer_and_locks(flow, capture, transcriber, judge, advance) -> None:
    transcriber.auto_text = "rome"
    judge.verdict = False
    _open_buzzing(flow, _clue(600))
    advance(1.0)
    flow.try_buzz(1)
    capture.finish()
    flow.try_buzz(2)

    snapshot = flow.snapshot()

    assert snapshot["state"] == "recording"
    assert snapshot["clue_value"] == 600
    assert snapshot["buzzer_index"] == 2
    assert snapshot["question_timer_paused"] is True
    assert snapshot["question_time_remaining"] == pytest.approx(4.0)
    assert snapshot["locked_players"] == [1]
    assert snapshot["transcript"] == "rome"
    assert snapshot["scores"] == {"Ana": 0, "Ben": -600, "Cy": 0}
