"""Timing and lifecycle tests for BreathingSessionEngine on a virtual clock."""

from unittest.mock import Mock

import pytest

from ..api import ApiError
from ..session import (
    BUILTIN_PATTERNS,
    BreathingSessionEngine,
    GoalKind,
    SessionEventType,
    SessionGoal,
    SessionMode,
    parse_sequence,
)
from ..session.engine import round_seconds


def _engine(clock, scheduler, key="478", **kwargs):
    return BreathingSessionEngine(BUILTIN_PATTERNS[key], clock=clock, scheduler=scheduler, **kwargs)


def _record(engine, *event_types):
    seen = []
    for event_type in event_types:
        engine.event_emitter.subscribe(event_type, seen.append)
    return seen


def test_round_seconds_rounds_half_up():
    assert round_seconds(2.5) == 3
    assert round_seconds(2.49) == 2
    assert round_seconds(0.5) == 1
    assert round_seconds(0) == 0


def test_initial_state_is_stopped(clock, scheduler):
    engine = _engine(clock, scheduler)
    assert engine.mode is SessionMode.STOPPED
    assert not engine.is_active
    assert engine.countdown == 4
    assert engine.breath_count == 0
    assert scheduler.active_timers == 0


def test_start_arms_phase_and_elapsed_timers(clock, scheduler):
    engine = _engine(clock, scheduler)
    assert engine.start() is True
    assert engine.mode is SessionMode.RUNNING
    assert engine.current_phase == 0
    assert engine.countdown == 4
    assert scheduler.active_timers == 2


def test_countdown_steps_once_per_second(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(2.5)
    assert engine.current_phase == 0
    assert engine.countdown == 2


def test_full_cycle_of_478(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(19.5)
    assert engine.current_cycle == 1
    assert engine.current_phase == 0
    assert engine.breath_count == 3
    assert engine.countdown == 4


def test_phase_changes_fire_in_order(clock, scheduler):
    engine = _engine(clock, scheduler)
    seen = _record(engine, SessionEventType.PHASE_CHANGE, SessionEventType.CYCLE_COMPLETE)
    engine.start()
    scheduler.advance(19.5)
    phases = [(e.event_type, (e.data or {}).get("phase")) for e in seen]
    assert phases == [
        (SessionEventType.PHASE_CHANGE, 1),
        (SessionEventType.PHASE_CHANGE, 2),
        (SessionEventType.PHASE_CHANGE, 0),
        (SessionEventType.CYCLE_COMPLETE, None),
    ]


def test_breath_count_after_whole_cycles(clock, scheduler):
    engine = _engine(clock, scheduler, key="box")
    engine.start()
    scheduler.advance(16 * 3 + 0.5)
    assert engine.current_cycle == 3
    assert engine.current_phase == 0
    assert engine.breath_count == 3 * 4


def test_fractional_durations_advance_on_half_seconds(clock, scheduler):
    engine = _engine(clock, scheduler, key="fire")
    engine.start()
    scheduler.advance(2.0)
    assert engine.current_cycle == 2
    assert engine.current_phase == 0
    assert engine.breath_count == 4


def test_late_frame_catches_up_every_boundary(clock, scheduler):
    engine = _engine(clock, scheduler, frame_interval_s=5.0)
    seen = _record(engine, SessionEventType.PHASE_CHANGE)
    engine.start()
    scheduler.advance(5.0)
    assert engine.current_phase == 1
    assert engine.countdown == 6
    assert [e.data["phase"] for e in seen] == [1]


def test_pause_excludes_paused_span_from_elapsed(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(2)
    assert engine.pause() is True
    assert engine.elapsed_time == 2
    scheduler.advance(10)
    assert engine.elapsed_time == 2
    assert engine.resume() is True
    scheduler.advance(2)
    assert engine.elapsed_time == 4


def test_pause_stops_phase_progression(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(2)
    engine.pause()
    assert scheduler.active_timers == 0
    scheduler.advance(30)
    assert engine.current_phase == 0
    assert engine.countdown == 2


def test_resume_reloads_full_phase_countdown(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(5.5)
    assert engine.current_phase == 1
    engine.pause()
    engine.resume()
    assert engine.current_phase == 1
    assert engine.countdown == 7


def test_resume_into_requested_phase(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    engine.pause()
    assert engine.resume(phase=2) is True
    assert engine.current_phase == 2
    assert engine.countdown == 8


def test_resume_with_out_of_range_phase_keeps_current(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(1)
    engine.pause()
    assert engine.resume(phase=9) is True
    assert engine.current_phase == 0
    assert engine.mode is SessionMode.RUNNING


def test_double_pause_is_ignored(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(2)
    assert engine.pause() is True
    scheduler.advance(3)
    assert engine.pause() is False
    scheduler.advance(5)
    engine.resume()
    scheduler.advance(1)
    assert engine.elapsed_time == 3


def test_invalid_orderings_are_noops(clock, scheduler):
    engine = _engine(clock, scheduler)
    assert engine.pause() is False
    assert engine.resume() is False
    assert engine.end_hold() is False
    assert engine.start_hold() is False
    assert engine.end() is None
    engine.start()
    assert engine.resume() is False
    assert engine.end_hold() is False


def test_hold_records_stats_and_restarts_at_inhale(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(5.5)
    assert engine.current_phase == 1
    assert engine.start_hold() is True
    assert engine.mode is SessionMode.HOLDING
    assert engine.is_paused and engine.is_holding
    scheduler.advance(5)
    assert engine.end_hold() is True

    stats = engine.hold_stats
    assert (stats.hold_count, stats.total_hold_time, stats.longest_hold, stats.current_hold_time) == (1, 5, 5, 0)
    assert engine.mode is SessionMode.RUNNING
    assert engine.current_phase == 0
    assert engine.countdown == 4


def test_hold_freezes_phase_but_counts_toward_elapsed(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(2)
    engine.start_hold()
    scheduler.advance(5)
    assert engine.current_phase == 0
    assert engine.countdown == 2
    engine.end_hold()
    assert engine.elapsed_time == 7
    scheduler.advance(4)
    assert engine.current_phase == 1


def test_hold_sampler_reports_running_hold_time(clock, scheduler):
    engine = _engine(clock, scheduler)
    ticks = []
    engine.event_emitter.subscribe(SessionEventType.HOLD_TICK, lambda e: ticks.append(e.data["current_hold_time"]))
    engine.start()
    engine.start_hold()
    scheduler.advance(3)
    assert engine.hold_stats.current_hold_time == 3
    assert ticks[-1] == 3
    assert ticks == sorted(set(ticks))
    engine.end_hold()
    scheduler.advance(1)
    assert ticks[-1] == 3


def test_longest_hold_is_the_maximum(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    for seconds in (3, 7, 2):
        engine.start_hold()
        scheduler.advance(seconds)
        engine.end_hold()
        scheduler.advance(1)
    stats = engine.hold_stats
    assert stats.hold_count == 3
    assert stats.total_hold_time == 12
    assert stats.longest_hold == 7
    assert stats.average_hold == 4


def test_hold_from_pause_does_not_charge_open_pause(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(2)
    engine.pause()
    scheduler.advance(10)
    assert engine.start_hold() is True
    scheduler.advance(3)
    engine.end_hold()
    assert engine.elapsed_time == 5


def test_resume_from_hold_applies_requested_phase(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    engine.start_hold()
    scheduler.advance(3)
    assert engine.resume(phase=1) is True
    assert engine.mode is SessionMode.RUNNING
    assert engine.hold_stats.hold_count == 1
    assert engine.current_phase == 1
    assert engine.countdown == 7


def test_end_produces_summary_and_persists(clock, scheduler):
    store = Mock()
    engine = _engine(clock, scheduler, persistence=store)
    ended = _record(engine, SessionEventType.SESSION_END)
    engine.start()
    scheduler.advance(19.5)
    summary = engine.end()

    assert summary.pattern == "4-7-8"
    assert summary.duration == 20
    assert summary.breath_count == 3
    assert summary.hold_count == 0
    store.save_session.assert_called_once_with(summary)
    assert engine.mode is SessionMode.STOPPED
    assert engine.session_completed is True
    assert engine.elapsed_time == 20
    assert ended[0].data["persisted"] is True
    assert ended[0].data["breathCount"] == 3


def test_end_while_holding_closes_the_hold(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(2)
    engine.start_hold()
    scheduler.advance(4)
    summary = engine.end()
    assert summary.hold_count == 1
    assert summary.longest_hold == 4
    assert summary.duration == 6


def test_end_while_paused_excludes_open_pause(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(3)
    engine.pause()
    scheduler.advance(10)
    summary = engine.end()
    assert summary.duration == 3
    assert engine.elapsed_time == 3


def test_elapsed_is_frozen_after_end(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(4)
    engine.end()
    scheduler.advance(30)
    assert engine.elapsed_time == 4
    assert engine.end() is None


def test_persistence_failure_still_ends_session(clock, scheduler):
    store = Mock()
    store.save_session.side_effect = ApiError("POST /api/sessions returned 500", status_code=500)
    engine = _engine(clock, scheduler, persistence=store)
    failures = _record(engine, SessionEventType.PERSIST_FAILED)
    ended = _record(engine, SessionEventType.SESSION_END)
    engine.start()
    scheduler.advance(3)

    summary = engine.end()

    assert summary is not None
    assert summary.duration == 3
    assert engine.mode is SessionMode.STOPPED
    assert engine.session_completed is True
    assert len(failures) == 1
    assert "500" in failures[0].data["error"]
    assert ended[0].data["persisted"] is False


def test_timers_released_after_end(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    engine.start_hold()
    scheduler.advance(1)
    engine.end()
    assert scheduler.active_timers == 0


def test_close_discards_active_session(clock, scheduler):
    store = Mock()
    engine = _engine(clock, scheduler, persistence=store)
    engine.start()
    scheduler.advance(2)
    engine.close()
    assert scheduler.active_timers == 0
    assert engine.mode is SessionMode.STOPPED
    store.save_session.assert_not_called()
    assert engine.end() is None


def test_context_manager_closes(clock, scheduler):
    with _engine(clock, scheduler) as engine:
        engine.start()
        engine.start_hold()
    assert scheduler.active_timers == 0
    assert engine.mode is SessionMode.STOPPED


def test_restart_resets_progress_without_saving(clock, scheduler):
    store = Mock()
    engine = _engine(clock, scheduler, persistence=store)
    starts = _record(engine, SessionEventType.SESSION_START)
    engine.start()
    scheduler.advance(6)
    engine.start_hold()
    scheduler.advance(2)
    engine.end_hold()
    engine.start()
    assert len(starts) == 2
    assert engine.current_phase == 0
    assert engine.hold_stats.hold_count == 0
    assert engine.elapsed_time == 0
    assert scheduler.active_timers == 2
    store.save_session.assert_not_called()


def test_subscriber_pausing_on_phase_change_stops_the_frame(clock, scheduler):
    engine = _engine(clock, scheduler, frame_interval_s=20.0)
    engine.event_emitter.subscribe(SessionEventType.PHASE_CHANGE, lambda e: engine.pause())
    engine.start()
    scheduler.advance(20)
    assert engine.mode is SessionMode.PAUSED
    assert engine.current_phase == 1
    assert engine.countdown == 7


def test_breath_goal_ends_session(clock, scheduler):
    store = Mock()
    engine = _engine(clock, scheduler, key="22", persistence=store, goal=SessionGoal(GoalKind.BREATHS, 4))
    reached = _record(engine, SessionEventType.GOAL_REACHED)
    engine.start()
    scheduler.advance(20)
    assert len(reached) == 1
    assert engine.mode is SessionMode.STOPPED
    summary = store.save_session.call_args[0][0]
    assert summary.breath_count == 4
    assert summary.duration == 8
    assert scheduler.active_timers == 0


def test_duration_goal_ends_session(clock, scheduler):
    engine = _engine(clock, scheduler, goal=SessionGoal(GoalKind.DURATION, 5))
    ended = _record(engine, SessionEventType.SESSION_END)
    engine.start()
    scheduler.advance(12)
    assert len(ended) == 1
    assert ended[0].data["duration"] == 5
    assert engine.elapsed_time == 5


def test_set_pattern_ends_active_session(clock, scheduler):
    store = Mock()
    engine = _engine(clock, scheduler, persistence=store)
    engine.start()
    scheduler.advance(3)
    engine.set_pattern(BUILTIN_PATTERNS["box"])
    store.save_session.assert_called_once()
    assert engine.mode is SessionMode.STOPPED
    assert engine.pattern.pattern_key == "4-4-4-4"
    assert engine.countdown == 4


def test_acknowledge_completion_clears_flag(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    engine.end()
    assert engine.session_completed
    engine.acknowledge_completion()
    assert not engine.session_completed


def test_snapshot_serializes_camel_case(clock, scheduler):
    engine = _engine(clock, scheduler)
    engine.start()
    scheduler.advance(2)
    engine.start_hold()
    data = engine.snapshot().to_dict()
    assert data["isActive"] is True
    assert data["isPaused"] is True
    assert data["isHolding"] is True
    assert data["currentPhase"] == 0
    assert data["elapsedTime"] == 2
    assert data["holdStats"]["holdCount"] == 0


def test_custom_pattern_runs(clock, scheduler):
    pattern = parse_sequence("3-1")
    engine = BreathingSessionEngine(pattern, clock=clock, scheduler=scheduler)
    engine.start()
    scheduler.advance(8.5)
    assert engine.breath_count == 4
    assert engine.end().pattern == "3-1"


def test_elapsed_ticks_are_emitted(clock, scheduler):
    engine = _engine(clock, scheduler)
    ticks = []
    engine.event_emitter.subscribe(SessionEventType.ELAPSED_TICK, lambda e: ticks.append(e.data["elapsed_time"]))
    engine.start()
    scheduler.advance(3)
    assert ticks == [1, 2, 3]


@pytest.mark.parametrize("target", [0, -3])
def test_goal_requires_positive_target(target):
    with pytest.raises(ValueError):
        SessionGoal(GoalKind.BREATHS, target)


def test_resume_from_hold_announces_final_phase(clock, scheduler):
    engine = _engine(clock, scheduler)
    resumed = _record(engine, SessionEventType.SESSION_RESUME)
    engine.start()
    engine.start_hold()
    scheduler.advance(2)
    engine.resume(phase=2)
    assert [e.data["phase"] for e in resumed] == [2]
    engine.start_hold()
    engine.resume()
    assert [e.data["phase"] for e in resumed] == [2, 0]
