from datetime import datetime, timezone

from ..session import DURATION_PRESETS, GoalKind, HoldStats, SessionGoal, SessionMode, SessionSummary


def test_mode_flags():
    assert not SessionMode.STOPPED.is_active
    assert SessionMode.RUNNING.is_active and not SessionMode.RUNNING.is_paused
    assert SessionMode.PAUSED.is_paused and not SessionMode.PAUSED.is_holding
    assert SessionMode.HOLDING.is_paused and SessionMode.HOLDING.is_holding


def test_goals():
    assert SessionGoal(GoalKind.BREATHS, 10).reached(10, 0)
    assert not SessionGoal(GoalKind.BREATHS, 10).reached(9, 999)
    assert SessionGoal(GoalKind.DURATION, 90).reached(0, 90)
    assert DURATION_PRESETS == (90, 120, 150, 180, 210, 240, 270, 300)


def test_hold_stats_average_rounds_half_up():
    stats = HoldStats()
    assert stats.average_hold == 0
    stats.record(4)
    stats.record(5)
    assert stats.average_hold == 5
    assert stats.to_dict() == {"holdCount": 2, "totalHoldTime": 9, "longestHold": 5, "currentHoldTime": 0}


def test_summary_payload_omits_timestamp():
    summary = SessionSummary("2-2", 61, 30, completed_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    assert "completedAt" not in summary.to_payload()
    assert summary.to_dict()["completedAt"] == "2024-01-02T03:04:05+00:00"
    assert SessionSummary.from_dict(summary.to_dict()) == summary
