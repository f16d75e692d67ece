"""Local session journal and practice statistics.

The journal is an append-only JSON-lines file in the per-user data
directory. It implements the same ``save_session`` interface as the API
client, so the engine can persist offline. The statistics helpers compute
the same shapes the stats endpoint returns, from any list of summaries.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Any, Iterable, Optional

from .platform_paths import ensure_dir, get_journal_path
from .session.state import SessionSnapshot, SessionSummary

logger = logging.getLogger(__name__)


class SessionJournal:
    """Append-only store of finished sessions."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_journal_path()

    def save_session(self, summary: SessionSummary) -> dict[str, Any]:
        ensure_dir(self.path.parent)
        record = summary.to_dict()
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")
        logger.info(f"[journal] Saved session {record['pattern']} ({record['duration']}s) to {self.path}")
        return record

    def load(self) -> list[SessionSummary]:
        """Read every record, oldest first. Corrupt lines are skipped."""
        if not self.path.exists():
            return []
        records: list[SessionSummary] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(SessionSummary.from_dict(json.loads(line)))
                except (ValueError, TypeError) as exc:
                    logger.warning(f"[journal] Skipping line {lineno} of {self.path}: {exc}")
        return records

    def sessions_on(self, day: date, tz: Optional[tzinfo] = None) -> list[SessionSummary]:
        """Sessions completed on *day*, newest first."""
        matches = [r for r in self.load() if local_date(r.completed_at, tz) == day]
        matches.sort(key=lambda r: r.completed_at, reverse=True)
        return matches


def local_date(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    return moment.astimezone(tz).date()


def compute_streaks(dates: Iterable[date], today: date) -> tuple[int, int]:
    """
    Find consecutive-day practice runs.

    The current streak counts back from today, or from yesterday when
    nothing has been logged yet today, so a streak is not broken before the
    day is over.

    Args:
        dates: Completion dates (duplicates allowed, any order)
        today: Reference day

    Returns:
        (current_streak, longest_streak) in days
    """
    days = sorted(set(dates))
    if not days:
        return 0, 0

    longest = run = 1
    for previous, current in zip(days, days[1:]):
        if current - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)

    # The run ending at the most recent day is "current" only if it is fresh.
    last = days[-1]
    if last not in (today, today - timedelta(days=1)):
        return 0, longest
    current = 1
    for previous, later in zip(reversed(days[:-1]), reversed(days)):
        if later - previous != timedelta(days=1):
            break
        current += 1
    return current, longest


def summarize(records: Iterable[SessionSummary], today: date, tz: Optional[tzinfo] = None) -> dict[str, int]:
    """Totals in the shape of ``GET /api/sessions/stats``."""
    records = list(records)
    total_seconds = sum(r.duration for r in records)
    current, longest = compute_streaks((local_date(r.completed_at, tz) for r in records), today)
    return {
        "totalSessions": len(records),
        "totalMinutes": total_seconds // 60,
        "currentStreak": current,
        "longestStreak": longest,
        "todayStats": today_stats(records, today, tz),
    }


def today_stats(records: Iterable[SessionSummary], today: date, tz: Optional[tzinfo] = None) -> dict[str, int]:
    todays = [r for r in records if local_date(r.completed_at, tz) == today]
    return {
        "totalBreaths": sum(r.breath_count for r in todays),
        "totalMinutes": sum(r.duration for r in todays) // 60,
        "totalHolds": sum(r.hold_count for r in todays),
        "totalHoldTime": sum(r.total_hold_time for r in todays),
        "longestHold": max((r.longest_hold for r in todays), default=0),
    }


def weekly_summary(
    records: Iterable[SessionSummary],
    week_of: date,
    tz: Optional[tzinfo] = None,
) -> dict[str, Any]:
    """Monday-to-Sunday overview of the week containing *week_of*."""
    monday = week_of - timedelta(days=week_of.weekday())
    days = [monday + timedelta(days=i) for i in range(7)]
    by_day: dict[date, list[SessionSummary]] = {d: [] for d in days}
    for record in records:
        day = local_date(record.completed_at, tz)
        if day in by_day:
            by_day[day].append(record)

    daily = []
    for day in days:
        sessions = by_day[day]
        daily.append({
            "date": day.isoformat(),
            "sessions": len(sessions),
            "breathTime": sum(r.duration for r in sessions),
            "patterns": sorted({r.pattern for r in sessions}),
        })

    week_records = [r for day in days for r in by_day[day]]
    return {
        "activeDays": sum(1 for d in daily if d["sessions"]),
        "totalSessions": len(week_records),
        "totalBreathTime": sum(r.duration for r in week_records),
        "patternVariety": len({r.pattern for r in week_records}),
        "dailySummaries": daily,
    }


def daily_totals(server_today: Optional[dict[str, Any]], snapshot: SessionSnapshot) -> dict[str, int]:
    """Today's totals from the server plus the session in progress."""
    base = server_today or {}
    holds = int(base.get("totalHolds", 0) or 0) + snapshot.hold_stats.hold_count
    hold_time = int(base.get("totalHoldTime", 0) or 0) + snapshot.hold_stats.total_hold_time
    return {
        "totalBreaths": int(base.get("totalBreaths", 0) or 0) + snapshot.breath_count,
        "totalMinutes": int(base.get("totalMinutes", 0) or 0) + snapshot.elapsed_time // 60,
        "totalHolds": holds,
        "totalHoldTime": hold_time,
        "averageHold": int(hold_time / holds + 0.5) if holds else 0,
        "longestHold": max(int(base.get("longestHold", 0) or 0), snapshot.hold_stats.longest_hold),
    }
