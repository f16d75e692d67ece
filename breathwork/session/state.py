"""Session state types shared by the engine, the API client and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional


class SessionMode(Enum):
    """Engine execution states.

    Holding is its own state rather than a flag on top of PAUSED, so
    combinations like "holding but not paused" cannot be represented.
    """
    STOPPED = auto()   # No session, or the last one has ended
    RUNNING = auto()   # Phases advance, elapsed time accrues
    PAUSED = auto()    # Ordinary pause; resumes at the current phase
    HOLDING = auto()   # Timed hold; ends back at phase 0

    @property
    def is_active(self) -> bool:
        return self is not SessionMode.STOPPED

    @property
    def is_paused(self) -> bool:
        return self in (SessionMode.PAUSED, SessionMode.HOLDING)

    @property
    def is_holding(self) -> bool:
        return self is SessionMode.HOLDING


class GoalKind(Enum):
    BREATHS = "breaths"
    DURATION = "duration"


@dataclass(frozen=True)
class SessionGoal:
    """Stop condition chosen before a session starts."""
    kind: GoalKind
    target: int

    def __post_init__(self) -> None:
        if self.target <= 0:
            raise ValueError("goal target must be positive")

    def reached(self, breath_count: int, elapsed_time: int) -> bool:
        if self.kind is GoalKind.BREATHS:
            return breath_count >= self.target
        return elapsed_time >= self.target


# Duration presets offered by the session setup (seconds).
DURATION_PRESETS: tuple[int, ...] = tuple(range(90, 301, 30))


@dataclass
class HoldStats:
    hold_count: int = 0
    total_hold_time: int = 0
    longest_hold: int = 0
    current_hold_time: int = 0

    @property
    def average_hold(self) -> int:
        if self.hold_count == 0:
            return 0
        return int(self.total_hold_time / self.hold_count + 0.5)

    def record(self, duration: int) -> None:
        self.hold_count += 1
        self.total_hold_time += duration
        self.longest_hold = max(self.longest_hold, duration)
        self.current_hold_time = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "holdCount": self.hold_count,
            "totalHoldTime": self.total_hold_time,
            "longestHold": self.longest_hold,
            "currentHoldTime": self.current_hold_time,
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the engine for UI layers."""
    mode: SessionMode
    current_phase: int
    current_cycle: int
    elapsed_time: int
    countdown: float
    session_completed: bool
    hold_stats: HoldStats
    breath_count: int

    @property
    def is_active(self) -> bool:
        return self.mode.is_active

    @property
    def is_paused(self) -> bool:
        return self.mode.is_paused

    @property
    def is_holding(self) -> bool:
        return self.mode.is_holding

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isActive": self.is_active,
            "isPaused": self.is_paused,
            "isHolding": self.is_holding,
            "currentPhase": self.current_phase,
            "currentCycle": self.current_cycle,
            "elapsedTime": self.elapsed_time,
            "countdown": self.countdown,
            "sessionCompleted": self.session_completed,
            "breathCount": self.breath_count,
            "holdStats": self.hold_stats.to_dict(),
        }


@dataclass
class SessionSummary:
    """Finalized record of one session, as persisted by the API."""
    pattern: str
    duration: int
    breath_count: int
    hold_count: int = 0
    total_hold_time: int = 0
    longest_hold: int = 0
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        """Body of ``POST /api/sessions``."""
        return {
            "pattern": self.pattern,
            "duration": self.duration,
            "breathCount": self.breath_count,
            "holdCount": self.hold_count,
            "totalHoldTime": self.total_hold_time,
            "longestHold": self.longest_hold,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_payload()
        data["completedAt"] = self.completed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionSummary":
        completed_raw: Optional[str] = data.get("completedAt")
        if completed_raw:
            # Accept a trailing "Z" for UTC.
            completed_at = datetime.fromisoformat(completed_raw.replace("Z", "+00:00"))
        else:
            completed_at = datetime.now(timezone.utc)
        if completed_at.tzinfo is None:
            completed_at = completed_at.replace(tzinfo=timezone.utc)
        return cls(
            pattern=str(data.get("pattern", "")),
            duration=int(data.get("duration", 0)),
            breath_count=int(data.get("breathCount", 0)),
            hold_count=int(data.get("holdCount", 0) or 0),
            total_hold_time=int(data.get("totalHoldTime", 0) or 0),
            longest_hold=int(data.get("longestHold", 0) or 0),
            completed_at=completed_at,
        )
