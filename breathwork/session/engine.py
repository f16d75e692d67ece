"""
Breathing Session Engine - lifecycle and timing of one practice session.

The BreathingSessionEngine drives a breathing pattern with:
- Phase/cycle progression from the pattern's fixed timing sequence
- Pause/resume with time-skew correction of the session start time
- A separate HOLDING state with its own duration accounting
- Elapsed-time accounting net of ordinary pauses
- Hold statistics (count, total, longest, current) across the session
- A finalized summary handed to a persistence collaborator on end()

Architecture:
    Three repeating timers, owned by the engine and created through the
    injected Scheduler:
      phase clock     (~60 Hz)  RUNNING only  -> _on_frame()
      hold sampler    (100 ms)  HOLDING only  -> _on_hold_sample()
      elapsed ticker  (1 s)     RUNNING only  -> _on_elapsed_tick()
    Each callback re-checks the mode and cancels itself when it no longer
    applies. Phase timing reads the injected Clock's monotonic source;
    session and hold durations read its wall source.

Usage:
    engine = BreathingSessionEngine(pattern, clock=clock, scheduler=scheduler,
                                    persistence=api_client)
    engine.start()
    engine.start_hold(); ...; engine.end_hold()
    summary = engine.end()
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from ..logging_utils import BurstSampler
from .clock import Clock, Scheduler, SystemClock, TimerHandle
from .events import SessionEvent, SessionEventEmitter, SessionEventType
from .patterns import Pattern
from .state import HoldStats, SessionGoal, SessionMode, SessionSnapshot, SessionSummary

FRAME_INTERVAL_S = 1.0 / 60.0
HOLD_SAMPLE_INTERVAL_S = 0.1
ELAPSED_INTERVAL_S = 1.0

# Slack for float accumulation when comparing clock deltas to step sizes.
_EPSILON = 1e-6


def round_seconds(value: float) -> int:
    """Round half up, matching how durations are reported to the API."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


class SessionPersistence(Protocol):
    def save_session(self, summary: SessionSummary) -> Any:
        ...


class BreathingSessionEngine:
    """
    Session state machine for guided breathing.

    Invalid operation orderings (resume while stopped, end_hold while not
    holding, double pause) are no-op guards that return False; they are
    normal UI races and never raise.
    """

    def __init__(
        self,
        pattern: Pattern,
        *,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        persistence: Optional[SessionPersistence] = None,
        event_emitter: Optional[SessionEventEmitter] = None,
        goal: Optional[SessionGoal] = None,
        frame_interval_s: float = FRAME_INTERVAL_S,
    ):
        """
        Initialize the engine.

        Args:
            pattern: Breathing pattern to drive
            clock: Time source (defaults to the system clock)
            scheduler: Timer factory (defaults to Qt timers)
            persistence: Receives the SessionSummary on end() (optional)
            event_emitter: Event bus for UI/audio consumers (optional)
            goal: Stop automatically after N breaths or N seconds (optional)
            frame_interval_s: Phase clock period
        """
        if scheduler is None:
            from .clock import QtScheduler
            scheduler = QtScheduler()

        self.pattern = pattern
        self.clock = clock or SystemClock()
        self.scheduler = scheduler
        self.persistence = persistence
        self.event_emitter = event_emitter or SessionEventEmitter()
        self.goal = goal
        self.frame_interval_s = frame_interval_s

        self.logger = logging.getLogger(__name__)

        # State machine
        self._mode = SessionMode.STOPPED

        # Progression
        self._current_phase = 0
        self._current_cycle = 0
        self._countdown: float = pattern.sequence[0]
        self._tick_ref: float = 0.0  # monotonic time of the last countdown step

        # Session timing (wall clock)
        self._start_time: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._hold_started_at: Optional[float] = None
        self._elapsed = 0

        self._hold_stats = HoldStats()
        self._session_completed = False

        # Timer handles
        self._phase_timer: Optional[TimerHandle] = None
        self._hold_timer: Optional[TimerHandle] = None
        self._elapsed_timer: Optional[TimerHandle] = None

        self._frame_sampler = BurstSampler(interval_s=5.0, now=self.clock.monotonic)
        self._generation = 0  # bumped by start() so a stale frame loop can bail out

    # ===== Exposed surface =====

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def is_active(self) -> bool:
        return self._mode.is_active

    @property
    def is_paused(self) -> bool:
        return self._mode.is_paused

    @property
    def is_holding(self) -> bool:
        return self._mode.is_holding

    @property
    def current_phase(self) -> int:
        return self._current_phase

    @property
    def current_cycle(self) -> int:
        return self._current_cycle

    @property
    def countdown(self) -> float:
        """Seconds left in the current phase."""
        return self._countdown

    @property
    def elapsed_time(self) -> int:
        """Seconds practiced, net of ordinary pauses. Frozen after end()."""
        return self._elapsed

    @property
    def session_completed(self) -> bool:
        return self._session_completed

    @property
    def hold_stats(self) -> HoldStats:
        return replace(self._hold_stats)

    @property
    def breath_count(self) -> int:
        """Phase boundaries crossed this session, including the current partial cycle."""
        return self._current_cycle * len(self.pattern) + self._current_phase

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            mode=self._mode,
            current_phase=self._current_phase,
            current_cycle=self._current_cycle,
            elapsed_time=self._elapsed,
            countdown=self._countdown,
            session_completed=self._session_completed,
            hold_stats=replace(self._hold_stats),
            breath_count=self.breath_count,
        )

    # ===== Lifecycle =====

    def start(self) -> bool:
        """Start a fresh session. Restarts (without saving) if one is active."""
        if self._mode.is_active:
            self.logger.info(f"[session] Restarting active session ({self._mode.name})")
        self._cancel_timers()

        now = self.clock.wall()
        self._generation += 1
        self._mode = SessionMode.RUNNING
        self._current_phase = 0
        self._current_cycle = 0
        self._countdown = self.pattern.sequence[0]
        self._tick_ref = self.clock.monotonic()
        self._start_time = now
        self._paused_at = None
        self._hold_started_at = None
        self._elapsed = 0
        self._hold_stats = HoldStats()
        self._session_completed = False

        self.logger.info(f"[session] Started {self.pattern.name} ({self.pattern.pattern_key})")
        self._start_running_timers()
        self._emit(SessionEventType.SESSION_START, {
            "pattern": self.pattern.pattern_key,
            "phase": 0,
            "countdown": self._countdown,
        })
        return True

    def pause(self) -> bool:
        """Suspend phase progression and elapsed-time accrual."""
        if self._mode is not SessionMode.RUNNING:
            self.logger.debug(f"[session] Ignoring pause while {self._mode.name}")
            return False

        now = self.clock.wall()
        self._refresh_elapsed(now)
        self._mode = SessionMode.PAUSED
        self._paused_at = now
        self._stop_running_timers()

        self.logger.info(f"[session] Paused at phase {self._current_phase} (elapsed={self._elapsed}s)")
        self._emit(SessionEventType.SESSION_PAUSE, {"phase": self._current_phase})
        return True

    def resume(self, phase: Optional[int] = None) -> bool:
        """
        Resume progression.

        From PAUSED the session continues at *phase* (default: the current
        phase) with a full countdown for that phase; the paused span is
        excluded from elapsed time. From HOLDING the hold is closed through
        end_hold() first, which restarts at phase 0, and *phase* is applied
        afterwards.

        Args:
            phase: Phase index to resume into (optional)

        Returns:
            True if the session is running afterwards because of this call
        """
        if self._mode is SessionMode.HOLDING:
            self.end_hold()
            if phase is not None and phase != self._current_phase:
                self._set_phase(self._validated_phase(phase))
            self._emit(SessionEventType.SESSION_RESUME, {"phase": self._current_phase})
            return True

        if self._mode is not SessionMode.PAUSED:
            self.logger.debug(f"[session] Ignoring resume while {self._mode.name}")
            return False

        target = self._current_phase if phase is None else self._validated_phase(phase)
        now = self.clock.wall()
        self._fold_open_pause(now)
        self._mode = SessionMode.RUNNING
        self._set_phase(target)
        self._refresh_elapsed(now)
        self._start_running_timers()

        self.logger.info(f"[session] Resumed at phase {target}")
        self._emit(SessionEventType.SESSION_RESUME, {"phase": target})
        return True

    def start_hold(self) -> bool:
        """Enter a timed hold. Phase progression freezes until end_hold()."""
        if self._mode not in (SessionMode.RUNNING, SessionMode.PAUSED):
            self.logger.debug(f"[hold] Ignoring start_hold while {self._mode.name}")
            return False

        now = self.clock.wall()
        if self._mode is SessionMode.RUNNING:
            self._refresh_elapsed(now)
        else:
            # The ordinary pause ends where the hold begins.
            self._fold_open_pause(now)
        self._stop_running_timers()

        self._mode = SessionMode.HOLDING
        self._hold_started_at = now
        self._hold_stats.current_hold_time = 0
        self._hold_timer = self.scheduler.call_repeating(HOLD_SAMPLE_INTERVAL_S, self._on_hold_sample)

        self.logger.info(f"[hold] Hold started during phase {self._current_phase}")
        self._emit(SessionEventType.HOLD_START, {"phase": self._current_phase})
        return True

    def end_hold(self) -> bool:
        """Close the hold, record its duration and restart at phase 0."""
        if self._mode is not SessionMode.HOLDING:
            self.logger.debug(f"[hold] Ignoring end_hold while {self._mode.name}")
            return False

        now = self.clock.wall()
        duration = self._finish_hold(now)

        # Re-enter the pattern at the inhale. All fields change before any
        # timer can observe the state.
        self._mode = SessionMode.RUNNING
        self._current_phase = 0
        self._countdown = self.pattern.sequence[0]
        self._tick_ref = self.clock.monotonic()
        self._refresh_elapsed(now)
        self._start_running_timers()

        self._emit(SessionEventType.HOLD_END, {
            "duration": duration,
            "hold_stats": self._hold_stats.to_dict(),
        })
        return True

    def end(self) -> Optional[SessionSummary]:
        """
        End the session and hand the summary to the persistence collaborator.

        A failed save is logged and reported through PERSIST_FAILED; the
        session is over locally either way.

        Returns:
            The SessionSummary, or None if no session was started
        """
        if self._start_time is None:
            self.logger.debug("[session] Ignoring end: no session started")
            return None

        now = self.clock.wall()
        if self._mode is SessionMode.HOLDING:
            self._finish_hold(now)
        elif self._mode is SessionMode.PAUSED:
            self._fold_open_pause(now)

        final_duration = max(0, round_seconds(now - self._start_time))
        self._cancel_timers()
        self._elapsed = final_duration
        self._mode = SessionMode.STOPPED
        self._start_time = None
        self._paused_at = None
        self._session_completed = True

        summary = SessionSummary(
            pattern=self.pattern.pattern_key,
            duration=final_duration,
            breath_count=self.breath_count,
            hold_count=self._hold_stats.hold_count,
            total_hold_time=self._hold_stats.total_hold_time,
            longest_hold=self._hold_stats.longest_hold,
            completed_at=datetime.fromtimestamp(now, tz=timezone.utc),
        )
        self.logger.info(
            f"[session] Ended: duration={summary.duration}s breaths={summary.breath_count} "
            f"holds={summary.hold_count}"
        )

        persisted = self._persist(summary)
        data = summary.to_dict()
        data["persisted"] = persisted
        self._emit(SessionEventType.SESSION_END, data)
        return summary

    def set_pattern(self, pattern: Pattern) -> None:
        """Switch patterns. An active session is ended (and saved) first."""
        if self._mode.is_active:
            self.end()
        self.pattern = pattern
        self._current_phase = 0
        self._current_cycle = 0
        self._countdown = pattern.sequence[0]

    def acknowledge_completion(self) -> None:
        """Clear the one-shot completion flag once the UI has shown it."""
        self._session_completed = False

    def close(self) -> None:
        """Release every timer. An unfinished session is discarded, not saved."""
        if self._mode.is_active:
            self.logger.info(f"[session] Engine closed while {self._mode.name}; session discarded")
            if self._mode is SessionMode.RUNNING:
                self._refresh_elapsed(self.clock.wall())
        self._cancel_timers()
        self._mode = SessionMode.STOPPED
        self._start_time = None
        self._paused_at = None
        self._hold_started_at = None

    def __enter__(self) -> "BreathingSessionEngine":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()

    # ===== Timer callbacks =====

    def _on_frame(self) -> None:
        """Phase clock: advance countdown/phase against the monotonic clock."""
        if self._mode is not SessionMode.RUNNING:
            self._phase_timer = self._cancel(self._phase_timer)
            return

        frames = self._frame_sampler.record()
        if frames is not None:
            self.logger.debug(f"[engine.tick] {frames} frames, phase={self._current_phase} countdown={self._countdown}")

        generation = self._generation
        now = self.clock.monotonic()
        pending = now - self._tick_ref
        step = min(1.0, self._countdown)
        while pending + _EPSILON >= step:
            self._tick_ref += step
            pending -= step
            self._countdown = round(self._countdown - step, 6)
            if self._countdown <= _EPSILON:
                self._advance_phase()
                if self._mode is not SessionMode.RUNNING or generation != self._generation:
                    # A subscriber changed the session state.
                    return
            step = min(1.0, self._countdown)

        self._check_goal()

    def _on_hold_sample(self) -> None:
        if self._mode is not SessionMode.HOLDING or self._hold_started_at is None:
            self._hold_timer = self._cancel(self._hold_timer)
            return
        current = max(0, round_seconds(self.clock.wall() - self._hold_started_at))
        if current != self._hold_stats.current_hold_time:
            self._hold_stats.current_hold_time = current
            self._emit(SessionEventType.HOLD_TICK, {"current_hold_time": current})

    def _on_elapsed_tick(self) -> None:
        if self._mode is not SessionMode.RUNNING:
            self._elapsed_timer = self._cancel(self._elapsed_timer)
            return
        self._refresh_elapsed(self.clock.wall())
        self._emit(SessionEventType.ELAPSED_TICK, {"elapsed_time": self._elapsed})
        self._check_goal()

    # ===== Helpers =====

    def _advance_phase(self) -> None:
        next_phase = (self._current_phase + 1) % len(self.pattern)
        wrapped = next_phase == 0
        if wrapped:
            self._current_cycle += 1
        self._current_phase = next_phase
        self._countdown = self.pattern.sequence[next_phase]

        self._emit(SessionEventType.PHASE_CHANGE, {
            "phase": self._current_phase,
            "cycle": self._current_cycle,
            "countdown": self._countdown,
        })
        if wrapped:
            self._emit(SessionEventType.CYCLE_COMPLETE, {"cycle": self._current_cycle})

    def _set_phase(self, phase: int) -> None:
        self._current_phase = phase
        self._countdown = self.pattern.sequence[phase]
        self._tick_ref = self.clock.monotonic()

    def _validated_phase(self, phase: int) -> int:
        if 0 <= phase < len(self.pattern):
            return phase
        self.logger.warning(
            f"[session] Phase {phase} out of range for {self.pattern.pattern_key}; keeping phase {self._current_phase}"
        )
        return self._current_phase

    def _fold_open_pause(self, now: float) -> None:
        """Shift the start time forward so an open pause is not charged."""
        if self._paused_at is not None and self._start_time is not None:
            self._start_time += now - self._paused_at
        self._paused_at = None

    def _refresh_elapsed(self, now: float) -> None:
        if self._start_time is None:
            return
        self._elapsed = max(0, round_seconds(now - self._start_time))

    def _finish_hold(self, now: float) -> int:
        started = self._hold_started_at if self._hold_started_at is not None else now
        duration = max(0, round_seconds(now - started))
        self._hold_timer = self._cancel(self._hold_timer)
        self._hold_stats.record(duration)
        self._hold_started_at = None
        self.logger.info(
            f"[hold] Hold ended after {duration}s "
            f"(count={self._hold_stats.hold_count}, longest={self._hold_stats.longest_hold}s)"
        )
        return duration

    def _check_goal(self) -> None:
        if self.goal is None or self._mode is not SessionMode.RUNNING:
            return
        if self.goal.reached(self.breath_count, self._elapsed):
            self.logger.info(f"[session] Goal reached: {self.goal.kind.value} >= {self.goal.target}")
            self._emit(SessionEventType.GOAL_REACHED, {
                "kind": self.goal.kind.value,
                "target": self.goal.target,
            })
            if self._mode.is_active:
                self.end()

    def _persist(self, summary: SessionSummary) -> bool:
        if self.persistence is None:
            self.logger.debug("[session] No persistence configured; summary not saved")
            return False
        try:
            self.persistence.save_session(summary)
        except Exception as exc:
            self.logger.warning(f"[session] Failed to save session: {exc}")
            self._emit(SessionEventType.PERSIST_FAILED, {"error": str(exc), "summary": summary.to_dict()})
            return False
        return True

    def _start_running_timers(self) -> None:
        if self._phase_timer is None or not self._phase_timer.active:
            self._phase_timer = self.scheduler.call_repeating(self.frame_interval_s, self._on_frame)
        if self._elapsed_timer is None or not self._elapsed_timer.active:
            self._elapsed_timer = self.scheduler.call_repeating(ELAPSED_INTERVAL_S, self._on_elapsed_tick)

    def _stop_running_timers(self) -> None:
        self._phase_timer = self._cancel(self._phase_timer)
        self._elapsed_timer = self._cancel(self._elapsed_timer)

    def _cancel_timers(self) -> None:
        self._stop_running_timers()
        self._hold_timer = self._cancel(self._hold_timer)

    @staticmethod
    def _cancel(handle: Optional[TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()
        return None

    def _emit(self, event_type: SessionEventType, data: dict[str, Any]) -> None:
        self.event_emitter.emit(SessionEvent(event_type, data=data, timestamp=self.clock.wall()))
