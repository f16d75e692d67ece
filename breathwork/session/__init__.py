"""
Breathing session core for Breathwork.

Core Components:
- Pattern: named sequence of phase durations
- BreathingSessionEngine: phase/cycle timing, pause/resume, holds, summaries
- Clock / Scheduler: injectable time sources (system + Qt, or manual for tests)
- SessionEventEmitter: events for UI, audio and logging consumers

The audio pacing module (audio.py) is not imported here so the core stays
usable without an audio stack.
"""

from .clock import (
    Clock,
    ManualClock,
    ManualScheduler,
    QtScheduler,
    Scheduler,
    SystemClock,
)

from .engine import BreathingSessionEngine, SessionPersistence

from .events import (
    SessionEvent,
    SessionEventEmitter,
    SessionEventType,
)

from .patterns import BUILTIN_PATTERNS, Pattern, get_pattern, parse_sequence

from .state import (
    DURATION_PRESETS,
    GoalKind,
    HoldStats,
    SessionGoal,
    SessionMode,
    SessionSnapshot,
    SessionSummary,
)

__all__ = [
    # Patterns
    'Pattern',
    'BUILTIN_PATTERNS',
    'get_pattern',
    'parse_sequence',

    # State
    'SessionMode',
    'SessionGoal',
    'GoalKind',
    'DURATION_PRESETS',
    'HoldStats',
    'SessionSnapshot',
    'SessionSummary',

    # Time
    'Clock',
    'SystemClock',
    'ManualClock',
    'Scheduler',
    'ManualScheduler',
    'QtScheduler',

    # Event system
    'SessionEventType',
    'SessionEvent',
    'SessionEventEmitter',

    # Execution
    'BreathingSessionEngine',
    'SessionPersistence',
]
