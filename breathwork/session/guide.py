"""Presentation semantics layered on top of the timing engine.

Maps (pattern, phase, countdown) to labels, color tokens and a target scale
for the breathing circle. Nothing here feeds back into countdown or phase
advance arithmetic; the engine never imports this module.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from .patterns import Pattern


class PhaseVariant(Enum):
    INHALE = "inhale"
    HOLD = "hold"
    EXHALE = "exhale"


class AnimationKind(Enum):
    SPRING = "spring"  # duration-proportional easing
    SNAP = "snap"      # fixed-duration jump between extremes


DEFAULT_LABELS: Tuple[str, ...] = ("Inhale", "Hold", "Exhale", "Hold")

# Patterns that alternate two labels regardless of sequence length.
TWO_LABEL_PATTERNS: dict[str, Tuple[str, str]] = {
    "2-4 Ha Breath": ("Inhale", "Ha"),
    "2-2 Energized Focus": ("Inhale", "Exhale"),
    "Breath of Fire": ("Inhale", "Exhale"),
}

SNAP_PATTERNS = frozenset({"Breath of Fire"})

PHASE_COLORS: dict[PhaseVariant, str] = {
    PhaseVariant.INHALE: "from-purple-500/20 to-purple-600/40",
    PhaseVariant.EXHALE: "from-purple-600/40 to-purple-500/20",
    PhaseVariant.HOLD: "from-purple-500/30 to-purple-500/30",
}

MIN_SCALE = 0.4
MAX_SCALE = 1.0
SNAP_DURATION_S = 0.25


@dataclass(frozen=True)
class GuideFrame:
    """What the breathing circle should show for one engine state."""
    label: str
    variant: PhaseVariant
    color: str
    scale: float
    animation: AnimationKind
    transition_s: float


def is_two_label(pattern: Pattern) -> bool:
    return pattern.name in TWO_LABEL_PATTERNS


def phase_labels(pattern: Pattern) -> Tuple[str, ...]:
    """Labels indexed by phase for *pattern*."""
    pair = TWO_LABEL_PATTERNS.get(pattern.name)
    if pair:
        return tuple(pair[i % 2] for i in range(len(pattern)))
    return tuple(DEFAULT_LABELS[i % len(DEFAULT_LABELS)] for i in range(len(pattern)))


def phase_label(pattern: Pattern, phase: int) -> str:
    return phase_labels(pattern)[phase % len(pattern)]


def phase_variant(pattern: Pattern, phase: int) -> PhaseVariant:
    if is_two_label(pattern):
        return PhaseVariant.INHALE if phase % 2 == 0 else PhaseVariant.EXHALE
    if phase == 0:
        return PhaseVariant.INHALE
    if phase == 2:
        return PhaseVariant.EXHALE
    return PhaseVariant.HOLD


def phase_color(variant: PhaseVariant) -> str:
    return PHASE_COLORS[variant]


def breath_scale(
    pattern: Pattern,
    phase: int,
    countdown: float,
    *,
    active: bool = True,
    paused: bool = False,
) -> GuideFrame:
    """Compute the guide frame for the current engine state.

    Inhale grows the circle from 0.4 to 1.0 in proportion to phase progress,
    exhale shrinks it back. Holds keep the extreme reached by the previous
    phase. Inactive or paused sessions rest at the minimum scale.
    """
    variant = phase_variant(pattern, phase)
    label = phase_label(pattern, phase)
    color = phase_color(variant)
    snap = pattern.name in SNAP_PATTERNS
    animation = AnimationKind.SNAP if snap else AnimationKind.SPRING
    transition_s = SNAP_DURATION_S if snap else 1.0

    if not active or paused:
        return GuideFrame(label, variant, color, MIN_SCALE, animation, transition_s)

    duration = pattern.duration_of(phase % len(pattern))
    progress = min(1.0, max(0.0, (duration - countdown) / duration))

    if variant is PhaseVariant.INHALE:
        scale = MAX_SCALE if snap else MIN_SCALE + progress * (MAX_SCALE - MIN_SCALE)
    elif variant is PhaseVariant.EXHALE:
        scale = MIN_SCALE if snap else MAX_SCALE - progress * (MAX_SCALE - MIN_SCALE)
    else:
        # A hold after the inhale stays full; a hold after the exhale stays empty.
        scale = MAX_SCALE if phase == 1 else MIN_SCALE
    return GuideFrame(label, variant, color, round(scale, 4), animation, transition_s)


def format_clock(seconds: int | float) -> str:
    """Render seconds as ``m:ss`` or ``h:mm:ss``."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
