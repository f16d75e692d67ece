"""
Breathing Pattern Data Model.

A Pattern is a named, ordered sequence of phase durations (seconds) that
defines one breathing technique. The timing engine only looks at the
sequence; the display name selects presentation details (see guide.py).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple


def _format_duration(value: float) -> str:
    """Render a duration the way pattern keys spell it ("4", "0.5")."""
    if float(value).is_integer():
        return str(int(value))
    return format(value, "g")


@dataclass(frozen=True)
class Pattern:
    """
    One breathing technique.

    Attributes:
        key: Catalog identifier (e.g. "478")
        name: Display name (e.g. "4-7-8 Relaxation")
        sequence: Phase durations in seconds, in order
        description: Optional one-line description
    """
    key: str
    name: str
    sequence: Tuple[float, ...] = field(default_factory=tuple)
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "sequence", tuple(float(d) for d in self.sequence))
        is_valid, error = self.validate()
        if not is_valid:
            raise ValueError(f"Invalid pattern {self.name!r}: {error}")

    def validate(self) -> tuple[bool, Optional[str]]:
        """
        Check the sequence can drive a session.

        Returns:
            (is_valid, error_message) tuple
        """
        if not self.sequence:
            return False, "sequence must not be empty"
        for index, duration in enumerate(self.sequence):
            if not math.isfinite(duration) or duration <= 0:
                return False, f"phase {index} duration must be a positive number (got {duration})"
        return True, None

    def __len__(self) -> int:
        return len(self.sequence)

    @property
    def pattern_key(self) -> str:
        """Key persisted with each session, e.g. "4-7-8"."""
        return "-".join(_format_duration(d) for d in self.sequence)

    @property
    def cycle_seconds(self) -> float:
        """Length of one full traversal of the pattern."""
        return sum(self.sequence)

    def duration_of(self, phase: int) -> float:
        return self.sequence[phase]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "sequence": list(self.sequence),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pattern":
        sequence = data.get("sequence") or []
        name = data.get("name") or "-".join(_format_duration(float(d)) for d in sequence)
        return cls(
            key=str(data.get("key") or name),
            name=name,
            sequence=tuple(sequence),
            description=data.get("description", ""),
        )


BUILTIN_PATTERNS: Dict[str, Pattern] = {
    p.key: p
    for p in (
        Pattern("478", "4-7-8 Relaxation", (4, 7, 8),
                "Deep calming breath pattern for relaxation and stress relief"),
        Pattern("box", "Box Breathing (4x4)", (4, 4, 4, 4),
                "Equal duration breathing for focus and mental clarity"),
        Pattern("22", "2-2 Energized Focus", (2, 2),
                "Quick energizing pattern to enhance alertness"),
        Pattern("555", "5-5-5 Triangle", (5, 5, 5),
                "Balanced breathing for meditation and mindfulness"),
        Pattern("24ha", "2-4 Ha Breath", (2, 4),
                "Short inhale with a long audible 'ha' exhale"),
        Pattern("fire", "Breath of Fire", (0.5, 0.5),
                "Rapid energizing breath for vitality and warmth"),
    )
}


def get_pattern(identifier: str) -> Optional[Pattern]:
    """
    Look up a built-in pattern.

    Args:
        identifier: Catalog key ("478"), display name (case-insensitive)
            or pattern key ("4-7-8")

    Returns:
        Matching Pattern or None
    """
    if identifier in BUILTIN_PATTERNS:
        return BUILTIN_PATTERNS[identifier]
    lowered = identifier.strip().lower()
    for pattern in BUILTIN_PATTERNS.values():
        if pattern.name.lower() == lowered or pattern.pattern_key == lowered:
            return pattern
    return None


_SEPARATORS = re.compile(r"[\s,]+")
# A dash separates only when it sits between two numbers ("4-7-8"); a leading
# dash stays with its number so "-1" is rejected as negative.
_DASH_BETWEEN = re.compile(r"(?<=[\d.])-(?=[\d.])")


def parse_sequence(text: str, name: Optional[str] = None) -> Pattern:
    """Build a custom pattern from "4-7-8" or "4,7,8".

    Raises:
        ValueError: If the text holds no durations or a duration is invalid
    """
    parts = [
        part
        for chunk in _SEPARATORS.split(text.strip())
        for part in _DASH_BETWEEN.split(chunk)
        if part
    ]
    if not parts:
        raise ValueError(f"No phase durations in {text!r}")
    try:
        durations = tuple(float(p) for p in parts)
    except ValueError as exc:
        raise ValueError(f"Invalid phase duration in {text!r}") from exc
    label = name or "-".join(_format_duration(d) for d in durations)
    return Pattern(key=label, name=label, sequence=durations)


def iter_patterns() -> Iterable[Pattern]:
    return BUILTIN_PATTERNS.values()
