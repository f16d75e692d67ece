"""Audio pacing cues for breathing sessions.

PhaseChime listens to engine events and plays a short synthesized tone per
phase variant through pygame's mixer. Audio is strictly best effort: a
missing or broken audio device leaves the chime disabled and never touches
the engine.
"""

from __future__ import annotations

import logging
import os

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import numpy as np
import pygame

from .events import SessionEvent, SessionEventType
from .guide import PhaseVariant, phase_variant

_log = logging.getLogger(__name__)

SAMPLE_RATE = 44100

# Tone per phase variant (Hz); holds get a lower bell.
VARIANT_TONES: dict[PhaseVariant, float] = {
    PhaseVariant.INHALE: 528.0,
    PhaseVariant.HOLD: 396.0,
    PhaseVariant.EXHALE: 432.0,
}
HOLD_TONE_HZ = 330.0

_CHIME_CACHE: dict[tuple[float, float, int, float], np.ndarray] = {}


def clamp(x: float, a: float, b: float) -> float:
    return max(a, min(b, x))


def normalize_volume(value: float) -> float:
    """Clamp arbitrary numeric volume inputs to 0..1."""
    try:
        return clamp(float(value), 0.0, 1.0)
    except (TypeError, ValueError):
        return 0.0


def generate_chime_int16_stereo(
    frequency_hz: float,
    *,
    duration_s: float = 0.35,
    sample_rate: int = SAMPLE_RATE,
    peak: float = 0.25,
) -> np.ndarray:
    """Generate a soft stereo int16 bell tone.

    A sine with its octave partial under an exponential decay, with a short
    raised-cosine attack to avoid clicks.

    Returns:
        numpy int16 array shaped (n_samples, 2)
    """
    duration_s = float(max(0.05, duration_s))
    sample_rate = int(max(8000, sample_rate))
    peak = float(clamp(peak, 0.01, 0.95))

    cache_key = (float(frequency_hz), duration_s, sample_rate, peak)
    cached = _CHIME_CACHE.get(cache_key)
    if cached is not None:
        return cached

    n = int(round(duration_s * sample_rate))
    t = np.arange(n, dtype=np.float64) / float(sample_rate)
    sig = np.sin(2.0 * np.pi * frequency_hz * t) + 0.3 * np.sin(4.0 * np.pi * frequency_hz * t)
    sig *= np.exp(-t * (5.0 / duration_s))

    attack_n = min(n // 4, int(round(0.01 * sample_rate)))
    if attack_n > 0:
        sig[:attack_n] *= 0.5 - 0.5 * np.cos(np.linspace(0.0, np.pi, attack_n))

    sig = (sig / (np.max(np.abs(sig)) + 1e-9)) * peak
    stereo = np.stack([sig, sig], axis=1)
    pcm = np.clip(stereo * 32767.0, -32768.0, 32767.0).astype(np.int16)
    _CHIME_CACHE[cache_key] = pcm
    return pcm


def _ensure_mixer() -> bool:
    """Initialize pygame mixer lazily. Returns True when the mixer is ready."""
    try:
        if not pygame.mixer.get_init():
            pygame.mixer.pre_init(SAMPLE_RATE, -16, 2, 512)
            pygame.mixer.init()
        return True
    except pygame.error as exc:  # depends on host audio stack
        _log.warning("[audio] pygame mixer init failed: %s", exc)
        return False


class PhaseChime:
    """Plays a tone on session start, each phase change and each hold.

    Usage:
        chime = PhaseChime(engine, volume=0.6)
        ...
        chime.detach()
    """

    def __init__(self, engine, *, volume: float = 0.6, enabled: bool = True, fade_ms: int = 1000):
        self.engine = engine
        self.volume = normalize_volume(volume)
        self.fade_ms = max(0, int(fade_ms))
        self.enabled = bool(enabled)
        self.init_ok = _ensure_mixer() if self.enabled else False
        self._sounds: dict[float, object] = {}
        self._channel = None

        self._handlers = {
            SessionEventType.SESSION_START: self._on_start,
            SessionEventType.SESSION_RESUME: self._on_phase,
            SessionEventType.PHASE_CHANGE: self._on_phase,
            SessionEventType.HOLD_START: self._on_hold,
            SessionEventType.HOLD_END: self._on_start,
            SessionEventType.SESSION_END: self._on_end,
        }
        for event_type, handler in self._handlers.items():
            engine.event_emitter.subscribe(event_type, handler)

    # -------- controls -------------------------------------------------------
    def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled)
        if self.enabled and not self.init_ok:
            self.init_ok = _ensure_mixer()
        if not self.enabled:
            self.stop()

    def set_volume(self, volume: float) -> None:
        self.volume = normalize_volume(volume)
        if self._channel is not None:
            self._channel.set_volume(self.volume)

    def detach(self) -> None:
        for event_type, handler in self._handlers.items():
            self.engine.event_emitter.unsubscribe(event_type, handler)
        self.stop()

    def stop(self) -> None:
        if self._channel is not None:
            self._channel.stop()
            self._channel = None

    def fade_out(self, duration_ms: int | None = None) -> None:
        if self._channel is not None:
            self._channel.fadeout(self.fade_ms if duration_ms is None else max(0, int(duration_ms)))
            self._channel = None

    # -------- playback -------------------------------------------------------
    def play_variant(self, variant: PhaseVariant) -> bool:
        return self.play_tone(VARIANT_TONES[variant])

    def play_tone(self, frequency_hz: float, *, fade_in_ms: int = 0) -> bool:
        if not (self.enabled and self.init_ok):
            return False
        sound = self._sounds.get(frequency_hz)
        if sound is None:
            try:
                sound = pygame.sndarray.make_sound(generate_chime_int16_stereo(frequency_hz))
            except (pygame.error, ValueError) as exc:
                _log.warning("[audio] Could not build tone %.0f Hz: %s", frequency_hz, exc)
                return False
            self._sounds[frequency_hz] = sound
        channel = sound.play(fade_ms=fade_in_ms)
        if channel is None:
            return False
        channel.set_volume(self.volume)
        self._channel = channel
        return True

    # -------- event handlers -------------------------------------------------
    def _on_start(self, _event: SessionEvent) -> None:
        self.play_tone(VARIANT_TONES[PhaseVariant.INHALE], fade_in_ms=self.fade_ms // 4)

    def _on_phase(self, event: SessionEvent) -> None:
        phase = (event.data or {}).get("phase", 0)
        self.play_variant(phase_variant(self.engine.pattern, phase))

    def _on_hold(self, _event: SessionEvent) -> None:
        self.play_tone(HOLD_TONE_HZ)

    def _on_end(self, _event: SessionEvent) -> None:
        self.fade_out()
