"""
EyeQ — Session State Machine
=============================
Fixed-tick temporal state for one attention session.

Each tick (default 200 ms) consumes the freshest FaceAnalysis and:
  1. advances / resets the eyes-closed timer
  2. scores the analysis (mode-dependent)
  3. folds the score into the running mean
  4. advances / resets the focus streak (score >= 80)
  5. advances / resets the low-attention timer (score < 40) and latches
     the refocus alert once it reaches 5.0 s; any score >= 40 clears it

LOW-ATTENTION HYSTERESIS:
  - Raising the alert: requires 5.0 s of consecutive low ticks
  - Clearing the alert: immediate on the first tick scoring >= 40

All mutable session state lives in one SessionState value owned by the
machine and mutated only inside tick() / update_elapsed() / reset().
Hand-off from independently-timed inference happens through
LatestValueSlot: last writer wins, readers never block on new data.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from eyeq_scoring import AttentionScorer
from eyeq_types import FaceAnalysis, FocusMode
from eyeq_utils import CONFIG

_log = logging.getLogger("EyeQSession")

_SESSION = CONFIG["session"]

DEFAULT_TICK_INTERVAL: float = float(_SESSION["tick_interval"])
FOCUS_THRESHOLD: int = int(_SESSION["focus_threshold"])
REFOCUS_THRESHOLD: int = int(_SESSION["refocus_threshold"])
REFOCUS_DELAY: float = float(_SESSION["refocus_delay"])

# Accumulated float ticks (e.g. 25 x 0.2) land a hair under the exact sum
_TIMER_EPSILON = 1e-9

T = TypeVar("T")


# ===================================================================
# Single-slot hand-off
# ===================================================================

class LatestValueSlot(Generic[T]):
    """Last-writer-wins single value shared between producer and tick.

    No queueing: a write replaces the previous value, a read returns the
    freshest value (or None before the first write) without blocking.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._version = 0

    def publish(self, value: T) -> None:
        with self._lock:
            self._value = value
            self._version += 1

    def read(self) -> Optional[T]:
        with self._lock:
            return self._value

    @property
    def version(self) -> int:
        """Number of writes since the last clear()."""
        with self._lock:
            return self._version

    def has_value(self) -> bool:
        with self._lock:
            return self._value is not None

    def clear(self) -> None:
        with self._lock:
            self._value = None
            self._version = 0


# ===================================================================
# Session State
# ===================================================================

@dataclass
class SessionState:
    """All per-session counters. Zero/False is the initial state."""
    score_sum: int = 0
    score_count: int = 0
    current_streak_seconds: float = 0.0
    longest_streak_seconds: int = 0
    low_score_timer_seconds: float = 0.0
    refocus_alert_active: bool = False
    eyes_closed_timer_seconds: float = 0.0
    session_elapsed_seconds: int = 0
    last_score: int = 0

    @property
    def average_attention(self) -> float:
        if self.score_count == 0:
            return 0.0
        return self.score_sum / self.score_count


class SessionStateMachine:
    """Tick-driven scoring, running mean, focus streak and refocus alert."""

    def __init__(
        self,
        tick_interval: Optional[float] = None,
        mode: FocusMode | str = FocusMode.SCREEN,
        scorer: Optional[AttentionScorer] = None,
        focus_threshold: int = FOCUS_THRESHOLD,
        refocus_threshold: int = REFOCUS_THRESHOLD,
        refocus_delay: float = REFOCUS_DELAY,
    ) -> None:
        """Initialize session state machine.

        Args:
            tick_interval: Seconds per tick; timers advance by this amount.
            mode: Initial FocusMode (changeable any time via set_mode).
            scorer: AttentionScorer to use (config weights by default).
            focus_threshold: Minimum score that extends the focus streak.
            refocus_threshold: Scores below this accumulate low time.
            refocus_delay: Low time (s) after which the alert latches.
        """
        interval = DEFAULT_TICK_INTERVAL if tick_interval is None else float(tick_interval)
        if interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {interval!r}")
        self.tick_interval = interval
        self._mode = FocusMode.parse(mode)
        self.scorer = scorer or AttentionScorer()
        self.focus_threshold = focus_threshold
        self.refocus_threshold = refocus_threshold
        self.refocus_delay = refocus_delay
        self.state = SessionState()
        self._total_ticks = 0

    # ── Mode ──────────────────────────────────────────────────

    @property
    def mode(self) -> FocusMode:
        return self._mode

    def set_mode(self, mode: FocusMode | str) -> None:
        """Select scoring profile; applies from the next tick."""
        self._mode = FocusMode.parse(mode)

    # ── Tick ──────────────────────────────────────────────────

    def tick(self, analysis: Optional[FaceAnalysis]) -> Optional[int]:
        """Run one periodic update with the freshest analysis.

        Returns the score, or None (and changes nothing) when no analysis
        has been produced yet.
        """
        if analysis is None:
            return None

        s = self.state
        dt = self.tick_interval

        # 1. Eyes-closed timer
        if analysis.face_detected and not analysis.eyes_open:
            s.eyes_closed_timer_seconds += dt
        else:
            s.eyes_closed_timer_seconds = 0.0

        # 2. Score
        score = self.scorer.score(analysis, self._mode, s.eyes_closed_timer_seconds)
        s.last_score = score

        # 3. Running mean (integer sum/count, exact)
        s.score_sum += score
        s.score_count += 1

        # 4. Focus streak
        if score >= self.focus_threshold:
            s.current_streak_seconds += dt
            s.longest_streak_seconds = max(
                s.longest_streak_seconds,
                int(math.floor(s.current_streak_seconds + 0.5)),
            )
        else:
            s.current_streak_seconds = 0.0

        # 5. Refocus alert
        if score < self.refocus_threshold:
            s.low_score_timer_seconds += dt
            if (not s.refocus_alert_active
                    and s.low_score_timer_seconds >= self.refocus_delay - _TIMER_EPSILON):
                s.refocus_alert_active = True
                _log.info("Refocus alert raised after %.1f s of low attention",
                          s.low_score_timer_seconds)
        else:
            s.low_score_timer_seconds = 0.0
            if s.refocus_alert_active:
                s.refocus_alert_active = False
                _log.info("Refocus alert cleared (score=%d)", score)

        self._total_ticks += 1
        return score

    # ── Clock ─────────────────────────────────────────────────

    def update_elapsed(self, elapsed_seconds: float) -> int:
        """Set whole seconds since session start (wall-clock driven)."""
        self.state.session_elapsed_seconds = max(0, int(math.floor(elapsed_seconds)))
        return self.state.session_elapsed_seconds

    # ── Lifecycle ─────────────────────────────────────────────

    def reset(self) -> None:
        """Return every counter to its initial value in one step."""
        self.state = SessionState()
        self._total_ticks = 0

    # ── Readouts ──────────────────────────────────────────────

    @property
    def average_attention(self) -> float:
        return self.state.average_attention

    @property
    def total_ticks(self) -> int:
        return self._total_ticks

    def get_summary(self) -> dict[str, Any]:
        """Return current session summary."""
        s = self.state
        return {
            "mode": self._mode.value,
            "tick_interval": self.tick_interval,
            "ticks": self._total_ticks,
            "last_score": s.last_score,
            "average_attention": round(s.average_attention, 2),
            "longest_streak_seconds": s.longest_streak_seconds,
            "refocus_alert_active": s.refocus_alert_active,
            "session_elapsed_seconds": s.session_elapsed_seconds,
        }
