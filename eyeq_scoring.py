"""
EyeQ — Attention Scorer
========================
Maps a FaceAnalysis to an integer attention score in [0, 100].

Overrides (checked first, in order):
  1. phone_detected  -> 0
  2. no face         -> 0

SCREEN mode (user looking at the monitor):
  base 40 (face present)
  + yaw   up to 20  (full below 10°, linear to 0 at 20°)
  + pitch up to 10  (0 at -15°, linear to full at 0° and above)
  + gaze  up to 30  (full below 0.15, linear to 0 at 0.4) — eyes open only

READING mode (profile "eyes_forward"; head tilted toward a page):
  eyes closed: 40 * max(0, 1 - closed_seconds / 2.0)  — 2 s grace decay
  eyes open:   base 40 + 30 (eyes open)
               + yaw   up to 10 (full below 10°, linear to 0 at 25°)
               + pitch up to 20 (centered at -15°: full within ±10°,
                                 linear to 0 at ±25°)

Every falloff is a linear interpolation between two thresholds and is
exactly 0 beyond the outer one. Results are clamped and rounded half-up.

Also hosts the presentation helpers keyed to the same thresholds
(label, color, time/streak formatting).
"""

from __future__ import annotations

import math

from eyeq_types import FaceAnalysis, FocusMode
from eyeq_utils import CONFIG


SCREEN = dict(CONFIG["scoring"]["screen"])
READING = dict(CONFIG["scoring"]["reading"])

FOCUS_THRESHOLD: int = int(CONFIG["session"]["focus_threshold"])
REFOCUS_THRESHOLD: int = int(CONFIG["session"]["refocus_threshold"])

COLOR_FOCUSED = "#22c55e"
COLOR_DISTRACTED = "#eab308"
COLOR_ABSENT = "#ef4444"


def round_half_up(value: float) -> int:
    """Round to nearest integer with .5 going up (JS Math.round semantics)."""
    return int(math.floor(value + 0.5))


def linear_falloff(value: float, full_below: float, zero_at: float) -> float:
    """1.0 below `full_below`, 0.0 at or beyond `zero_at`, linear in between."""
    if value < full_below:
        return 1.0
    if value >= zero_at:
        return 0.0
    return (zero_at - value) / (zero_at - full_below)


def linear_ramp(value: float, zero_at: float, full_at: float) -> float:
    """0.0 at or below `zero_at`, 1.0 at or above `full_at`, linear in between."""
    if full_at == zero_at:
        return 1.0 if value >= full_at else 0.0
    return min(1.0, max(0.0, (value - zero_at) / (full_at - zero_at)))


def _clamp_score(raw: float) -> int:
    return round_half_up(min(100.0, max(0.0, raw)))


# ===================================================================
# Mode scorers
# ===================================================================

def score_screen(analysis: FaceAnalysis, weights: dict = SCREEN) -> int:
    score = float(weights["base"])
    score += weights["yaw_weight"] * linear_falloff(
        abs(analysis.yaw), weights["yaw_full"], weights["yaw_zero"])
    score += weights["pitch_weight"] * linear_ramp(
        analysis.pitch, weights["pitch_floor"], weights["pitch_full"])
    if analysis.eyes_open:
        score += weights["gaze_weight"] * linear_falloff(
            analysis.gaze_deviation, weights["gaze_full"], weights["gaze_zero"])
    return _clamp_score(score)


def score_reading(
    analysis: FaceAnalysis,
    eyes_closed_seconds: float = 0.0,
    weights: dict = READING,
) -> int:
    if not analysis.eyes_open:
        grace = float(weights["closed_grace"])
        remaining = max(0.0, 1.0 - max(0.0, eyes_closed_seconds) / grace) if grace > 0 else 0.0
        return _clamp_score(weights["base"] * remaining)

    score = float(weights["base"]) + weights["eyes_open_weight"]
    score += weights["yaw_weight"] * linear_falloff(
        abs(analysis.yaw), weights["yaw_full"], weights["yaw_zero"])
    pitch_offset = abs(analysis.pitch - weights["pitch_center"])
    score += weights["pitch_weight"] * linear_falloff(
        pitch_offset, weights["pitch_full"], weights["pitch_zero"])
    return _clamp_score(score)


def compute_attention_score(
    analysis: FaceAnalysis,
    mode: FocusMode | str = FocusMode.SCREEN,
    eyes_closed_seconds: float = 0.0,
) -> int:
    """Score one analysis. `eyes_closed_seconds` only matters in reading mode."""
    if analysis.phone_detected:
        return 0
    if not analysis.face_detected:
        return 0

    mode = FocusMode.parse(mode)
    if mode is FocusMode.READING:
        return score_reading(analysis, eyes_closed_seconds)
    return score_screen(analysis)


class AttentionScorer:
    """Stateless scorer bound to a weight set (defaults from config)."""

    def __init__(self, screen_weights: dict | None = None, reading_weights: dict | None = None):
        self.screen_weights = {**SCREEN, **(screen_weights or {})}
        self.reading_weights = {**READING, **(reading_weights or {})}

    def score(
        self,
        analysis: FaceAnalysis,
        mode: FocusMode | str,
        eyes_closed_seconds: float = 0.0,
    ) -> int:
        if analysis.phone_detected or not analysis.face_detected:
            return 0
        if FocusMode.parse(mode) is FocusMode.READING:
            return score_reading(analysis, eyes_closed_seconds, self.reading_weights)
        return score_screen(analysis, self.screen_weights)


# ===================================================================
# Presentation helpers
# ===================================================================

def get_attention_label(score: float) -> str:
    if score >= FOCUS_THRESHOLD:
        return "Focused"
    if score >= REFOCUS_THRESHOLD:
        return "Distracted"
    return "Not present"


def get_attention_color(score: float) -> str:
    if score >= FOCUS_THRESHOLD:
        return COLOR_FOCUSED
    if score >= REFOCUS_THRESHOLD:
        return COLOR_DISTRACTED
    return COLOR_ABSENT


def hex_to_bgr(color: str) -> tuple[int, int, int]:
    """'#rrggbb' -> OpenCV (b, g, r)."""
    value = color.lstrip("#")
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return (b, g, r)


def get_attention_color_bgr(score: float) -> tuple[int, int, int]:
    return hex_to_bgr(get_attention_color(score))


def format_session_time(seconds: int) -> str:
    """Elapsed seconds as MM:SS (minutes keep growing past 99)."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def format_streak(seconds: int) -> str:
    """'42s' under a minute, otherwise '3m 5s'."""
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60}s"
