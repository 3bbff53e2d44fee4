"""
EyeQ — Landmark Geometry Analyzer
==================================
Converts raw face-mesh keypoints into pose/gaze metrics.

Metrics (all pure functions of the keypoint array):
  A) Yaw      — nose-to-ear horizontal asymmetry, scaled to ±90°
  B) Pitch    — nose position within the forehead–chin span, offset by
                an empirical neutral baseline (0.45 of span), scaled by -90
  C) EyesOpen — mean eye aspect ratio (lid gap / eye width) > 0.15
  D) Gaze     — iris offset from each eye's geometric center, normalized by
                eye width (x) and eye height (y), averaged across eyes,
                combined as a Euclidean norm. Requires the 478-point mesh
                (iris refinement); otherwise a fixed fallback is returned.

Keypoint Format:
  Accepts any ordered sequence indexable by the MediaPipe FaceMesh index:
    - (N, 3) or (N, 2) NumPy array of normalized (x, y[, z])
    - list of (x, y[, z]) tuples
    - list of objects exposing .x / .y (/ .z) — MediaPipe landmark protos

Degenerate geometry (zero spans, zero eye width, too few points) never
raises; each case resolves to a documented neutral value.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from eyeq_types import FaceAnalysis, NO_FACE_ANALYSIS
from eyeq_utils import CONFIG


_GEOMETRY = CONFIG["geometry"]

MIN_KEYPOINTS: int = int(_GEOMETRY["min_keypoints"])
IRIS_KEYPOINTS: int = int(_GEOMETRY["iris_keypoints"])
PITCH_BASELINE: float = float(_GEOMETRY["pitch_baseline"])
PITCH_SCALE: float = float(_GEOMETRY["pitch_scale"])
YAW_SCALE: float = float(_GEOMETRY["yaw_scale"])
EYE_OPEN_RATIO: float = float(_GEOMETRY["eye_open_ratio"])
GAZE_FALLBACK_NO_IRIS: float = float(_GEOMETRY["gaze_fallback_no_iris"])
GAZE_FALLBACK_DEGENERATE: float = float(_GEOMETRY["gaze_fallback_degenerate"])

# MediaPipe FaceMesh indices (subject's left/right)
KEYPOINT_INDICES: dict[str, int] = {
    "nose_tip": 1,
    "forehead_top": 10,
    "chin": 152,
    "left_ear": 234,
    "right_ear": 454,
    "left_eye_inner": 133,
    "right_eye_inner": 362,
    "left_eye_outer": 33,
    "right_eye_outer": 263,
    "left_iris": 468,       # iris refinement only
    "right_iris": 473,      # iris refinement only
    "left_eye_upper": 159,
    "left_eye_lower": 145,
    "right_eye_upper": 386,
    "right_eye_lower": 374,
}


def _to_array(keypoints) -> Optional[np.ndarray]:
    """Normalize supported keypoint formats to an (N, 3) float64 array."""
    if keypoints is None:
        return None
    try:
        if isinstance(keypoints, np.ndarray):
            arr = keypoints.astype(np.float64, copy=False)
        else:
            rows = []
            for kp in keypoints:
                if hasattr(kp, 'x') and hasattr(kp, 'y'):
                    rows.append((float(kp.x), float(kp.y), float(getattr(kp, 'z', 0.0) or 0.0)))
                else:
                    rows.append((float(kp[0]), float(kp[1]),
                                 float(kp[2]) if len(kp) > 2 else 0.0))
            arr = np.array(rows, dtype=np.float64)
    except (TypeError, ValueError, IndexError):
        return None

    if arr.ndim != 2 or arr.shape[1] < 2:
        return None
    if arr.shape[1] == 2:
        arr = np.hstack([arr, np.zeros((arr.shape[0], 1), dtype=np.float64)])
    return arr[:, :3]


def _point(arr: np.ndarray, name: str) -> np.ndarray:
    idx = KEYPOINT_INDICES[name]
    if idx >= arr.shape[0]:
        return np.zeros(3, dtype=np.float64)
    return arr[idx]


# ===================================================================
# Individual metrics
# ===================================================================

def compute_yaw(arr: np.ndarray) -> float:
    """Signed yaw in degrees from nose-to-ear horizontal distances."""
    nose = _point(arr, "nose_tip")
    left_dist = abs(nose[0] - _point(arr, "left_ear")[0])
    right_dist = abs(nose[0] - _point(arr, "right_ear")[0])
    total = left_dist + right_dist
    if total == 0:
        return 0.0
    return float((right_dist - left_dist) / total * YAW_SCALE)


def compute_pitch(arr: np.ndarray) -> float:
    """Signed pitch in degrees; negative = looking up, positive = down."""
    forehead = _point(arr, "forehead_top")
    face_height = abs(forehead[1] - _point(arr, "chin")[1])
    if face_height == 0:
        return 0.0
    nose_relative = (_point(arr, "nose_tip")[1] - forehead[1]) / face_height
    return float((nose_relative - PITCH_BASELINE) * PITCH_SCALE)


def _eye_dimensions(arr: np.ndarray, side: str) -> tuple[float, float]:
    """(width, height) of one eye from corner and lid keypoints."""
    width = abs(_point(arr, f"{side}_eye_outer")[0] - _point(arr, f"{side}_eye_inner")[0])
    height = abs(_point(arr, f"{side}_eye_upper")[1] - _point(arr, f"{side}_eye_lower")[1])
    return float(width), float(height)


def compute_eyes_open(arr: np.ndarray) -> bool:
    """True iff the mean lid-gap / eye-width ratio exceeds EYE_OPEN_RATIO."""
    left_w, left_h = _eye_dimensions(arr, "left")
    right_w, right_h = _eye_dimensions(arr, "right")
    if left_w == 0 or right_w == 0:
        return False
    avg_ratio = (left_h / left_w + right_h / right_w) / 2.0
    return bool(avg_ratio > EYE_OPEN_RATIO)


def compute_gaze_deviation(arr: np.ndarray, has_iris: bool) -> float:
    """Normalized iris offset from eye center; 0 = looking straight ahead."""
    if not has_iris:
        return GAZE_FALLBACK_NO_IRIS

    offsets_x = []
    offsets_y = []
    for side in ("left", "right"):
        width, height = _eye_dimensions(arr, side)
        if width == 0:
            return GAZE_FALLBACK_DEGENERATE

        outer = _point(arr, f"{side}_eye_outer")
        inner = _point(arr, f"{side}_eye_inner")
        upper = _point(arr, f"{side}_eye_upper")
        lower = _point(arr, f"{side}_eye_lower")
        iris = _point(arr, f"{side}_iris")

        center_x = (outer[0] + inner[0]) / 2.0
        center_y = (upper[1] + lower[1]) / 2.0
        offsets_x.append(abs(iris[0] - center_x) / width)
        # Closed eye: no vertical information
        offsets_y.append(abs(iris[1] - center_y) / height if height > 0 else 0.0)

    avg_x = sum(offsets_x) / 2.0
    avg_y = sum(offsets_y) / 2.0
    return float(math.hypot(avg_x, avg_y))


# ===================================================================
# Public entry point
# ===================================================================

def analyze_keypoints(keypoints) -> FaceAnalysis:
    """Convert raw keypoints to a FaceAnalysis (phone flag left False).

    Fewer than MIN_KEYPOINTS points (or unusable input) yields
    NO_FACE_ANALYSIS. Deterministic: identical input, identical output.
    """
    arr = _to_array(keypoints)
    if arr is None or arr.shape[0] < MIN_KEYPOINTS:
        return NO_FACE_ANALYSIS

    has_iris = arr.shape[0] >= IRIS_KEYPOINTS
    return FaceAnalysis(
        face_detected=True,
        yaw=compute_yaw(arr),
        pitch=compute_pitch(arr),
        gaze_deviation=compute_gaze_deviation(arr, has_iris),
        eyes_open=compute_eyes_open(arr),
        phone_detected=False,
    )


class GeometryAnalyzer:
    """Stateless callable wrapper around analyze_keypoints()."""

    def analyze(self, keypoints) -> FaceAnalysis:
        return analyze_keypoints(keypoints)

    __call__ = analyze
