"""
EyeQ — Geometry Analyzer Tests
===============================
Synthetic face-mesh arrays only — NO detector or camera needed.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from eyeq_geometry import (
    GeometryAnalyzer,
    KEYPOINT_INDICES,
    analyze_keypoints,
    compute_eyes_open,
    compute_gaze_deviation,
    compute_pitch,
    compute_yaw,
    GAZE_FALLBACK_DEGENERATE,
    GAZE_FALLBACK_NO_IRIS,
)
from eyeq_types import NO_FACE_ANALYSIS


# ─── Helpers ──────────────────────────────────────────────────

def make_face(n_points: int = 478, **overrides) -> np.ndarray:
    """Frontal, eyes-open, gaze-centered face in normalized coordinates."""
    arr = np.full((n_points, 3), 0.5, dtype=np.float64)
    arr[:, 2] = 0.0
    points = {
        "forehead_top": (0.5, 0.2),
        "chin": (0.5, 0.8),
        "nose_tip": (0.5, 0.47),        # 0.45 of forehead-chin span
        "left_ear": (0.3, 0.45),
        "right_ear": (0.7, 0.45),
        "left_eye_outer": (0.35, 0.415),
        "left_eye_inner": (0.45, 0.415),
        "right_eye_inner": (0.55, 0.415),
        "right_eye_outer": (0.65, 0.415),
        "left_eye_upper": (0.40, 0.40),
        "left_eye_lower": (0.40, 0.43),
        "right_eye_upper": (0.60, 0.40),
        "right_eye_lower": (0.60, 0.43),
        "left_iris": (0.40, 0.415),
        "right_iris": (0.60, 0.415),
    }
    points.update(overrides)
    for name, (x, y) in points.items():
        idx = KEYPOINT_INDICES[name]
        if idx < n_points:
            arr[idx, 0] = x
            arr[idx, 1] = y
    return arr


class _MockLandmark:
    """Simulate MediaPipe landmark with .x, .y, .z attributes."""
    def __init__(self, x: float, y: float, z: float = 0.0):
        self.x = x
        self.y = y
        self.z = z


# ─── Neutral pose ─────────────────────────────────────────────

def test_neutral_face_metrics():
    result = analyze_keypoints(make_face())
    assert result.face_detected is True
    assert result.yaw == pytest.approx(0.0, abs=1e-6)
    assert result.pitch == pytest.approx(0.0, abs=1e-6)
    assert result.gaze_deviation == pytest.approx(0.0, abs=1e-6)
    assert result.eyes_open is True
    assert result.phone_detected is False


def test_analysis_is_deterministic():
    face = make_face()
    assert analyze_keypoints(face) == analyze_keypoints(face.copy())


def test_accepts_landmark_objects_and_tuples():
    face = make_face()
    as_objects = [_MockLandmark(*row) for row in face]
    as_tuples = [tuple(row[:2]) for row in face]
    expected = analyze_keypoints(face)
    assert analyze_keypoints(as_objects) == expected
    assert analyze_keypoints(as_tuples) == expected


# ─── No-face cases ────────────────────────────────────────────

@pytest.mark.parametrize("keypoints", [None, [], np.zeros((467, 3)), np.zeros((10,))])
def test_insufficient_input_is_no_face(keypoints):
    assert analyze_keypoints(keypoints) == NO_FACE_ANALYSIS


def test_no_face_constant_values():
    assert NO_FACE_ANALYSIS.face_detected is False
    assert NO_FACE_ANALYSIS.gaze_deviation == 1.0
    assert NO_FACE_ANALYSIS.eyes_open is False


# ─── Yaw / Pitch ──────────────────────────────────────────────

def test_yaw_sign_and_scale():
    # nose shifted toward the left ear: right distance grows -> positive yaw
    face = make_face(nose_tip=(0.4, 0.47))
    # left 0.1, right 0.3 -> (0.3 - 0.1) / 0.4 * 90 = 45
    assert compute_yaw(face) == pytest.approx(45.0)


def test_yaw_zero_span_is_zero():
    face = make_face(left_ear=(0.5, 0.45), right_ear=(0.5, 0.45))
    assert compute_yaw(face) == 0.0


def test_pitch_sign_follows_nose_position():
    # nose at 0.6 of span -> (0.6 - 0.45) * -90 = -13.5
    face = make_face(nose_tip=(0.5, 0.56))
    assert compute_pitch(face) == pytest.approx(-13.5)
    face = make_face(nose_tip=(0.5, 0.38))
    assert compute_pitch(face) > 0


def test_pitch_zero_height_is_zero():
    face = make_face(chin=(0.5, 0.2))
    assert compute_pitch(face) == 0.0


# ─── Eyes ─────────────────────────────────────────────────────

def test_closed_eyes_detected():
    face = make_face(
        left_eye_upper=(0.40, 0.414), left_eye_lower=(0.40, 0.416),
        right_eye_upper=(0.60, 0.414), right_eye_lower=(0.60, 0.416),
    )
    assert compute_eyes_open(face) is False
    assert analyze_keypoints(face).eyes_open is False


def test_zero_eye_width_means_closed():
    face = make_face(left_eye_outer=(0.45, 0.415))
    assert compute_eyes_open(face) is False


# ─── Gaze ─────────────────────────────────────────────────────

def test_gaze_offset_normalized_by_eye_width():
    # both irises shifted 0.03 right of center: 0.03 / 0.1 = 0.3
    face = make_face(left_iris=(0.43, 0.415), right_iris=(0.63, 0.415))
    assert compute_gaze_deviation(face, has_iris=True) == pytest.approx(0.3)


def test_gaze_combines_axes_with_euclidean_norm():
    # x: 0.03 / 0.1 = 0.3, y: 0.015 below center / eye height 0.03 = 0.5
    face = make_face(left_iris=(0.43, 0.43), right_iris=(0.63, 0.43))
    assert compute_gaze_deviation(face, has_iris=True) == pytest.approx(math.hypot(0.3, 0.5))


def test_gaze_without_iris_uses_fallback():
    face = make_face(n_points=468)
    result = analyze_keypoints(face)
    assert result.face_detected is True
    assert result.gaze_deviation == GAZE_FALLBACK_NO_IRIS


def test_gaze_degenerate_eye_uses_fallback():
    face = make_face(right_eye_outer=(0.55, 0.415))
    assert compute_gaze_deviation(face, has_iris=True) == GAZE_FALLBACK_DEGENERATE


def test_gaze_closed_eye_has_no_vertical_component():
    face = make_face(
        left_eye_upper=(0.40, 0.415), left_eye_lower=(0.40, 0.415),
        left_iris=(0.40, 0.5),
    )
    assert compute_gaze_deviation(face, has_iris=True) == pytest.approx(0.0, abs=1e-6)


def test_analyzer_callable():
    analyzer = GeometryAnalyzer()
    face = make_face()
    assert analyzer(face) == analyzer.analyze(face) == analyze_keypoints(face)
