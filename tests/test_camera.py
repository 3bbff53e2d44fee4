"""
EyeQ — Camera Module Tests
===========================
Synthetic NumPy frames behind a mocked cv2.VideoCapture — NO real
camera needed.
"""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest

# Add project root to path
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from eyeq_camera import EyeQCamera


# ─── Fixtures ─────────────────────────────────────────────────

def _make_valid_frame(height: int = 480, width: int = 640) -> np.ndarray:
    """Synthetic BGR frame that passes all validation checks."""
    rng = np.random.RandomState(7)
    return rng.randint(60, 190, size=(height, width, 3), dtype=np.uint8)


def _make_mock_capture(frame, ret: bool = True, opened: bool = True):
    mock_cap = MagicMock()
    mock_cap.read.return_value = (ret, frame)
    mock_cap.isOpened.return_value = opened
    mock_cap.get.return_value = 640.0
    mock_cap.set.return_value = True
    return mock_cap


def _read_one(frame, ret: bool = True):
    mock_cap = _make_mock_capture(frame, ret=ret)
    with patch("eyeq_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = EyeQCamera(0)
        result = cam.read_validated_frame()
    cam.release()
    return result


# ─── Validation ───────────────────────────────────────────────

def test_valid_frame_passes():
    frame = _make_valid_frame()
    ok, result_frame, ts = _read_one(frame)
    assert ok is True
    assert ts > 0
    assert np.array_equal(result_frame, frame)


@pytest.mark.parametrize("frame,ret", [
    (None, True),
    (_make_valid_frame(), False),
    (np.full((480, 640, 4), 128, dtype=np.uint8), True),     # BGRA
    (np.full((480, 640), 128, dtype=np.uint8), True),        # grayscale
    (np.full((480, 640, 3), 0.5, dtype=np.float32), True),   # wrong dtype
    (np.full((100, 100, 3), 128, dtype=np.uint8), True),     # undersized
    (np.zeros((480, 640, 3), dtype=np.uint8), True),         # lens cap
    (np.full((480, 640, 3), 255, dtype=np.uint8), True),     # saturated
])
def test_invalid_frames_rejected(frame, ret):
    ok, result_frame, ts = _read_one(frame, ret=ret)
    assert ok is False
    assert result_frame is None
    assert ts == 0.0


def test_unopened_source_raises():
    mock_cap = _make_mock_capture(None, opened=False)
    with patch("eyeq_camera.cv2.VideoCapture", return_value=mock_cap):
        with pytest.raises(RuntimeError):
            EyeQCamera("missing.mp4")


def test_requested_resolution_is_applied():
    mock_cap = _make_mock_capture(_make_valid_frame())
    with patch("eyeq_camera.cv2.VideoCapture", return_value=mock_cap):
        EyeQCamera(0, width=1280, height=720)
    set_props = [c.args[0] for c in mock_cap.set.call_args_list]
    assert cv2.CAP_PROP_FRAME_WIDTH in set_props
    assert cv2.CAP_PROP_FRAME_HEIGHT in set_props


# ─── Health ───────────────────────────────────────────────────

def test_health_status_counts_drops():
    frames = [_make_valid_frame(), np.zeros((480, 640, 3), dtype=np.uint8), _make_valid_frame()]
    mock_cap = _make_mock_capture(None)
    mock_cap.read.side_effect = [(True, f) for f in frames]

    with patch("eyeq_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = EyeQCamera(0)
        for _ in frames:
            cam.read_validated_frame()
        health = cam.get_health_status()
        cam.release()

    assert health["connected"] is True
    assert health["frames_total"] == 3
    assert health["frames_dropped"] == 1
    assert health["drop_rate_pct"] == pytest.approx(100.0 / 3)
    assert isinstance(health["fps_actual"], float)
    assert health["resolution"] == (640, 640)
    mock_cap.release.assert_called_once()


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
