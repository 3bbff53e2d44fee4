import os
import sys
import unittest
from unittest.mock import patch

import numpy as np

# Ensure project root is in path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eyeq_hud import EyeQHUD
from eyeq_types import FaceAnalysis, FocusMode, SessionSnapshot


def _snapshot(**overrides) -> SessionSnapshot:
    fields = dict(
        active=True,
        mode=FocusMode.SCREEN,
        score=85,
        display_score=83.2,
        label="Focused",
        color="#22c55e",
        session_elapsed_seconds=125,
        average_attention=72.4,
        longest_streak_seconds=64,
        refocus_alert_active=False,
        latest=FaceAnalysis(True, 3.0, -2.0, 0.05, True),
    )
    fields.update(overrides)
    return SessionSnapshot(**fields)


class TestEyeQHUD(unittest.TestCase):

    def setUp(self):
        self.hud = EyeQHUD()
        self.frame = np.full((480, 640, 3), 90, dtype=np.uint8)

    def test_render_returns_annotated_copy(self):
        original = self.frame.copy()
        annotated, t_hud = self.hud.render(self.frame, _snapshot())
        self.assertEqual(annotated.shape, self.frame.shape)
        self.assertGreaterEqual(t_hud, 0)
        self.assertTrue(np.array_equal(self.frame, original), "input frame must not be mutated")
        self.assertFalse(np.array_equal(annotated, original), "overlay should draw something")

    def test_none_frame(self):
        annotated, t_hud = self.hud.render(None, _snapshot())
        self.assertIsNone(annotated)
        self.assertEqual(t_hud, 0.0)

    def test_refocus_alert_draws_central_box(self):
        calm, _ = self.hud.render(self.frame, _snapshot())
        alert, _ = self.hud.render(self.frame, _snapshot(refocus_alert_active=True))
        h, w = self.frame.shape[:2]
        center = (slice(h // 2 - 5, h // 2 + 5), slice(w // 2 - 5, w // 2 + 5))
        self.assertFalse(np.array_equal(calm[center], alert[center]))

    def test_refocus_alert_text(self):
        with patch.object(self.hud, "_draw_central_notification") as notify:
            self.hud.render(self.frame, _snapshot(refocus_alert_active=True))
        notify.assert_called_once()
        self.assertEqual(notify.call_args.args[1], "Refocus")

    def test_debug_overlay_toggle(self):
        plain, _ = self.hud.render(self.frame, _snapshot())
        self.assertTrue(self.hud.toggle_debug())
        debug, _ = self.hud.render(self.frame, _snapshot())
        self.assertFalse(np.array_equal(plain, debug))

    def test_debug_overlay_before_first_analysis(self):
        hud = EyeQHUD(debug=True)
        annotated, _ = hud.render(self.frame, _snapshot(latest=None))
        self.assertIsNotNone(annotated)

    def test_idle_and_reading_mode_render(self):
        annotated, _ = self.hud.render(
            self.frame, _snapshot(active=False, mode=FocusMode.READING, score=0, display_score=0.0))
        self.assertEqual(annotated.shape, self.frame.shape)


if __name__ == "__main__":
    unittest.main()
