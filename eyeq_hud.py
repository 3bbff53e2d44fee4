import logging
import time
from typing import Optional, Tuple

import cv2
import numpy as np

from eyeq_scoring import (
    format_session_time,
    format_streak,
    get_attention_color_bgr,
    round_half_up,
)
from eyeq_types import FaceAnalysis, SessionSnapshot

_log = logging.getLogger("EyeQHUD")


class EyeQHUD:
    """Attention overlay for the live preview.

    Layout:
      top-left     score (display value) + label, colored by the
                   instantaneous score
      top-right    focus mode
      center       refocus alert, while latched
      bottom bar   session time | avg attention | best streak
      debug panel  raw FaceAnalysis fields (optional)
    """

    FONT = cv2.FONT_HERSHEY_SIMPLEX
    WHITE = (255, 255, 255)
    GREY = (200, 200, 200)
    ALERT = (68, 68, 239)   # same red as "Not present"

    def __init__(self, debug: bool = False):
        self.debug = debug
        _log.info("EyeQHUD initialized (debug=%s)", debug)

    def toggle_debug(self) -> bool:
        self.debug = not self.debug
        return self.debug

    def render(self, frame: Optional[np.ndarray], snapshot: SessionSnapshot) -> Tuple[Optional[np.ndarray], float]:
        """Draw overlay onto a copy of the provided frame.

        Args:
            frame: BGR image (left untouched).
            snapshot: Output of EyeQEngine.get_snapshot().

        Returns:
            (annotated_frame, hud_render_time_seconds)
        """
        t_hud_start = time.monotonic()

        if frame is None:
            return None, 0.0

        viz = frame.copy()

        if snapshot.active:
            self._draw_score(viz, snapshot)
        else:
            self._draw_idle(viz)
        self._draw_mode(viz, snapshot)
        self._draw_status_bar(viz, snapshot)

        if snapshot.refocus_alert_active:
            self._draw_central_notification(viz, "Refocus")

        if self.debug:
            self._draw_debug(viz, snapshot.latest)

        return viz, time.monotonic() - t_hud_start

    def _draw_score(self, frame: np.ndarray, snapshot: SessionSnapshot):
        color = get_attention_color_bgr(snapshot.score)
        cv2.putText(frame, f"{round_half_up(snapshot.display_score)}", (15, 60),
                    self.FONT, 1.8, color, 3)
        cv2.putText(frame, snapshot.label, (15, 90),
                    self.FONT, 0.7, color, 2)

    def _draw_idle(self, frame: np.ndarray):
        cv2.putText(frame, "Session idle - press S to start", (15, 40),
                    self.FONT, 0.6, self.GREY, 1)

    def _draw_mode(self, frame: np.ndarray, snapshot: SessionSnapshot):
        w = frame.shape[1]
        text = f"MODE: {snapshot.mode.value.upper()}"
        text_w = cv2.getTextSize(text, self.FONT, 0.6, 1)[0][0]
        cv2.putText(frame, text, (w - text_w - 10, 30), self.FONT, 0.6, self.WHITE, 1)

    def _draw_central_notification(self, frame: np.ndarray, text: str):
        """Large boxed message in the middle of the frame."""
        h, w = frame.shape[:2]
        scale, thickness, pad = 1.2, 3, 20
        (fw, fh), _ = cv2.getTextSize(text, self.FONT, scale, thickness)
        cx, cy = w // 2, h // 2

        top_left = (cx - fw // 2 - pad, cy - fh // 2 - pad)
        bottom_right = (cx + fw // 2 + pad, cy + fh // 2 + pad)
        cv2.rectangle(frame, top_left, bottom_right, (0, 0, 0), -1)
        cv2.rectangle(frame, top_left, bottom_right, self.ALERT, 2)
        cv2.putText(frame, text, (cx - fw // 2, cy + fh // 2),
                    self.FONT, scale, self.ALERT, thickness)

    def _draw_status_bar(self, frame: np.ndarray, snapshot: SessionSnapshot):
        """Bottom bar with the three session statistics."""
        h, w = frame.shape[:2]
        bar_h = 40
        overlay = frame.copy()
        cv2.rectangle(overlay, (0, h - bar_h), (w, h), (0, 0, 0), -1)
        alpha = 0.6
        cv2.addWeighted(overlay, alpha, frame, 1 - alpha, 0, frame)

        stats = (
            f"TIME {format_session_time(snapshot.session_elapsed_seconds)}"
            f" | AVG {round_half_up(snapshot.average_attention)}%"
            f" | BEST {format_streak(snapshot.longest_streak_seconds)}"
        )
        cv2.putText(frame, stats, (10, h - 12), self.FONT, 0.6, self.WHITE, 1)

    def _draw_debug(self, frame: np.ndarray, analysis: Optional[FaceAnalysis]):
        if analysis is None:
            lines = ["face: waiting"]
        else:
            lines = [
                f"face:  {'yes' if analysis.face_detected else 'no'}",
                f"yaw:   {analysis.yaw:.1f}",
                f"pitch: {analysis.pitch:.1f}",
                f"gaze:  {analysis.gaze_deviation:.2f}",
                f"eyes:  {'open' if analysis.eyes_open else 'closed'}",
                f"phone: {'yes' if analysis.phone_detected else 'no'}",
            ]
        y = 120
        for line in lines:
            cv2.putText(frame, line, (15, y), self.FONT, 0.5, (0, 255, 255), 1)
            y += 20
