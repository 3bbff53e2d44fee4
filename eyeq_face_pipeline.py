"""
EyeQ — Face Landmark Pipeline
==============================
Owns ALL face landmark detection. Produces the raw keypoint array
consumed by eyeq_geometry.analyze_keypoints().

Backend: MediaPipe FaceLandmarker (Tasks API, VIDEO running mode).
The bundled face_landmarker.task model returns the 478-point mesh
(468 face + 10 iris points), which enables gaze estimation.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional

import cv2
import numpy as np

from eyeq_utils import CONFIG, resolve_path

_log = logging.getLogger("EyeQFacePipeline")


class EyeQFacePipeline:
    """Single-face landmark detector returning normalized (x, y, z) keypoints."""

    def __init__(
        self,
        landmarker_model: Optional[str] = None,
        min_detection_confidence: float = 0.5,
    ) -> None:
        """Initialize MediaPipe FaceLandmarker.

        Args:
            landmarker_model: Path to the .task model (config default).
            min_detection_confidence: Minimum confidence to accept a face.

        Raises:
            FileNotFoundError: if the model file is missing.
        """
        from mediapipe.tasks import python
        from mediapipe.tasks.python import vision

        model_path = resolve_path(landmarker_model or CONFIG["inference"]["landmarker_model"])
        if not os.path.exists(model_path):
            raise FileNotFoundError(f"MediaPipe model not found: {model_path}")

        base_options = python.BaseOptions(
            model_asset_path=model_path,
            delegate=python.BaseOptions.Delegate.CPU,
        )
        options = vision.FaceLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.VIDEO,
            num_faces=1,
            min_face_detection_confidence=min_detection_confidence,
            min_face_presence_confidence=min_detection_confidence,
            min_tracking_confidence=0.5,
        )
        self._landmarker = vision.FaceLandmarker.create_from_options(options)
        self._last_timestamp_ms: int = 0

        _log.info("EyeQFacePipeline initialized — model=%s", model_path)

    def detect_keypoints(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """Detect the primary face in a BGR frame.

        Returns:
            (N, 3) float32 array of normalized (x, y, z) keypoints, or
            None when no face is found.
        """
        if self._landmarker is None:
            _log.error("MediaPipe landmarker not initialized")
            return None

        import mediapipe as mp

        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        # VIDEO mode requires strictly increasing timestamps
        timestamp_ms = max(int(time.monotonic() * 1000), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms

        result = self._landmarker.detect_for_video(mp_image, timestamp_ms)
        if not result or not result.face_landmarks:
            return None

        face_lms = result.face_landmarks[0]
        return np.array([[lm.x, lm.y, lm.z] for lm in face_lms], dtype=np.float32)

    def release(self) -> None:
        """Release detector resources."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        _log.info("EyeQFacePipeline released")
