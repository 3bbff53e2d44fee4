"""
EyeQ — Phone Detector
======================
Flags a mobile phone in frame using an OpenCV DNN object detector
(SSD MobileNet v2 trained on COCO, TensorFlow frozen graph).

A phone counts as present when any of the top-N detections is the COCO
"cell phone" class with confidence above the configured threshold.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import cv2
import numpy as np

from eyeq_utils import CONFIG, resolve_path

_log = logging.getLogger("EyeQPhoneDetector")

# COCO label id of "cell phone" in the TF Object Detection label map
COCO_CELL_PHONE_ID = 77
_INPUT_SIZE = (300, 300)


class PhoneDetector:
    """cv2.dnn wrapper answering 'is a phone visible?'."""

    def __init__(
        self,
        model_path: Optional[str] = None,
        config_path: Optional[str] = None,
        score_threshold: Optional[float] = None,
        max_detections: Optional[int] = None,
    ) -> None:
        inference = CONFIG["inference"]
        model_path = resolve_path(model_path or inference["phone_model"])
        config_path = resolve_path(config_path or inference["phone_config"])

        for path in (model_path, config_path):
            if not os.path.exists(path):
                raise FileNotFoundError(f"Phone detection model file not found: {path}")

        self.score_threshold = float(
            inference["phone_score_threshold"] if score_threshold is None else score_threshold)
        self.max_detections = int(
            inference["phone_max_detections"] if max_detections is None else max_detections)

        self._net = cv2.dnn.readNetFromTensorflow(model_path, config_path)
        _log.info("PhoneDetector loaded — model=%s threshold=%.2f",
                  os.path.basename(model_path), self.score_threshold)

    def detect(self, frame: np.ndarray) -> bool:
        """True if a cell phone is detected in the BGR frame."""
        blob = cv2.dnn.blobFromImage(frame, size=_INPUT_SIZE, swapRB=True, crop=False)
        self._net.setInput(blob)
        detections = self._net.forward()
        return self._has_phone(detections)

    def _has_phone(self, detections: np.ndarray) -> bool:
        # SSD output: (1, 1, K, 7) rows of [batch, class, score, x1, y1, x2, y2]
        rows = detections.reshape(-1, 7)
        rows = rows[np.argsort(-rows[:, 2])][: self.max_detections]
        for row in rows:
            if int(row[1]) == COCO_CELL_PHONE_ID and float(row[2]) > self.score_threshold:
                return True
        return False
