"""
EyeQ — Shared Configuration & Logging
======================================
Centralized configuration loading and logger setup for all EyeQ modules.

Configuration is layered:
  1. DEFAULT_CONFIG (below) — always present, so the core runs without files
  2. config.yaml beside this module — user overrides, deep-merged on top

Core modules read their thresholds from CONFIG once at import; every class
also accepts explicit overrides so tests never depend on the YAML file.
"""

from __future__ import annotations

import copy
import logging
import os
from typing import Optional

import yaml


# ===================================================================
# Configuration
# ===================================================================

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_config_path = os.path.join(_SCRIPT_DIR, 'config.yaml')

DEFAULT_CONFIG: dict = {
    "session": {
        "tick_interval": 0.2,
        "focus_threshold": 80,
        "refocus_threshold": 40,
        "refocus_delay": 5.0,
        "elapsed_interval": 1.0,
    },
    "geometry": {
        "min_keypoints": 468,
        "iris_keypoints": 478,
        "pitch_baseline": 0.45,
        "pitch_scale": -90.0,
        "yaw_scale": 90.0,
        "eye_open_ratio": 0.15,
        "gaze_fallback_no_iris": 0.1,
        "gaze_fallback_degenerate": 0.5,
    },
    "scoring": {
        "screen": {
            "base": 40,
            "yaw_weight": 20,
            "yaw_full": 10.0,
            "yaw_zero": 20.0,
            "pitch_weight": 10,
            "pitch_floor": -15.0,
            "pitch_full": 0.0,
            "gaze_weight": 30,
            "gaze_full": 0.15,
            "gaze_zero": 0.4,
        },
        "reading": {
            "profile": "eyes_forward",
            "base": 40,
            "eyes_open_weight": 30,
            "yaw_weight": 10,
            "yaw_full": 10.0,
            "yaw_zero": 25.0,
            "pitch_weight": 20,
            "pitch_center": -15.0,
            "pitch_full": 10.0,
            "pitch_zero": 25.0,
            "closed_grace": 2.0,
        },
    },
    "smoothing": {
        "policy": "exponential",
        "factor": 0.15,
        "snap": 0.5,
    },
    "inference": {
        "landmark_interval": 0.2,
        "phone_interval": 0.5,
        "landmarker_model": "models/face_landmarker.task",
        "phone_model": "models/ssd_mobilenet_v2_coco.pb",
        "phone_config": "models/ssd_mobilenet_v2_coco.pbtxt",
        "phone_score_threshold": 0.3,
        "phone_max_detections": 10,
    },
    "camera": {
        "id": 0,
        "width": 640,
        "height": 480,
    },
    "logging": {
        "level": "INFO",
        "event_log_path": None,
    },
}


def merge_config(base: dict, overrides: dict) -> dict:
    """Return a copy of `base` with `overrides` merged in recursively."""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None) -> dict:
    """Load configuration from config.yaml, merged over DEFAULT_CONFIG.

    A missing file is not an error (defaults are used). A malformed file
    raises yaml.YAMLError so a broken deployment fails at start-up.
    """
    target = path or _config_path
    if not os.path.exists(target):
        logging.getLogger("EyeQUtils").warning(
            "Config file not found at %s — using built-in defaults", target)
        return copy.deepcopy(DEFAULT_CONFIG)
    with open(target, 'r', encoding='utf-8') as f:
        overrides = yaml.safe_load(f) or {}
    return merge_config(DEFAULT_CONFIG, overrides)


def resolve_path(relative: str) -> str:
    """Resolve a config-relative path (e.g. a model file) against the project root."""
    if os.path.isabs(relative):
        return relative
    return os.path.join(_SCRIPT_DIR, relative)


CONFIG = load_config()


# ===================================================================
# Logging Setup
# ===================================================================

def setup_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """Create a configured logger for EyeQ modules."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '[%(asctime)s] %(name)-12s %(levelname)-7s %(message)s',
            datefmt='%H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level if level is not None else CONFIG["logging"]["level"])
    return logger
