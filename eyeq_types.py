from __future__ import annotations

from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class FaceAnalysis:
    """Pose/gaze metrics for one inference frame."""
    face_detected: bool
    yaw: float                 # degrees, 0 = facing camera
    pitch: float               # degrees, negative = looking up
    gaze_deviation: float      # 0 = iris centered
    eyes_open: bool
    phone_detected: bool = False

    def with_phone(self, phone_detected: bool) -> "FaceAnalysis":
        return replace(self, phone_detected=bool(phone_detected))


# Canonical "no face" value
NO_FACE_ANALYSIS = FaceAnalysis(
    face_detected=False,
    yaw=0.0,
    pitch=0.0,
    gaze_deviation=1.0,
    eyes_open=False,
    phone_detected=False,
)


class FocusMode(str, Enum):
    """Scoring profile selected by the operator."""
    SCREEN = "screen"
    READING = "reading"

    @classmethod
    def parse(cls, value) -> "FocusMode":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(
            f"Unknown focus mode: {value!r}. Supported: 'screen', 'reading'")


@dataclass
class SessionSnapshot:
    """Consumer-facing view of an attention session."""
    active: bool
    mode: FocusMode
    score: int
    display_score: float
    label: str
    color: str
    session_elapsed_seconds: int
    average_attention: float
    longest_streak_seconds: int
    refocus_alert_active: bool
    latest: Optional[FaceAnalysis] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data
