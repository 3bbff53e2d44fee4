from __future__ import annotations

from typing import Optional

from eyeq_utils import CONFIG

_SMOOTHING = CONFIG["smoothing"]

POLICIES = ("exponential", "direct")


class ScoreSmoother:
    """Display value for the attention score, decoupled from tick jitter.

    Policies:
      - 'direct': display value equals the latest score.
      - 'exponential': each display refresh moves the value 15% of the
        remaining gap toward the score, snapping once the gap is < 0.5.
    """

    def __init__(
        self,
        policy: Optional[str] = None,
        factor: Optional[float] = None,
        snap: Optional[float] = None,
    ) -> None:
        policy = (policy or _SMOOTHING["policy"]).lower()
        if policy not in POLICIES:
            raise ValueError(f"Unknown smoothing policy: {policy!r}. Supported: {POLICIES}")
        self.policy = policy
        self.factor = float(_SMOOTHING["factor"] if factor is None else factor)
        self.snap = float(_SMOOTHING["snap"] if snap is None else snap)
        self._target = 0.0
        self._value = 0.0

    def set_target(self, score: float) -> float:
        """Record the newest instantaneous score."""
        self._target = float(score)
        if self.policy == "direct":
            self._value = self._target
        return self._value

    def step(self) -> float:
        """Advance one display refresh and return the display value."""
        if self.policy == "direct":
            self._value = self._target
            return self._value
        diff = self._target - self._value
        if abs(diff) < self.snap:
            self._value = self._target
        else:
            self._value += diff * self.factor
        return self._value

    def reset(self) -> None:
        self._target = 0.0
        self._value = 0.0

    @property
    def value(self) -> float:
        """Current display value."""
        return self._value

    @property
    def target(self) -> float:
        return self._target
