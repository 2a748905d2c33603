"""
guardian/contracts/budget.py
Latency budget for one analysis run.

The caller hands the engine an overall time allowance. The deterministic
stages spend from it without ever checking it; the augmentation stage asks
how much is left and shortens its own timeout accordingly, so the response
is never delayed past the allowance.
"""

import time
from typing import Callable, Dict

from pydantic import BaseModel, Field, PrivateAttr


class AnalysisBudget(BaseModel):
    """
    Wall-clock allowance for a single check, measured on a monotonic clock.
    """
    max_time_ms: int = Field(..., ge=0, description="Maximum duration in milliseconds")

    _clock: Callable[[], float] = PrivateAttr(default=time.monotonic)
    _started: float = PrivateAttr(default=0.0)

    def model_post_init(self, __context) -> None:
        self._started = self._clock()

    @classmethod
    def start(cls, max_time_ms: int, clock: Callable[[], float] = time.monotonic) -> "AnalysisBudget":
        """Create a budget whose countdown begins now on the given clock."""
        budget = cls(max_time_ms=max_time_ms)
        budget._clock = clock
        budget._started = clock()
        return budget

    def elapsed_ms(self) -> float:
        return (self._clock() - self._started) * 1000.0

    def remaining_ms(self) -> float:
        return max(0.0, self.max_time_ms - self.elapsed_ms())

    def remaining_seconds(self) -> float:
        return self.remaining_ms() / 1000.0

    def is_exhausted(self) -> bool:
        return self.remaining_ms() <= 0.0

    def allot(self, ceiling_seconds: float) -> float:
        """Timeout for a sub-stage: its own ceiling, cut down to what is left."""
        return max(0.0, min(ceiling_seconds, self.remaining_seconds()))

    def usage_report(self) -> Dict[str, float]:
        """Return a snapshot of limit vs usage."""
        used = self.elapsed_ms()
        return {
            "limit_ms": float(self.max_time_ms),
            "used_ms": used,
            "remaining_ms": self.remaining_ms(),
            "percent": (used / self.max_time_ms) * 100 if self.max_time_ms > 0 else 100.0,
        }
