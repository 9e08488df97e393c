from __future__ import annotations

from collections import deque
from typing import Deque, Optional


class Smoother:
    """Fixed-window moving average over the last ``window`` raw samples."""

    def __init__(self, window: int = 3):
        if window < 1:
            raise ValueError("smoothing window must be >= 1")
        self.window = window
        self._values: Deque[float] = deque(maxlen=window)

    def update(self, value: float) -> float:
        self._values.append(float(value))
        return sum(self._values) / len(self._values)

    def reset(self) -> None:
        self._values.clear()


class BaselineTracker:
    """
    First-order IIR low-pass acting as the slowly adapting DC reference.
    The first sample after a reset initialises the baseline directly.
    """

    def __init__(self, alpha: float = 0.95):
        if not 0.0 < alpha < 1.0:
            raise ValueError("baseline alpha must lie in (0, 1)")
        self.alpha = alpha
        self.baseline: Optional[float] = None

    def update(self, sample: float) -> float:
        """Fold *sample* into the baseline and return the AC component."""
        if self.baseline is None:
            self.baseline = float(sample)
        else:
            self.baseline = self.baseline * self.alpha + sample * (1.0 - self.alpha)
        return sample - self.baseline

    @property
    def initialized(self) -> bool:
        return self.baseline is not None

    def reset(self) -> None:
        self.baseline = None


class Digitizer:
    """Schmitt trigger: values inside (-threshold, +threshold) keep the previous state."""

    def __init__(self, threshold: float, initial_state: int = 0):
        if threshold <= 0:
            raise ValueError("threshold must be > 0")
        self.threshold = threshold
        self._initial_state = initial_state
        self.state = initial_state

    def update(self, amplified: float, threshold: float | None = None) -> int:
        if threshold is not None:
            if threshold <= 0:
                raise ValueError("threshold must be > 0")
            self.threshold = threshold
        if amplified > self.threshold:
            self.state = 1
        elif amplified < -self.threshold:
            self.state = 0
        return self.state

    def reset(self) -> None:
        self.state = self._initial_state
