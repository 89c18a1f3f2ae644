from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

from repcoach.logic.geometry import mean, variance


class RingBuffer:
    def __init__(self, capacity: int) -> None:
        self.capacity = max(1, capacity)
        self._items: Deque[float] = deque(maxlen=self.capacity)

    def push(self, value: float) -> None:
        self._items.append(float(value))

    def values(self) -> List[float]:
        return list(self._items)

    def mean(self) -> float:
        return mean(self._items)

    def variance(self) -> float:
        return variance(self._items)

    def is_full(self) -> bool:
        return len(self._items) == self.capacity

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class BaselineTracker:
    """Smoothed reference ("resting") position for a scalar body signal.

    Samples go into a fixed-size ring buffer whose mean is the smoothed value.
    The baseline is set the first time the buffer is ready. It only moves once
    the subject has held still at rest for ``min_stable_frames`` consecutive
    frames: then it follows slow drift, or, after a counted rep, re-anchors to
    the smoothed value as soon as the buffer has settled.
    """

    def __init__(
        self,
        window: int = 5,
        min_samples: int = 3,
        stability_epsilon: float = 0.03,
        adapt_rate: float = 0.05,
        settle_variance: float = 1e-4,
        min_stable_frames: int = 10,
    ) -> None:
        self.buffer = RingBuffer(window)
        self.min_samples = min(max(1, min_samples), self.buffer.capacity)
        self.stability_epsilon = stability_epsilon
        self.adapt_rate = adapt_rate
        self.settle_variance = settle_variance
        self.min_stable_frames = max(1, min_stable_frames)
        self._baseline: Optional[float] = None
        self._last_smoothed: Optional[float] = None
        self._reanchor_pending = False
        self._stable_frames = 0

    @property
    def ready(self) -> bool:
        return len(self.buffer) >= self.min_samples

    @property
    def reanchor_pending(self) -> bool:
        return self._reanchor_pending

    def push(self, sample: float) -> None:
        self.buffer.push(sample)

    def smoothed(self) -> Optional[float]:
        if not self.ready:
            return None
        return self.buffer.mean()

    def baseline(self) -> Optional[float]:
        return self._baseline

    def adapt(self, resting: bool) -> Optional[float]:
        """Update the baseline from the current smoothed value and return it.

        ``resting`` must only be true while the subject is back in the fully
        extended start position, not merely outside the engaged phase.
        """
        current = self.smoothed()
        if current is None:
            return self._baseline
        if self._baseline is None:
            self._baseline = current
        elif (
            resting
            and self._last_smoothed is not None
            and abs(current - self._last_smoothed) < self.stability_epsilon
        ):
            self._stable_frames += 1
            if self._stable_frames >= self.min_stable_frames:
                if self._reanchor_pending and self.buffer.variance() <= self.settle_variance:
                    self._baseline = current
                    self._reanchor_pending = False
                else:
                    self._baseline = (1.0 - self.adapt_rate) * self._baseline + self.adapt_rate * current
        else:
            self._stable_frames = 0
        self._last_smoothed = current
        return self._baseline

    def request_reanchor(self) -> None:
        self._reanchor_pending = True

    def cancel_reanchor(self) -> None:
        self._reanchor_pending = False

    def reset(self) -> None:
        self.buffer.clear()
        self._baseline = None
        self._last_smoothed = None
        self._reanchor_pending = False
        self._stable_frames = 0
