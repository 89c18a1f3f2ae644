from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from repcoach.utils.structures import ScoreRecord, ScoreSample, SessionSummary, SetSummary


@dataclass
class _SetBucket:
    count: int = 0
    mean_score: float = 0.0

    def add(self, score: float) -> None:
        self.count += 1
        self.mean_score += (score - self.mean_score) / self.count


class SessionAggregator:
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.current_set = 1
        self._total = 0
        self._mean = 0.0
        self._best: Optional[ScoreRecord] = None
        self._worst: Optional[ScoreRecord] = None
        self._sets: Dict[int, _SetBucket] = {self.current_set: _SetBucket()}

    @property
    def total_count(self) -> int:
        return self._total

    @property
    def running_mean(self) -> float:
        return self._mean

    def record(self, sample: ScoreSample, frame_ref: Any = None, set_number: Optional[int] = None) -> None:
        set_number = self.current_set if set_number is None else set_number
        score = float(sample.overall)
        self._total += 1
        self._mean += (score - self._mean) / self._total
        record = ScoreRecord(sample=sample, frame_ref=frame_ref)
        # Strict comparisons: ties keep the earlier sample.
        if self._best is None or sample.overall > self._best.score:
            self._best = record
        if self._worst is None or sample.overall < self._worst.score:
            self._worst = record
        self._sets.setdefault(set_number, _SetBucket()).add(score)

    def start_new_set(self) -> int:
        self.current_set += 1
        self._sets.setdefault(self.current_set, _SetBucket())
        logger.info("Set {} started after {} total reps", self.current_set, self._total)
        return self.current_set

    def finalize(self) -> SessionSummary:
        sets = tuple(
            SetSummary(set_number=number, count=bucket.count, average_score=bucket.mean_score)
            for number, bucket in sorted(self._sets.items())
        )
        return SessionSummary(
            total_count=self._total,
            average_score=self._mean,
            best=self._best,
            worst=self._worst,
            sets=sets,
        )
