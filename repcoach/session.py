from __future__ import annotations

from dataclasses import replace
from typing import Optional, Tuple

import numpy as np

from repcoach.logic.aggregator import SessionAggregator
from repcoach.logic.counters import CounterState, ExerciseCounter, create_counter
from repcoach.logic.scoring import FormScorer, create_scorer
from repcoach.models.schemas import ExerciseConfig
from repcoach.utils.logging_utils import configure_logging, get_logger
from repcoach.utils.structures import FrameResult, PoseFrame, ScoreSample, SessionSummary

STALE_FRAME = "stale frame"


class ExerciseSession:
    """Per-session facade: one counter state, one aggregator, driven frame by frame.

    Not thread-safe; parallel users need one session each.
    """

    def __init__(
        self,
        config: ExerciseConfig,
        scorer: Optional[FormScorer] = None,
        log_level: Optional[str] = None,
    ) -> None:
        if log_level is not None:
            configure_logging(log_level)
        self.config = config
        self.counter: ExerciseCounter = create_counter(config)
        self.scorer: FormScorer = scorer or create_scorer(config)
        self.state: CounterState = self.counter.new_state()
        self.aggregator = SessionAggregator()
        self._last_timestamp: Optional[float] = None
        self._last_result: Optional[FrameResult] = None
        self._log = get_logger(f"session.{config.kind.value}")
        self._log.info(
            "Session configured for {} depth>{} angle<{} window={}",
            config.kind.value,
            config.depth_threshold,
            config.angle_threshold,
            config.smoothing_window,
        )

    @property
    def count(self) -> int:
        return self.state.count

    def submit_frame(self, frame: PoseFrame) -> FrameResult:
        if self._last_timestamp is not None and frame.timestamp <= self._last_timestamp:
            self._log.warning(
                "Ignoring frame at t={} (last accepted t={})",
                frame.timestamp,
                self._last_timestamp,
            )
            return FrameResult(
                count=self.state.count,
                phase=self.state.phase,
                depth_metric=None,
                angle_metric=None,
                feedback=STALE_FRAME,
                set_number=self.state.set_number,
            )
        self._last_timestamp = frame.timestamp
        self.state, result = self.counter.step(frame, self.state)
        event = result.repetition_event
        if event is not None:
            score = self.scorer.score_repetition(event)
            self.aggregator.record(score, frame_ref=event, set_number=event.set_number)
            result = replace(result, score=score)
        self._last_result = result
        return result

    def submit_landmarks(
        self,
        landmarks: np.ndarray,
        timestamp: float,
        image_size: Optional[Tuple[int, int]] = None,
    ) -> FrameResult:
        """Submit a raw MediaPipe-style (N, 4) landmark array."""
        return self.submit_frame(PoseFrame.from_landmarks(landmarks, timestamp, image_size=image_size))

    def score_frame(self, frame: PoseFrame) -> ScoreSample:
        """Live form score for ``frame`` using the latest counter metrics when available."""
        depth = angle = None
        if self._last_result is not None:
            depth = self._last_result.depth_metric
            angle = self._last_result.angle_metric
        return self.scorer.score_frame(frame, depth=depth, angle=angle)

    def start_new_set(self) -> int:
        set_number = self.aggregator.start_new_set()
        self.counter.start_new_set(self.state)
        self.state.set_number = set_number
        return set_number

    def finalize_session(self) -> SessionSummary:
        summary = self.aggregator.finalize()
        self._log.info(
            "Session finalized | reps={} average={:.1f} sets={}",
            summary.total_count,
            summary.average_score,
            len(summary.sets),
        )
        return summary

    def reset(self) -> None:
        self.counter.reset(self.state)
        self.aggregator.reset()
        self._last_timestamp = None
        self._last_result = None
