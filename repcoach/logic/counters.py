from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import ClassVar, Deque, Dict, List, Optional, Sequence, Tuple, Type

from loguru import logger

from repcoach.logic.baseline import BaselineTracker, RingBuffer
from repcoach.logic.geometry import angle_3pts, is_valid_angle, variance
from repcoach.logic.keypoints import Chain, complete_chains, find_keypoint
from repcoach.models.schemas import ExerciseConfig
from repcoach.utils.structures import ExerciseKind, FrameResult, Phase, PoseFrame, RepetitionEvent

INSUFFICIENT_DETECTION = "insufficient detection"
INSUFFICIENT_DEPTH = "insufficient depth"
CALIBRATING = "calibrating"
TOO_FAST = "too fast"

# Enough lateral samples for several seconds at ~10 Hz.
LATERAL_HISTORY = 64


@dataclass
class PeakTracker:
    started_at: float
    max_depth: float = 0.0
    min_angle: float = 180.0
    peak_frame: Optional[PoseFrame] = None
    lateral: Deque[float] = field(default_factory=lambda: deque(maxlen=LATERAL_HISTORY))

    def update(self, depth: float, angle: float, frame: PoseFrame, lateral_x: float) -> None:
        if self.peak_frame is None or depth > self.max_depth:
            self.max_depth = depth
            self.peak_frame = frame
        self.min_angle = min(self.min_angle, angle)
        self.lateral.append(lateral_x)

    def lateral_variance(self) -> Optional[float]:
        if len(self.lateral) < 3:
            return None
        return variance(self.lateral)


@dataclass
class CounterState:
    phase: Phase
    tracker: BaselineTracker
    angle_history: RingBuffer
    count: int = 0
    set_number: int = 1
    peak: Optional[PeakTracker] = None
    last_rep_time: Optional[float] = None


class ExerciseCounter:
    """Two-phase rep counter shared by every exercise kind.

    Subclasses name the joint pair whose vertical position is tracked against
    the baseline, the joint chains whose angle is measured, the two phases and
    the advisory feedback strings.
    """

    kind: ClassVar[ExerciseKind]
    resting_phase: ClassVar[Phase]
    engaged_phase: ClassVar[Phase]
    depth_joints: ClassVar[Tuple[str, str]]
    angle_chains: ClassVar[Sequence[Chain]]
    joint_label: ClassVar[str]
    messages: ClassVar[Dict[str, str]] = {
        "ready": "good form",
        "go_lower": "go lower",
        "return": "return to start",
        "counted": "good form",
    }

    def __init__(self, config: ExerciseConfig) -> None:
        if config.kind != self.kind:
            raise ValueError(f"{type(self).__name__} cannot run a {config.kind.value} config")
        self.config = config

    def new_state(self) -> CounterState:
        cfg = self.config
        return CounterState(
            phase=self.resting_phase,
            tracker=BaselineTracker(
                window=cfg.smoothing_window,
                stability_epsilon=cfg.stability_epsilon,
                adapt_rate=cfg.baseline_adapt_rate,
                min_stable_frames=cfg.baseline_stable_frames,
            ),
            angle_history=RingBuffer(cfg.smoothing_window),
        )

    def reset(self, state: CounterState) -> CounterState:
        fresh = self.new_state()
        state.phase = fresh.phase
        state.tracker = fresh.tracker
        state.angle_history = fresh.angle_history
        state.count = 0
        state.set_number = 1
        state.peak = None
        state.last_rep_time = None
        return state

    def start_new_set(self, state: CounterState) -> CounterState:
        state.set_number += 1
        state.peak = None
        state.phase = self.resting_phase
        return state

    def step(self, frame: PoseFrame, state: CounterState) -> Tuple[CounterState, FrameResult]:
        frame = frame.normalized()
        gate = self.config.confidence_gate
        sample = self._depth_sample(frame, gate)
        angle = self._joint_angle(frame, gate)
        if sample is None or angle is None:
            return state, self._result(state, None, None, INSUFFICIENT_DETECTION)
        depth_y, lateral_x = sample

        tracker = state.tracker
        tracker.push(depth_y)
        state.angle_history.push(angle)
        smoothed_angle = state.angle_history.mean()
        at_rest = state.phase == self.resting_phase and smoothed_angle >= self.config.release_angle_threshold
        baseline = tracker.adapt(resting=at_rest)
        smoothed = tracker.smoothed()
        if smoothed is None or baseline is None:
            return state, self._result(state, None, None, CALIBRATING)

        depth = max(0.0, smoothed - baseline)

        event: Optional[RepetitionEvent] = None
        feedback = self._resting_feedback(depth, smoothed_angle)
        if state.phase == self.resting_phase:
            if self._engaged(depth, smoothed_angle):
                state.phase = self.engaged_phase
                state.peak = PeakTracker(started_at=frame.timestamp)
                tracker.cancel_reanchor()
                logger.debug(
                    "{} engaged at t={:.2f} depth={:.3f} angle={:.1f}",
                    self.kind.value,
                    frame.timestamp,
                    depth,
                    smoothed_angle,
                )
        elif self._released(depth, smoothed_angle):
            event, feedback = self._complete(state, frame)
            state.phase = self.resting_phase
        if state.phase == self.engaged_phase and state.peak is not None:
            state.peak.update(depth, smoothed_angle, frame, lateral_x)
            if state.peak.max_depth >= self.config.depth_threshold:
                feedback = self.messages["return"]
            else:
                feedback = self.messages["go_lower"]

        return state, self._result(state, depth, smoothed_angle, feedback, event)

    def _engaged(self, depth: float, angle: float) -> bool:
        # A candidate opens at the release depth; it only counts if it later
        # reaches depth_threshold.
        return depth > self.config.release_depth and angle < self.config.angle_threshold

    def _released(self, depth: float, angle: float) -> bool:
        return depth < self.config.release_depth and angle >= self.config.release_angle_threshold

    def _complete(self, state: CounterState, frame: PoseFrame) -> Tuple[Optional[RepetitionEvent], str]:
        peak = state.peak
        state.peak = None
        if peak is None or peak.max_depth < self.config.depth_threshold:
            logger.debug(
                "{} candidate discarded: peak depth {:.3f} below {}",
                self.kind.value,
                peak.max_depth if peak is not None else 0.0,
                self.config.depth_threshold,
            )
            return None, INSUFFICIENT_DEPTH
        if state.last_rep_time is not None and frame.timestamp - state.last_rep_time < self.config.min_rep_interval:
            logger.debug(
                "{} candidate discarded: {:.2f}s since last rep",
                self.kind.value,
                frame.timestamp - state.last_rep_time,
            )
            return None, TOO_FAST
        state.count += 1
        state.last_rep_time = frame.timestamp
        state.tracker.request_reanchor()
        event = RepetitionEvent(
            sequence=state.count,
            peak_angle=peak.min_angle,
            peak_depth=peak.max_depth,
            timestamp=frame.timestamp,
            set_number=state.set_number,
            started_at=peak.started_at,
            lateral_variance=peak.lateral_variance(),
            peak_frame=peak.peak_frame,
        )
        logger.info(
            "{} rep {} counted (set {}) depth={:.3f} angle={:.1f}",
            self.kind.value,
            event.sequence,
            event.set_number,
            event.peak_depth,
            event.peak_angle,
        )
        return event, self.messages["counted"]

    def _resting_feedback(self, depth: float, angle: float) -> str:
        deep_enough = depth > self.config.depth_threshold
        bent_enough = angle < self.config.angle_threshold
        if deep_enough and not bent_enough:
            return f"{self.joint_label} angle insufficient"
        if bent_enough and not deep_enough:
            return self.messages["go_lower"]
        return self.messages["ready"]

    def _depth_sample(self, frame: PoseFrame, gate: float) -> Optional[Tuple[float, float]]:
        left = find_keypoint(frame, self.depth_joints[0], gate)
        right = find_keypoint(frame, self.depth_joints[1], gate)
        if left is None or right is None:
            return None
        return (left.y + right.y) / 2.0, (left.x + right.x) / 2.0

    def _joint_angle(self, frame: PoseFrame, gate: float) -> Optional[float]:
        angles: List[float] = []
        for a, b, c in complete_chains(frame, self.angle_chains, gate):
            value = angle_3pts(a.xy, b.xy, c.xy)
            if is_valid_angle(value):
                angles.append(value)
        if not angles:
            return None
        # The more-bent side drives the state machine.
        return min(angles)

    @staticmethod
    def _result(
        state: CounterState,
        depth: Optional[float],
        angle: Optional[float],
        feedback: str,
        event: Optional[RepetitionEvent] = None,
    ) -> FrameResult:
        return FrameResult(
            count=state.count,
            phase=state.phase,
            depth_metric=depth,
            angle_metric=None if angle is None or math.isnan(angle) else angle,
            feedback=feedback,
            set_number=state.set_number,
            repetition_event=event,
        )


class SquatCounter(ExerciseCounter):
    kind = ExerciseKind.SQUAT
    resting_phase = Phase.STANDING
    engaged_phase = Phase.SQUATTING
    depth_joints = ("left_hip", "right_hip")
    angle_chains = (
        ("left_hip", "left_knee", "left_ankle"),
        ("right_hip", "right_knee", "right_ankle"),
    )
    joint_label = "knee"
    messages = {
        "ready": "good form",
        "go_lower": "sit lower",
        "return": "stand up",
        "counted": "good form",
    }


class PushupCounter(ExerciseCounter):
    kind = ExerciseKind.PUSHUP
    resting_phase = Phase.EXTENDED
    engaged_phase = Phase.BENT
    depth_joints = ("left_shoulder", "right_shoulder")
    angle_chains = (
        ("left_shoulder", "left_elbow", "left_wrist"),
        ("right_shoulder", "right_elbow", "right_wrist"),
    )
    joint_label = "elbow"
    messages = {
        "ready": "good form",
        "go_lower": "lower your chest",
        "return": "push up",
        "counted": "good form",
    }


class LungeCounter(ExerciseCounter):
    kind = ExerciseKind.LUNGE
    resting_phase = Phase.STANDING
    engaged_phase = Phase.LUNGING
    depth_joints = ("left_hip", "right_hip")
    angle_chains = (
        ("left_hip", "left_knee", "left_ankle"),
        ("right_hip", "right_knee", "right_ankle"),
    )
    joint_label = "knee"
    messages = {
        "ready": "good form",
        "go_lower": "lunge deeper",
        "return": "step back up",
        "counted": "lunge complete",
    }


COUNTERS: Dict[ExerciseKind, Type[ExerciseCounter]] = {
    ExerciseKind.SQUAT: SquatCounter,
    ExerciseKind.PUSHUP: PushupCounter,
    ExerciseKind.LUNGE: LungeCounter,
}


def create_counter(config: ExerciseConfig) -> ExerciseCounter:
    return COUNTERS[config.kind](config)
