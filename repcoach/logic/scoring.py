from __future__ import annotations

import math
from typing import ClassVar, Dict, List, Optional, Tuple, Type

from repcoach.logic.geometry import angle_3pts, is_valid_angle, torso_lean_angle
from repcoach.logic.keypoints import Chain, complete_chains, find_keypoint
from repcoach.models.schemas import ExerciseConfig
from repcoach.utils.structures import ExerciseKind, Keypoint, PoseFrame, RepetitionEvent, ScoreSample

GOOD_FORM = "good form"
STABILITY_WEIGHTS = (0.4, 0.4, 0.2)  # alignment, range, stability


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class FormScorer:
    """Single-frame or per-rep quality score split into alignment, range and stability."""

    kind: ClassVar[ExerciseKind]
    angle_chains: ClassVar[Tuple[Chain, ...]]
    target_angle: ClassVar[float]
    target_depth_ratio: ClassVar[float] = 1.5
    angle_penalty: ClassVar[float] = 20.0
    depth_penalty: ClassVar[float] = 30.0
    range_messages: ClassVar[Tuple[str, str]] = ("bend further", "go deeper")
    sway_tolerance: ClassVar[float] = 0.01
    max_sway_penalty: ClassVar[float] = 50.0

    def __init__(self, config: ExerciseConfig) -> None:
        self.config = config

    def score_frame(
        self,
        frame: PoseFrame,
        depth: Optional[float] = None,
        angle: Optional[float] = None,
        lateral_variance: Optional[float] = None,
    ) -> ScoreSample:
        frame = frame.normalized()
        feedback: List[str] = []
        alignment = 100.0 - self._alignment_deductions(frame, feedback)
        if angle is None or not is_valid_angle(angle):
            angle = self._frame_angle(frame)
        range_score = 100.0 - self._range_deductions(depth, angle, feedback)
        stability, measured = self._stability(lateral_variance, feedback)
        return self._build(alignment, range_score, stability, measured, feedback)

    def score_repetition(self, event: RepetitionEvent) -> ScoreSample:
        frame = event.peak_frame if event.peak_frame is not None else PoseFrame([], event.timestamp)
        return self.score_frame(
            frame,
            depth=event.peak_depth,
            angle=event.peak_angle,
            lateral_variance=event.lateral_variance,
        )

    def _alignment_deductions(self, frame: PoseFrame, feedback: List[str]) -> float:
        return 0.0

    def _range_deductions(self, depth: Optional[float], angle: Optional[float], feedback: List[str]) -> float:
        deduction = 0.0
        if angle is not None and angle > self.target_angle:
            deduction += self.angle_penalty
            feedback.append(self.range_messages[0])
        if depth is not None and depth < self.config.depth_threshold * self.target_depth_ratio:
            deduction += self.depth_penalty
            feedback.append(self.range_messages[1])
        return deduction

    def _stability(self, lateral_variance: Optional[float], feedback: List[str]) -> Tuple[float, bool]:
        if lateral_variance is None or not math.isfinite(lateral_variance):
            return 100.0, False
        sway = math.sqrt(max(lateral_variance, 0.0))
        if sway <= self.sway_tolerance:
            return 100.0, True
        penalty = min(self.max_sway_penalty, (sway - self.sway_tolerance) * 1000.0)
        feedback.append("keep your body steady")
        return 100.0 - penalty, True

    def _frame_angle(self, frame: PoseFrame) -> Optional[float]:
        angles = [
            angle_3pts(a.xy, b.xy, c.xy)
            for a, b, c in complete_chains(frame, self.angle_chains, self.config.confidence_gate)
        ]
        angles = [a for a in angles if is_valid_angle(a)]
        return min(angles) if angles else None

    def _kp(self, frame: PoseFrame, name: str) -> Optional[Keypoint]:
        return find_keypoint(frame, name, self.config.confidence_gate)

    def _torso_lean(self, frame: PoseFrame) -> Optional[float]:
        """Largest shoulder-over-hip lean among the visible sides."""
        leans = []
        for side in ("left", "right"):
            shoulder, hip = self._kp(frame, f"{side}_shoulder"), self._kp(frame, f"{side}_hip")
            if shoulder is not None and hip is not None:
                leans.append(torso_lean_angle(shoulder.xy, hip.xy))
        return max(leans) if leans else None

    @staticmethod
    def _build(
        alignment: float,
        range_score: float,
        stability: float,
        measured: bool,
        feedback: List[str],
    ) -> ScoreSample:
        alignment = _clamp(alignment)
        range_score = _clamp(range_score)
        stability = _clamp(stability)
        if measured:
            w_align, w_range, w_stab = STABILITY_WEIGHTS
            raw = alignment * w_align + range_score * w_range + stability * w_stab
        else:
            raw = (alignment + range_score) / 2.0
        overall = int(_clamp(round(raw)))
        return ScoreSample(
            overall=overall,
            alignment=alignment,
            range=range_score,
            stability=stability,
            feedback=tuple(feedback) if feedback else (GOOD_FORM,),
            stability_measured=measured,
        )


class SquatScorer(FormScorer):
    kind = ExerciseKind.SQUAT
    angle_chains = (
        ("left_hip", "left_knee", "left_ankle"),
        ("right_hip", "right_knee", "right_ankle"),
    )
    target_angle = 100.0
    range_messages = ("bend your knees more", "sit deeper")
    knee_over_ankle_tolerance = 0.06
    valgus_tolerance = 0.03
    torso_lean_max = 45.0

    def _alignment_deductions(self, frame: PoseFrame, feedback: List[str]) -> float:
        deduction = 0.0
        knees = [self._kp(frame, f"{side}_knee") for side in ("left", "right")]
        ankles = [self._kp(frame, f"{side}_ankle") for side in ("left", "right")]
        if any(
            k is not None and a is not None and abs(k.x - a.x) > self.knee_over_ankle_tolerance
            for k, a in zip(knees, ankles)
        ):
            deduction += 25.0
            feedback.append("keep your knees over your ankles")
        if all(p is not None for p in knees + ankles):
            knee_width = abs(knees[0].x - knees[1].x)  # type: ignore[union-attr]
            ankle_width = abs(ankles[0].x - ankles[1].x)  # type: ignore[union-attr]
            if ankle_width - knee_width > self.valgus_tolerance:
                deduction += 15.0
                feedback.append("push your knees out")
        lean = self._torso_lean(frame)
        if lean is not None and lean > self.torso_lean_max:
            deduction += 10.0
            feedback.append("keep your chest up")
        return deduction


class PushupScorer(FormScorer):
    kind = ExerciseKind.PUSHUP
    angle_chains = (
        ("left_shoulder", "left_elbow", "left_wrist"),
        ("right_shoulder", "right_elbow", "right_wrist"),
    )
    target_angle = 90.0
    range_messages = ("bend your elbows more", "lower your chest further")
    shoulder_level_tolerance = 0.03
    hip_line_min_angle = 160.0

    def _alignment_deductions(self, frame: PoseFrame, feedback: List[str]) -> float:
        deduction = 0.0
        left, right = self._kp(frame, "left_shoulder"), self._kp(frame, "right_shoulder")
        if left is not None and right is not None and abs(left.y - right.y) > self.shoulder_level_tolerance:
            deduction += 20.0
            feedback.append("level your shoulders")
        hip_angles = [
            angle_3pts(s.xy, h.xy, k.xy)
            for s, h, k in complete_chains(
                frame,
                (("left_shoulder", "left_hip", "left_knee"), ("right_shoulder", "right_hip", "right_knee")),
                self.config.confidence_gate,
            )
        ]
        hip_angles = [a for a in hip_angles if is_valid_angle(a)]
        if hip_angles and min(hip_angles) < self.hip_line_min_angle:
            deduction += 15.0
            feedback.append("keep your hips in line with your shoulders")
        return deduction


class LungeScorer(FormScorer):
    kind = ExerciseKind.LUNGE
    angle_chains = (
        ("left_hip", "left_knee", "left_ankle"),
        ("right_hip", "right_knee", "right_ankle"),
    )
    target_angle = 100.0
    range_messages = ("bend your front knee more", "lunge deeper")
    knee_over_ankle_tolerance = 0.05
    hip_level_tolerance = 0.03
    torso_lean_max = 30.0

    def _alignment_deductions(self, frame: PoseFrame, feedback: List[str]) -> float:
        deduction = 0.0
        front = self._front_leg(frame)
        if front is not None:
            knee, ankle = front
            if abs(knee.x - ankle.x) > self.knee_over_ankle_tolerance:
                deduction += 20.0
                feedback.append("keep your front knee behind your toes")
        left_hip, right_hip = self._kp(frame, "left_hip"), self._kp(frame, "right_hip")
        if left_hip is not None and right_hip is not None and abs(left_hip.y - right_hip.y) > self.hip_level_tolerance:
            deduction += 15.0
            feedback.append("keep your hips level")
        lean = self._torso_lean(frame)
        if lean is not None and lean > self.torso_lean_max:
            deduction += 10.0
            feedback.append("keep your torso upright")
        return deduction

    def _front_leg(self, frame: PoseFrame) -> Optional[Tuple[Keypoint, Keypoint]]:
        best: Optional[Tuple[float, Keypoint, Keypoint]] = None
        for hip, knee, ankle in complete_chains(frame, self.angle_chains, self.config.confidence_gate):
            value = angle_3pts(hip.xy, knee.xy, ankle.xy)
            if not is_valid_angle(value):
                continue
            if best is None or value < best[0]:
                best = (value, knee, ankle)
        if best is None:
            return None
        return best[1], best[2]


SCORERS: Dict[ExerciseKind, Type[FormScorer]] = {
    ExerciseKind.SQUAT: SquatScorer,
    ExerciseKind.PUSHUP: PushupScorer,
    ExerciseKind.LUNGE: LungeScorer,
}


def create_scorer(config: ExerciseConfig) -> FormScorer:
    return SCORERS[config.kind](config)
