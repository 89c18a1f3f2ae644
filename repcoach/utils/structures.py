from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

# MediaPipe Pose indices for the joints the counters and scorers read.
POSE_LANDMARKS: Dict[str, int] = {
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
}


class ExerciseKind(str, Enum):
    SQUAT = "squat"
    PUSHUP = "pushup"
    LUNGE = "lunge"


class Phase(str, Enum):
    STANDING = "standing"
    SQUATTING = "squatting"
    EXTENDED = "extended"
    BENT = "bent"
    LUNGING = "lunging"


@dataclass(frozen=True)
class Keypoint:
    name: str
    x: float
    y: float
    z: Optional[float] = None
    score: float = 1.0

    @property
    def xy(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


@dataclass
class PoseFrame:
    keypoints: List[Keypoint]
    timestamp: float
    image_size: Optional[Tuple[int, int]] = None  # (width, height) when coords are pixels

    def get(self, name: str) -> Optional[Keypoint]:
        for kp in self.keypoints:
            if kp.name == name:
                return kp
        return None

    def normalized(self) -> "PoseFrame":
        if self.image_size is None:
            return self
        width, height = self.image_size
        width, height = max(width, 1), max(height, 1)
        keypoints = [
            replace(
                kp,
                x=kp.x / width,
                y=kp.y / height,
                z=kp.z / width if kp.z is not None else None,
            )
            for kp in self.keypoints
        ]
        return PoseFrame(keypoints=keypoints, timestamp=self.timestamp, image_size=None)

    @classmethod
    def from_landmarks(
        cls,
        landmarks: np.ndarray,
        timestamp: float,
        names: Optional[Mapping[str, int]] = None,
        image_size: Optional[Tuple[int, int]] = None,
    ) -> "PoseFrame":
        """Build a frame from an (N, 4) landmark array laid out as x, y, z, visibility."""
        keypoints: List[Keypoint] = []
        for name, idx in (names or POSE_LANDMARKS).items():
            if idx >= landmarks.shape[0]:
                continue
            x, y, z, visibility = (float(v) for v in landmarks[idx][:4])
            keypoints.append(Keypoint(name=name, x=x, y=y, z=z, score=visibility))
        return cls(keypoints=keypoints, timestamp=timestamp, image_size=image_size)


@dataclass(frozen=True)
class RepetitionEvent:
    sequence: int
    peak_angle: float
    peak_depth: float
    timestamp: float
    set_number: int
    started_at: float
    lateral_variance: Optional[float] = None
    peak_frame: Optional[PoseFrame] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ScoreSample:
    overall: int
    alignment: float
    range: float
    stability: float
    feedback: Tuple[str, ...]
    stability_measured: bool = False


@dataclass(frozen=True)
class FrameResult:
    count: int
    phase: Phase
    depth_metric: Optional[float]
    angle_metric: Optional[float]
    feedback: str
    set_number: int = 1
    repetition_event: Optional[RepetitionEvent] = None
    score: Optional[ScoreSample] = None


@dataclass(frozen=True)
class ScoreRecord:
    sample: ScoreSample
    frame_ref: Any

    @property
    def score(self) -> int:
        return self.sample.overall


@dataclass(frozen=True)
class SetSummary:
    set_number: int
    count: int
    average_score: float


@dataclass(frozen=True)
class SessionSummary:
    total_count: int
    average_score: float
    best: Optional[ScoreRecord]
    worst: Optional[ScoreRecord]
    sets: Tuple[SetSummary, ...]

    @property
    def per_set_counts(self) -> Dict[int, int]:
        return {s.set_number: s.count for s in self.sets}

    @property
    def best_score(self) -> Optional[int]:
        return self.best.score if self.best else None

    @property
    def worst_score(self) -> Optional[int]:
        return self.worst.score if self.worst else None

