"""Synthetic pose streams for exercising the counters without a pose model."""

from __future__ import annotations

import math
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import pytest

from repcoach.models.schemas import ExerciseConfig
from repcoach.utils.structures import Keypoint, PoseFrame

FRAME_DT = 0.1
Profile = List[Tuple[float, float]]


def limb(top: Tuple[float, float], theta: float, side: int, upper: float = 0.2, lower: float = 0.2):
    """Place the middle and end joints so the angle at the middle joint equals ``theta``.

    The lower segment always hangs straight down from the middle joint.
    """
    rad = math.radians(theta)
    mid = (top[0] - side * upper * math.sin(rad), top[1] - upper * math.cos(rad))
    end = (mid[0], mid[1] + lower)
    return mid, end


def squat_frame(t: float, depth: float = 0.0, knee_angle: float = 175.0, score: float = 0.9,
                hip_y: float = 0.5) -> PoseFrame:
    kps: List[Keypoint] = []
    for side, name, x in ((1, "left", 0.45), (-1, "right", 0.55)):
        hip = (x, hip_y + depth)
        knee, ankle = limb(hip, knee_angle, side)
        kps += [
            Keypoint(f"{name}_shoulder", x, hip[1] - 0.3, score=score),
            Keypoint(f"{name}_hip", hip[0], hip[1], score=score),
            Keypoint(f"{name}_knee", knee[0], knee[1], score=score),
            Keypoint(f"{name}_ankle", ankle[0], ankle[1], score=score),
        ]
    return PoseFrame(keypoints=kps, timestamp=t)


def lunge_frame(t: float, depth: float = 0.0, knee_angle: float = 175.0, score: float = 0.9) -> PoseFrame:
    kps: List[Keypoint] = []
    back_angle = min(180.0, knee_angle + 20.0)
    for side, name, x, theta in ((1, "left", 0.45, knee_angle), (-1, "right", 0.55, back_angle)):
        hip = (x, 0.5 + depth)
        knee, ankle = limb(hip, theta, side)
        kps += [
            Keypoint(f"{name}_shoulder", x, hip[1] - 0.3, score=score),
            Keypoint(f"{name}_hip", hip[0], hip[1], score=score),
            Keypoint(f"{name}_knee", knee[0], knee[1], score=score),
            Keypoint(f"{name}_ankle", ankle[0], ankle[1], score=score),
        ]
    return PoseFrame(keypoints=kps, timestamp=t)


def pushup_frame(t: float, depth: float = 0.0, elbow_angle: float = 170.0, score: float = 0.9) -> PoseFrame:
    kps: List[Keypoint] = []
    for side, name, x in ((1, "left", 0.45), (-1, "right", 0.55)):
        shoulder = (x, 0.4 + depth)
        elbow, wrist = limb(shoulder, elbow_angle, side, upper=0.15, lower=0.15)
        kps += [
            Keypoint(f"{name}_shoulder", shoulder[0], shoulder[1], score=score),
            Keypoint(f"{name}_elbow", elbow[0], elbow[1], score=score),
            Keypoint(f"{name}_wrist", wrist[0], wrist[1], score=score),
        ]
    return PoseFrame(keypoints=kps, timestamp=t)


def rep_profile(peak_depth: float, peak_angle: float, rest_angle: float = 175.0,
                standing: int = 8, ramp: int = 4, hold: int = 6) -> Profile:
    """One rest -> down -> hold -> up cycle as (depth, angle) pairs."""
    profile: Profile = [(0.0, rest_angle)] * standing
    for i in range(1, ramp + 1):
        frac = i / ramp
        profile.append((peak_depth * frac, rest_angle + (peak_angle - rest_angle) * frac))
    profile += [(peak_depth, peak_angle)] * hold
    for i in range(ramp - 1, -1, -1):
        frac = i / ramp
        profile.append((peak_depth * frac, rest_angle + (peak_angle - rest_angle) * frac))
    return profile


def build_frames(profile: Sequence[Tuple[float, float]], builder: Callable[..., PoseFrame],
                 t0: float = 0.0, dt: float = FRAME_DT) -> List[PoseFrame]:
    return [builder(t0 + i * dt, depth, angle) for i, (depth, angle) in enumerate(profile)]


def cycles(n: int, peak_depth: float, peak_angle: float, rest_angle: float = 175.0, tail: int = 8,
           ramp: int = 4) -> Profile:
    profile: Profile = []
    for _ in range(n):
        profile += rep_profile(peak_depth, peak_angle, rest_angle, ramp=ramp)
    profile += [(0.0, rest_angle)] * tail
    return profile


def empty_frame(t: float) -> PoseFrame:
    return PoseFrame(keypoints=[], timestamp=t)


def retime(frames: Iterable[PoseFrame], t0: float = 0.0, dt: float = FRAME_DT) -> List[PoseFrame]:
    out = []
    for i, frame in enumerate(frames):
        out.append(PoseFrame(keypoints=frame.keypoints, timestamp=t0 + i * dt, image_size=frame.image_size))
    return out


@pytest.fixture
def squat_config() -> ExerciseConfig:
    return ExerciseConfig(kind="squat", depth_threshold=0.05, angle_threshold=140, smoothing_window=5)


@pytest.fixture
def pushup_config() -> ExerciseConfig:
    return ExerciseConfig.for_kind("pushup")


@pytest.fixture
def lunge_config() -> ExerciseConfig:
    return ExerciseConfig.for_kind("lunge")


def first_event_frame(results) -> Optional[int]:
    for i, result in enumerate(results):
        if result.repetition_event is not None:
            return i
    return None
