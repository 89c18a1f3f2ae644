from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from repcoach.utils.structures import Keypoint, PoseFrame

DEFAULT_CONFIDENCE_GATE = 0.3

Chain = Tuple[str, str, str]


def find_keypoint(frame: PoseFrame, name: str, min_score: float = DEFAULT_CONFIDENCE_GATE) -> Optional[Keypoint]:
    """Return the named joint, or ``None`` when it is missing or below ``min_score``."""
    kp = frame.get(name)
    if kp is None or kp.score is None:
        return None
    if kp.score < min_score or not kp.is_finite():
        return None
    return kp


def find_keypoints(
    frame: PoseFrame,
    names: Iterable[str],
    min_score: float = DEFAULT_CONFIDENCE_GATE,
) -> Dict[str, Optional[Keypoint]]:
    return {name: find_keypoint(frame, name, min_score) for name in names}


def complete_chains(
    frame: PoseFrame,
    chains: Sequence[Chain],
    min_score: float = DEFAULT_CONFIDENCE_GATE,
) -> List[Tuple[Keypoint, Keypoint, Keypoint]]:
    resolved = []
    for chain in chains:
        points = [find_keypoint(frame, name, min_score) for name in chain]
        if all(p is not None for p in points):
            resolved.append(tuple(points))  # type: ignore[arg-type]
    return resolved
