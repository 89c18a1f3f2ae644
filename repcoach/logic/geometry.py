from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np

_EPS = 1e-9


def _xy(p: Sequence[float]) -> np.ndarray:
    return np.asarray(p, dtype=float)[:2]


def angle_3pts(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> float:
    """Angle at vertex ``b`` in degrees, folded into [0, 180].

    Returns ``nan`` when either ray has zero length.
    """
    a, b, c = _xy(a), _xy(b), _xy(c)
    ba = a - b
    bc = c - b
    if np.linalg.norm(ba) < _EPS or np.linalg.norm(bc) < _EPS:
        return float("nan")
    radians = np.arctan2(bc[1], bc[0]) - np.arctan2(ba[1], ba[0])
    angle = abs(float(np.degrees(radians)))
    if angle > 180.0:
        angle = 360.0 - angle
    return angle


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    return float(np.linalg.norm(_xy(a) - _xy(b)))


def midpoint(a: Sequence[float], b: Sequence[float]) -> np.ndarray:
    return (_xy(a) + _xy(b)) / 2.0


def mean(values: Iterable[float]) -> float:
    data = list(values)
    if not data:
        return 0.0
    return float(np.mean(data))


def variance(values: Iterable[float]) -> float:
    data = list(values)
    if not data:
        return 0.0
    return float(np.var(data))


def torso_lean_angle(shoulder: Sequence[float], hip: Sequence[float]) -> float:
    """Angle of the hip->shoulder segment from vertical; 0 is upright."""
    vec = _xy(shoulder) - _xy(hip)
    if np.linalg.norm(vec) < _EPS:
        return 0.0
    vertical = np.array([0.0, -1.0])
    cosine = np.dot(vec, vertical) / np.linalg.norm(vec)
    cosine = np.clip(cosine, -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine)))


def is_valid_angle(value: float) -> bool:
    return value is not None and math.isfinite(value)
