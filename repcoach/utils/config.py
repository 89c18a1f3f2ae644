from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from repcoach.models.schemas import ExerciseConfig
from repcoach.utils.structures import ExerciseKind

DEFAULT_LEVELS_CONFIG = Path("configs/exercise_levels.yaml")
LEVELS = {"beginner", "intermediate", "advanced"}


def load_thresholds(path: Path | str = DEFAULT_LEVELS_CONFIG) -> Dict[str, Dict[str, Dict[str, Any]]]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def load_exercise_config(
    path: Path | str,
    kind: str,
    level: str = "beginner",
    **overrides: Any,
) -> ExerciseConfig:
    if level not in LEVELS:
        raise ValueError(f"Unsupported level: {level}")
    kind_key = ExerciseKind(kind).value
    thresholds = load_thresholds(path)
    values: Dict[str, Any] = dict(thresholds.get(kind_key, {}).get(level, {}) or {})
    values.update(overrides)
    return ExerciseConfig(kind=kind_key, **values)
