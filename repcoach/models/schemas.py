from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from repcoach.utils.structures import ExerciseKind, ScoreRecord, SessionSummary

KIND_DEFAULTS: Dict[ExerciseKind, Dict[str, float]] = {
    ExerciseKind.SQUAT: {"depth_threshold": 0.05, "angle_threshold": 140.0},
    ExerciseKind.PUSHUP: {"depth_threshold": 0.04, "angle_threshold": 100.0},
    ExerciseKind.LUNGE: {"depth_threshold": 0.08, "angle_threshold": 120.0},
}

# Degrees above the engage angle a joint must open to before a rep is released.
RELEASE_ANGLE_MARGIN: Dict[ExerciseKind, float] = {
    ExerciseKind.SQUAT: 15.0,
    ExerciseKind.PUSHUP: 30.0,
    ExerciseKind.LUNGE: 20.0,
}

# Cap for default release angles; measured angles never exceed 180.
MAX_RELEASE_ANGLE = 175.0


class ExerciseConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ExerciseKind
    depth_threshold: float = Field(gt=0)
    angle_threshold: float = Field(gt=0, le=180)
    release_angle_threshold: float = Field(gt=0, le=180)
    release_depth_ratio: float = Field(default=0.5, gt=0, lt=1)
    smoothing_window: int = Field(default=5, ge=3)
    confidence_gate: float = Field(default=0.3, ge=0, le=1)
    stability_epsilon: float = Field(default=0.03, gt=0)
    baseline_adapt_rate: float = Field(default=0.05, gt=0, lt=1)
    baseline_stable_frames: int = Field(default=10, ge=1)
    min_rep_interval: float = Field(default=0.5, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _fill_kind_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            kind = ExerciseKind(data.get("kind"))
        except ValueError:
            # Let field validation report the unknown kind.
            return data
        filled = dict(KIND_DEFAULTS[kind])
        filled.update(data)
        if "release_angle_threshold" not in filled:
            angle = filled["angle_threshold"]
            if isinstance(angle, (int, float)):
                angle = float(angle)
                release = min(MAX_RELEASE_ANGLE, angle + RELEASE_ANGLE_MARGIN[kind])
                filled["release_angle_threshold"] = max(angle, release)
        return filled

    @model_validator(mode="after")
    def _check_hysteresis(self) -> "ExerciseConfig":
        if self.release_angle_threshold >= 180.0:
            raise ValueError("release_angle_threshold must be below 180")
        if self.release_angle_threshold < self.angle_threshold:
            raise ValueError("release_angle_threshold must not be below angle_threshold")
        return self

    @property
    def release_depth(self) -> float:
        return self.depth_threshold * self.release_depth_ratio

    @classmethod
    def for_kind(cls, kind: str, **overrides: Any) -> "ExerciseConfig":
        return cls(kind=kind, **overrides)


class ScoreRecordPayload(BaseModel):
    score: int
    alignment: float
    range: float
    stability: float
    feedback: List[str]
    frame_ref: Optional[str] = None

    @classmethod
    def from_record(cls, record: ScoreRecord) -> "ScoreRecordPayload":
        sample = record.sample
        return cls(
            score=sample.overall,
            alignment=sample.alignment,
            range=sample.range,
            stability=sample.stability,
            feedback=list(sample.feedback),
            frame_ref=None if record.frame_ref is None else str(record.frame_ref),
        )


class SessionSummaryPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_count: int = Field(ge=0)
    average_score: float = Field(ge=0, le=100)
    best: Optional[ScoreRecordPayload] = None
    worst: Optional[ScoreRecordPayload] = None
    per_set_counts: Dict[int, int]

    @classmethod
    def from_summary(cls, summary: SessionSummary) -> "SessionSummaryPayload":
        return cls(
            total_count=summary.total_count,
            average_score=summary.average_score,
            best=ScoreRecordPayload.from_record(summary.best) if summary.best else None,
            worst=ScoreRecordPayload.from_record(summary.worst) if summary.worst else None,
            per_set_counts=summary.per_set_counts,
        )
