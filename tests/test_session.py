import numpy as np
import pytest

from repcoach.logic.aggregator import SessionAggregator
from repcoach.models.schemas import SessionSummaryPayload
from repcoach.session import STALE_FRAME, ExerciseSession
from repcoach.utils.structures import POSE_LANDMARKS, Phase, ScoreSample

from conftest import build_frames, cycles, empty_frame, pushup_frame, squat_frame


def sample(score: int) -> ScoreSample:
    return ScoreSample(overall=score, alignment=score, range=score, stability=100.0, feedback=("x",))


class TestAggregator:
    def test_empty_summary(self):
        summary = SessionAggregator().finalize()
        assert summary.total_count == 0
        assert summary.average_score == 0
        assert summary.best is None and summary.worst is None
        assert summary.per_set_counts == {1: 0}

    def test_running_mean_and_extremes(self):
        agg = SessionAggregator()
        for i, score in enumerate([70, 90, 50, 80]):
            agg.record(sample(score), frame_ref=i, set_number=1)
        summary = agg.finalize()
        assert summary.total_count == 4
        assert agg.running_mean == pytest.approx(72.5)
        assert summary.average_score == pytest.approx(72.5)
        assert summary.best_score == 90 and summary.best.frame_ref == 1
        assert summary.worst_score == 50 and summary.worst.frame_ref == 2

    def test_ties_keep_earlier_sample(self):
        agg = SessionAggregator()
        agg.record(sample(80), frame_ref="first")
        agg.record(sample(80), frame_ref="second")
        summary = agg.finalize()
        assert summary.best.frame_ref == "first"
        assert summary.worst.frame_ref == "first"

    def test_sets_keep_global_extremes(self):
        agg = SessionAggregator()
        agg.record(sample(95), frame_ref="a", set_number=1)
        agg.record(sample(40), frame_ref="b", set_number=1)
        assert agg.start_new_set() == 2
        agg.record(sample(60), frame_ref="c", set_number=2)
        summary = agg.finalize()
        assert summary.per_set_counts == {1: 2, 2: 1}
        assert summary.best.frame_ref == "a"
        assert summary.worst.frame_ref == "b"
        assert summary.sets[0].average_score == pytest.approx(67.5)
        assert summary.sets[1].average_score == pytest.approx(60.0)

    def test_bounds_hold_against_every_sample(self):
        agg = SessionAggregator()
        scores = [55, 12, 99, 12, 99, 73, 0, 100, 64]
        for i, score in enumerate(scores):
            agg.record(sample(score), frame_ref=i)
        summary = agg.finalize()
        assert all(summary.best_score >= s for s in scores)
        assert all(summary.worst_score <= s for s in scores)

    def test_reset(self):
        agg = SessionAggregator()
        agg.record(sample(50))
        agg.start_new_set()
        agg.reset()
        summary = agg.finalize()
        assert summary.total_count == 0
        assert agg.current_set == 1


class TestExerciseSession:
    def test_ten_squats_summary(self, squat_config):
        session = ExerciseSession(squat_config)
        for frame in build_frames(cycles(10, 0.08, 110.0), squat_frame):
            result = session.submit_frame(frame)
            if result.repetition_event is not None:
                assert result.score is not None
                assert 0 <= result.score.overall <= 100
        summary = session.finalize_session()
        assert summary.total_count == 10
        assert summary.per_set_counts == {1: 10}
        assert 0 < summary.average_score <= 100
        assert summary.best_score >= summary.worst_score

    def test_empty_session(self, squat_config):
        summary = ExerciseSession(squat_config).finalize_session()
        assert summary.total_count == 0
        assert summary.average_score == 0

    def test_sets(self, pushup_config):
        session = ExerciseSession(pushup_config)
        for frame in build_frames(cycles(2, 0.10, 80.0, rest_angle=170.0), pushup_frame):
            session.submit_frame(frame)
        assert session.start_new_set() == 2
        last = None
        for frame in build_frames(cycles(1, 0.10, 80.0, rest_angle=170.0), pushup_frame, t0=100.0):
            last = session.submit_frame(frame)
        assert last.set_number == 2
        assert last.count == 3
        assert session.finalize_session().per_set_counts == {1: 2, 2: 1}

    def test_stale_frames_are_ignored(self, squat_config):
        session = ExerciseSession(squat_config)
        for frame in build_frames([(0.0, 175.0)] * 5, squat_frame):
            session.submit_frame(frame)
        before = len(session.state.tracker.buffer)
        result = session.submit_frame(squat_frame(0.2))
        assert result.feedback == STALE_FRAME
        assert len(session.state.tracker.buffer) == before

    def test_missing_frames_in_session(self, squat_config):
        session = ExerciseSession(squat_config)
        frames = build_frames(cycles(2, 0.08, 110.0), squat_frame)
        for i, frame in enumerate(frames):
            if i % 7 == 3:
                session.submit_frame(empty_frame(frame.timestamp - 0.05))
            session.submit_frame(frame)
        assert session.finalize_session().total_count == 2

    def test_live_frame_score(self, squat_config):
        session = ExerciseSession(squat_config)
        frame = squat_frame(0.0)
        session.submit_frame(frame)
        score = session.score_frame(frame)
        assert 0 <= score.overall <= 100

    def test_reset(self, squat_config):
        session = ExerciseSession(squat_config)
        for frame in build_frames(cycles(1, 0.08, 110.0), squat_frame):
            session.submit_frame(frame)
        session.reset()
        assert session.count == 0
        assert session.state.phase is Phase.STANDING
        assert session.finalize_session().total_count == 0
        # Timestamps may restart after a reset.
        assert session.submit_frame(squat_frame(0.0)).feedback != STALE_FRAME

    def test_summary_payload(self, squat_config):
        session = ExerciseSession(squat_config)
        for frame in build_frames(cycles(2, 0.08, 110.0), squat_frame):
            session.submit_frame(frame)
        payload = SessionSummaryPayload.from_summary(session.finalize_session())
        data = payload.model_dump()
        assert data["total_count"] == 2
        assert data["per_set_counts"] == {1: 2}
        assert data["best"]["score"] >= data["worst"]["score"]

    def test_landmark_arrays(self, squat_config):
        session = ExerciseSession(squat_config)
        for frame in build_frames(cycles(2, 0.08, 110.0), squat_frame):
            landmarks = np.zeros((33, 4))
            for kp in frame.keypoints:
                landmarks[POSE_LANDMARKS[kp.name]] = [kp.x, kp.y, 0.0, kp.score]
            session.submit_landmarks(landmarks, frame.timestamp)
        assert session.count == 2
