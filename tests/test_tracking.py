"""
Unit tests for tracking module.
"""

import numpy as np
import pytest

from gaze_tracker.tracking import (
    RingBuffer,
    axis_median,
    scalar_median,
    compute_distance,
    compute_distance_batch,
    greedy_assignment,
    linear_assignment,
    associate_detections_to_tracks,
    FrameResult,
    Track,
    TrackRegistry,
)
from gaze_tracker.config import TrackerConfig


BOX = np.array([270.0, 65.0, 370.0, 490.0])


class TestRingBuffer:
    """Tests for the bounded history buffer."""

    def test_most_recent_first(self):
        history = RingBuffer(3)
        for value in (1, 2, 3, 4):
            history.push(value)

        assert list(history) == [4, 3, 2]
        assert history.latest() == 4
        assert history.is_full

    def test_initial_samples(self):
        history = RingBuffer(3, [9, 8])
        assert list(history) == [9, 8]
        assert not history.is_full

    def test_fill(self):
        history = RingBuffer(5)
        history.push(1.0)
        history.fill(0.95)
        assert list(history) == [0.95] * 5

    def test_latest_on_empty(self):
        with pytest.raises(IndexError):
            RingBuffer(2).latest()

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            RingBuffer(0)


class TestMedian:
    """Tests for median smoothing."""

    def test_outlier_rejected(self):
        assert scalar_median([1, 2, 3, 4, 1000]) == 3

    def test_even_count_takes_lower(self):
        assert scalar_median([4, 1, 3, 2]) == 2

    def test_partial_history(self):
        assert scalar_median([5.0]) == 5.0

    def test_axes_sorted_independently(self):
        samples = [[0.0, 5.0], [1.0, 4.0], [2.0, 3.0]]
        np.testing.assert_array_equal(axis_median(samples), [1.0, 4.0])

    def test_empty(self):
        with pytest.raises(ValueError):
            axis_median([])


class TestDistance:
    """Tests for ground distance computation."""

    def test_ignores_height(self):
        assert compute_distance([0, 0, 5], [3, 4, 0]) == pytest.approx(5.0)

    def test_batch_shape(self):
        a = np.array([[0.0, 0.0], [1.0, 1.0]])
        b = np.array([[0.0, 0.0, 0.0], [3.0, 4.0, 0.0], [1.0, 1.0, 0.0]])

        distances = compute_distance_batch(a, b)

        assert distances.shape == (2, 3)
        assert distances[0, 1] == pytest.approx(5.0)
        assert distances[1, 2] == pytest.approx(0.0)

    def test_batch_empty(self):
        distances = compute_distance_batch(np.empty((0, 2)), np.ones((2, 2)))
        assert distances.shape == (0, 2)


class TestAssignment:
    """Tests for greedy and optimal matching."""

    def test_greedy_follows_row_order(self):
        cost = np.array([[0.1, 0.2], [0.05, 0.3]])

        matches, unmatched_tracks, unmatched_dets = greedy_assignment(cost, 0.5)

        assert matches == [(0, 0), (1, 1)]
        assert unmatched_tracks == []
        assert unmatched_dets == []

    def test_optimal_minimizes_total(self):
        cost = np.array([[0.1, 0.2], [0.05, 0.3]])

        matches, _, _ = linear_assignment(cost, 0.5)

        assert sorted(matches) == [(0, 1), (1, 0)]

    def test_greedy_tie_takes_lowest_index(self):
        matches, _, unmatched_dets = greedy_assignment(np.array([[0.2, 0.2]]), 0.5)

        assert matches == [(0, 0)]
        assert unmatched_dets == [1]

    def test_greedy_gate(self):
        matches, unmatched_tracks, unmatched_dets = greedy_assignment(
            np.array([[0.6]]), 0.5)

        assert matches == []
        assert unmatched_tracks == [0]
        assert unmatched_dets == [0]

    def test_greedy_gate_is_inclusive(self):
        matches, _, _ = greedy_assignment(np.array([[0.5]]), 0.5)
        assert matches == [(0, 0)]

    def test_greedy_second_track_loses_claimed_detection(self):
        # Both tracks want detection 0; track 1 falls back to a far detection
        cost = np.array([[0.1, 0.9], [0.2, 0.8]])

        matches, unmatched_tracks, unmatched_dets = greedy_assignment(cost, 0.5)

        assert matches == [(0, 0)]
        assert unmatched_tracks == [1]
        assert unmatched_dets == [1]


class TestAssociation:
    """Tests for detection-to-track association."""

    def test_perfect_match(self):
        detections = np.array([[0.0, 0.0, 0.0], [3.0, 3.0, 0.0]])
        tracks = np.array([[0.1, 0.0], [3.0, 2.9]])

        matches, unmatched_tracks, unmatched_dets = associate_detections_to_tracks(
            detections, tracks, max_distance=0.5
        )

        assert matches == [(0, 0), (1, 1)]
        assert len(unmatched_tracks) == 0
        assert len(unmatched_dets) == 0

    def test_no_tracks(self):
        detections = np.array([[0.0, 0.0], [1.0, 1.0]])

        matches, unmatched_tracks, unmatched_dets = associate_detections_to_tracks(
            detections, np.empty((0, 2))
        )

        assert matches == []
        assert unmatched_dets == [0, 1]

    def test_no_detections(self):
        matches, unmatched_tracks, unmatched_dets = associate_detections_to_tracks(
            np.empty((0, 2)), np.array([[0.0, 0.0]])
        )

        assert matches == []
        assert unmatched_tracks == [0]
        assert unmatched_dets == []

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            associate_detections_to_tracks(
                np.zeros((1, 2)), np.zeros((1, 2)), method="iou")


class TestTrack:
    """Tests for a single track."""

    def test_create(self):
        track = Track.create(1, np.array([2.0, 0.0, 0.0]), BOX, window=5)

        np.testing.assert_array_equal(track.position, [2.0, 0.0])
        assert track.miss_count == 0
        assert not track.locked
        assert len(track.position_history) == 1

    def test_smoothing_rejects_outlier(self):
        track = Track.create(1, [1.0, 0.0], BOX, window=5)
        for x in (2.0, 3.0, 4.0, 1000.0):
            track.update([x, 0.0], BOX)

        np.testing.assert_array_equal(track.smoothed_position(), [3.0, 0.0])
        # Raw position is not smoothed
        np.testing.assert_array_equal(track.position, [1000.0, 0.0])

    def test_update_resets_misses(self):
        track = Track.create(1, [1.0, 0.0], BOX, window=5)
        track.mark_missed()
        track.mark_missed()

        track.update([1.1, 0.0], BOX + 1)

        assert track.miss_count == 0
        np.testing.assert_array_equal(track.rect, BOX + 1)

    def test_expiry_is_strict(self):
        track = Track.create(1, [1.0, 0.0], BOX, window=5)
        for _ in range(3):
            track.mark_missed()

        assert not track.check_expired(3)
        track.mark_missed()
        assert track.check_expired(3)
        assert track.pending_deletion

    def test_snapshot(self):
        track = Track.create(7, [1.0, 2.0], BOX, window=5)
        track.lock()

        snapshot = track.snapshot()

        assert snapshot.track_id == 7
        assert snapshot.position == (1.0, 2.0)
        assert snapshot.locked
        np.testing.assert_array_equal(snapshot.center, [320.0, 277.5])


class TestTrackRegistry:
    """Tests for the track registry."""

    @pytest.fixture
    def registry(self):
        return TrackRegistry(TrackerConfig())

    def test_creates_tracks(self, registry):
        result = registry.associate(np.array([[2.0, 0.0], [4.0, 1.0]]), [BOX, BOX])

        assert result.created == [1, 2]
        assert registry.track_count() == 2

    def test_keeps_identity(self, registry):
        registry.associate(np.array([[2.0, 0.0]]), [BOX])
        for step in range(1, 6):
            result = registry.associate(np.array([[2.0 + 0.1 * step, 0.0]]), [BOX])
            assert result.matched == [1]

        assert [s.track_id for s in registry.smoothed_tracks()] == [1]

    def test_far_detection_spawns_new_track(self, registry):
        registry.associate(np.array([[2.0, 0.0]]), [BOX])

        result = registry.associate(np.array([[2.6, 0.0]]), [BOX])

        assert result.created == [2]
        assert result.missed == [1]

    def test_unlocked_track_lifecycle(self, registry):
        registry.associate(np.array([[2.0, 0.0]]), [BOX])

        for _ in range(25):
            registry.associate(np.empty((0, 2)), [])
            assert registry.prune() == []

        assert registry.get(1).miss_count == 25

        result = registry.associate(np.empty((0, 2)), [])
        assert result.expired == [1]
        removed = registry.prune()

        assert [t.track_id for t in removed] == [1]
        assert 1 not in registry

    def test_locked_track_lifecycle(self, registry):
        registry.associate(np.array([[2.0, 0.0]]), [BOX])
        assert registry.lock(1)

        for _ in range(35):
            registry.associate(np.empty((0, 2)), [])
            assert registry.prune() == []

        registry.associate(np.empty((0, 2)), [])
        assert [t.track_id for t in registry.prune()] == [1]

    def test_pending_track_hidden_before_prune(self, registry):
        registry.associate(np.array([[2.0, 0.0]]), [BOX])
        for _ in range(26):
            registry.associate(np.empty((0, 2)), [])

        assert registry.smoothed_tracks() == []
        assert registry.track_count() == 0
        assert len(registry) == 1

    def test_ids_never_reused(self, registry):
        registry.associate(np.array([[2.0, 0.0]]), [BOX])
        for _ in range(26):
            registry.associate(np.empty((0, 2)), [])
        registry.prune()

        result = registry.associate(np.array([[2.0, 0.0]]), [BOX])

        assert result.created == [2]

    def test_reset_restarts_ids(self, registry):
        registry.associate(np.array([[2.0, 0.0]]), [BOX])
        registry.reset()

        result = registry.associate(np.array([[2.0, 0.0]]), [BOX])

        assert result.created == [1]

    def test_lock_unknown_track(self, registry):
        assert not registry.lock(42)

    def test_mismatched_inputs(self, registry):
        with pytest.raises(ValueError):
            registry.associate(np.array([[2.0, 0.0]]), [BOX, BOX])

    def test_optimal_method(self):
        registry = TrackRegistry(TrackerConfig(association_method="optimal"))
        registry.associate(np.array([[0.0, 0.0], [0.3, 0.0]]), [BOX, BOX])

        # Greedy would give track 1 the detection at 0.2 and leave track 2
        # with no detection inside the gate
        result = registry.associate(np.array([[0.2, 0.0], [-0.25, 0.0]]), [BOX, BOX])

        assert sorted(result.matched) == [1, 2]
        assert result.created == []

    def test_frame_result_export(self, registry):
        registry.associate(np.array([[2.0, 0.0], [3.0, 1.0]]), [BOX, BOX])
        registry.lock(2)

        result = FrameResult(timestamp=0.5, tracks=registry.smoothed_tracks(),
                             frame_idx=4, target_id=2)
        data = result.to_dict()

        assert result.track_ids == [1, 2]
        assert data["frame_idx"] == 4
        assert data["target_id"] == 2
        assert not data["skipped"]
        assert data["tracks"][1] == {
            "track_id": 2,
            "position": [3.0, 1.0],
            "bbox": list(BOX),
            "locked": True,
            "miss_count": 0,
        }
