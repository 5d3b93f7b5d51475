"""Tests for position reconciliation."""

import math

import pytest

from bridge.position import PositionTracker, UNSET, sanitize_position


class TestSanitize:
    @pytest.mark.parametrize('value', [math.nan, math.inf, -math.inf, -5.0, 0.0])
    def test_invalid_values_become_zero(self, value):
        assert sanitize_position(value) == 0.0

    def test_valid_value_kept(self):
        assert sanitize_position(12.5) == 12.5


class TestPositionTracker:
    """Test PositionTracker."""

    def test_starts_unset(self):
        tracker = PositionTracker()
        assert tracker.last_reported_position == UNSET
        assert not tracker.is_set
        assert tracker.published_position == 0.0

    def test_first_value_accepted(self):
        tracker = PositionTracker()
        assert tracker.apply_position(42.0) == 42.0
        assert tracker.is_set

    def test_forward_moves_accepted(self):
        tracker = PositionTracker()
        for value in (1.0, 2.0, 2.5, 30.0):
            assert tracker.apply_position(value) == value

    def test_backward_step_within_tolerance_accepted(self):
        tracker = PositionTracker()
        tracker.apply_position(10.0)
        assert tracker.apply_position(9.5) == 9.5

    def test_boundary_is_inclusive(self):
        tracker = PositionTracker()
        tracker.apply_position(10.0)
        assert tracker.apply_position(9.25) == 9.25

    def test_backward_jump_beyond_tolerance_rejected(self):
        tracker = PositionTracker()
        tracker.apply_position(10.0)
        assert tracker.apply_position(9.0) == 10.0
        assert tracker.last_reported_position == 10.0

    def test_rejected_sample_leaves_state_unchanged(self):
        tracker = PositionTracker()
        tracker.apply_position(50.0)
        assert tracker.apply_position(5.0) == 50.0
        assert tracker.apply_position(50.5) == 50.5

    def test_nan_and_negative_behave_like_zero(self):
        for bad in (math.nan, -5.0):
            tracker = PositionTracker()
            tracker.apply_position(0.5)
            reference = PositionTracker()
            reference.apply_position(0.5)
            assert tracker.apply_position(bad) == reference.apply_position(0.0)

        fresh = PositionTracker()
        assert fresh.apply_position(math.nan) == 0.0
        assert fresh.is_set

    def test_reset_accepts_anything(self):
        tracker = PositionTracker()
        tracker.apply_position(50.0)
        tracker.reset()
        assert not tracker.is_set
        assert tracker.apply_position(5.0) == 5.0

    def test_published_sequence_never_drops_beyond_tolerance(self):
        tracker = PositionTracker()
        samples = [0.0, 1.0, 0.9, 2.0, 1.5, 0.2, 3.0, 0.5, 2.6, -3.0, math.inf, 4.0]
        published = [tracker.apply_position(s) for s in samples]
        for before, after in zip(published, published[1:]):
            assert before - after <= 0.75
        assert all(p >= 0.0 and math.isfinite(p) for p in published)

    def test_custom_tolerance(self):
        tracker = PositionTracker(backward_tolerance=2.0)
        tracker.apply_position(10.0)
        assert tracker.apply_position(7.0) == 10.0
        assert tracker.apply_position(8.0) == 8.0
