"""Playback position reconciliation.

Position reports arrive on a different cadence than widget refreshes, so a
late sample can land after a newer one. A sample further back than the
tolerance window is taken as out-of-order and ignored; small backward steps
are accepted. Only a session change (trackId or epoch) resets the tracker so
that any value is accepted again.
"""

import math

from bridge.logging import get_logger

logger = get_logger(__name__)

SEEK_BACKWARD_TOLERANCE = 0.75
UNSET = -1.0


def sanitize_position(value: float) -> float:
    """NaN and infinities become 0.0; negatives clamp to 0.0."""
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return max(0.0, value)


class PositionTracker:
    """Last published position for one (trackId, epoch) session."""

    def __init__(self, backward_tolerance: float = SEEK_BACKWARD_TOLERANCE):
        self.backward_tolerance = backward_tolerance
        self.last_reported_position = UNSET

    @property
    def is_set(self) -> bool:
        return self.last_reported_position >= 0

    @property
    def published_position(self) -> float:
        """Elapsed time to show: the last accepted value, or 0 when unset."""
        return self.last_reported_position if self.is_set else 0.0

    def reset(self) -> None:
        self.last_reported_position = UNSET

    def apply_position(self, incoming: float) -> float:
        """Reconcile ``incoming`` and return the position to publish."""
        clamped = sanitize_position(incoming)
        if not self.is_set:
            self.last_reported_position = clamped
            return clamped
        # Inclusive at the boundary: exactly `tolerance` back is accepted
        if clamped + self.backward_tolerance < self.last_reported_position:
            logger.debug("Ignoring stale position %.3f (last %.3f)",
                         clamped, self.last_reported_position)
            return self.last_reported_position
        self.last_reported_position = clamped
        return clamped
