"""Exceptions raised by the drill scheduling engine."""


class DrillError(Exception):
    """Base class for scheduling contract violations."""


class InvalidQuality(DrillError, ValueError):
    """Raised when a quality rating falls outside 0-5."""


class InvalidState(DrillError, ValueError):
    """Raised when an item's stored scheduling state is malformed."""


class UnknownAlgorithm(DrillError, ValueError):
    """Raised when an algorithm id does not name SM2, SM5 or Simple8."""
