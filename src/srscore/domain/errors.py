"""
Error taxonomy for the scheduling core.

Every error is raised before any state is written, so a caller that catches
one can retry with corrected input against an unchanged card.
"""


class SchedulingError(Exception):
    """Base class for all errors raised by srscore."""


class InvalidRating(SchedulingError, ValueError):
    """Rating outside {1=Again, 2=Hard, 3=Good, 4=Easy}."""

    def __init__(self, rating: object):
        self.rating = rating
        super().__init__(f"invalid rating {rating!r}: must be between 1 and 4")


class InvalidTimeSpent(SchedulingError, ValueError):
    """Negative or non-integer time spent on a review."""

    def __init__(self, time_spent_ms: object):
        self.time_spent_ms = time_spent_ms
        super().__init__(f"invalid time spent {time_spent_ms!r}: must be >= 0 ms")


class ClockRegression(SchedulingError):
    """The rating timestamp precedes the card's last review."""

    def __init__(self, card_id: str, now, last_reviewed_at):
        self.card_id = card_id
        self.now = now
        self.last_reviewed_at = last_reviewed_at
        super().__init__(
            f"card {card_id}: review time {now.isoformat()} precedes "
            f"last review {last_reviewed_at.isoformat()}"
        )


class NotFound(SchedulingError, LookupError):
    """A referenced card, deck or scope does not exist (or was deleted)."""

    def __init__(self, kind: str, ident: str):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} not found: {ident}")


class StaleCardState(SchedulingError):
    """The stored card changed between load and save (lost compare-and-swap)."""

    def __init__(self, card_id: str, expected_review_count: int):
        self.card_id = card_id
        self.expected_review_count = expected_review_count
        super().__init__(
            f"card {card_id} was modified concurrently "
            f"(expected review_count={expected_review_count})"
        )
