# Domain Package
from .errors import (
    ClockRegression,
    InvalidRating,
    InvalidTimeSpent,
    NotFound,
    SchedulingError,
    StaleCardState,
)
from .models import Card, CardState, Deck, Rating, ReviewEvent, Scope

__all__ = [
    "Card",
    "CardState",
    "Deck",
    "Rating",
    "ReviewEvent",
    "Scope",
    "SchedulingError",
    "InvalidRating",
    "InvalidTimeSpent",
    "ClockRegression",
    "NotFound",
    "StaleCardState",
]
