# Application Package
from .queue_builder import QueueService, build_due_queue, count_due, select_due
from .review_service import ReviewService
from .scheduler import RatingProcessor, apply_rating

__all__ = [
    "QueueService",
    "RatingProcessor",
    "ReviewService",
    "apply_rating",
    "build_due_queue",
    "count_due",
    "select_due",
]
