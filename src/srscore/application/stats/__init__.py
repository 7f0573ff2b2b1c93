# Application Stats Package
from .metrics_calculator import MetricsCalculator, compute_streak, format_duration
from .service import StatsService

__all__ = ["MetricsCalculator", "StatsService", "compute_streak", "format_duration"]
