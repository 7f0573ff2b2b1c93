# Domain Stats Package
from .models import DailyActivity, StatsRange, StatsSummary

__all__ = ["DailyActivity", "StatsRange", "StatsSummary"]
