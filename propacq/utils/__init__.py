"""
Utility modules for propacq
"""

from .logger import setup_logger, get_logger, log_async_performance
from .limiter import ConcurrencyLimiter, LimiterStats, CallTimeout

__all__ = [
    "setup_logger",
    "get_logger",
    "log_async_performance",
    "ConcurrencyLimiter",
    "LimiterStats",
    "CallTimeout"
]
