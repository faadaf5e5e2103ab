"""
Scheduler Module

Periodic flush of in-memory market and candlestick state.
"""

from .flush import FlushScheduler

__all__ = [
    "FlushScheduler",
]
