"""
Runtime Module

Service coordinator and process entry point.
"""

from .coordinator import IngestionCoordinator

__all__ = [
    "IngestionCoordinator",
]
