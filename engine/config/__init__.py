"""
Config Module

Environment and YAML configuration loading and validation.
"""

from .loader import InstrumentConfig, Settings, TimeframeConfig, load_instrument_metadata

__all__ = [
    "InstrumentConfig",
    "Settings",
    "TimeframeConfig",
    "load_instrument_metadata",
]
