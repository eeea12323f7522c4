"""
Output Formatting

Human-readable console output for verification events and reports.
"""

from .base import BaseFormatter, OutputLevel
from .console import ConsoleFormatter

__all__ = [
    "BaseFormatter",
    "OutputLevel",
    "ConsoleFormatter",
]
