"""
Base Output Formatter
"""

from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any, Dict, List

from ..autofix import FixResult
from ..main import Task
from ..verification.records import Recommendation, VerificationOutcome


class OutputLevel(IntEnum):
    """Output verbosity levels"""
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    DEBUG = 3


class BaseFormatter(ABC):
    """Base class for output formatters"""

    def __init__(self, level: OutputLevel = OutputLevel.NORMAL):
        self.level = level

    @abstractmethod
    def verification_started(self, task: Task, attempt: int) -> None:
        """Format verification attempt started"""
        pass

    @abstractmethod
    def verification_result(self, task: Task, outcome: VerificationOutcome) -> None:
        """Format the final outcome of a task's verification"""
        pass

    @abstractmethod
    def task_blocked(self, task: Task, reason: str, recommendations: List[Recommendation]) -> None:
        pass

    @abstractmethod
    def autofix(self, task: Task, fix: FixResult) -> None:
        pass

    @abstractmethod
    def report(self, report: Dict[str, Any]) -> None:
        """Format a stored verification report"""
        pass

    @abstractmethod
    def summary(self, stats: Dict[str, Any]) -> None:
        """Format summary statistics"""
        pass
