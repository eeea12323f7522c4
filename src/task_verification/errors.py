"""
Exceptions for the task verification package.
"""

from typing import List, Optional


class VerificationError(Exception):
    """Base exception for verification errors"""
    pass


class CommandError(VerificationError):
    """An external command could not be started"""

    def __init__(self, command: str, message: str):
        super().__init__(f"{command}: {message}")
        self.command = command


class CommandTimeoutError(CommandError):
    """An external command exceeded its timeout"""

    def __init__(self, command: str, timeout_ms: int):
        super().__init__(command, f"timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class ReportError(VerificationError):
    """A verification report could not be written or read"""
    pass


class RecordSealedError(VerificationError):
    """A sealed verification record was modified"""
    pass


class AutoFixError(VerificationError):
    """An automatic remediation could not be applied"""
    pass


class TaskNotFoundError(VerificationError):
    """Task id is unknown to the task board"""
    pass


class TaskBlockedError(VerificationError):
    """Task is blocked by a failed verification"""
    pass


class VerificationFailedError(VerificationError):
    """Task completion was refused because verification failed"""

    def __init__(
        self,
        task_id: str,
        confidence: float,
        issues: Optional[List[str]] = None,
    ):
        self.task_id = task_id
        self.confidence = confidence
        self.issues = issues or []
        super().__init__(
            f"Task {task_id} failed verification. "
            f"Confidence: {confidence}%. "
            f"Issues: {', '.join(self.issues)}"
        )
