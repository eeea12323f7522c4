"""
Task Verification

Decides whether a task claimed as done is actually done. The verification
agent scores a task across six checks and produces a sealed record with
recommendations; the verification manager queues tasks, retries failed
verifications with automatic remediation and blocks tasks that never pass.
"""

__version__ = "1.0.0"

# Verification engine
from .verification import (
    VerificationAgent,
    VerificationOutcome,
    VerificationRecord,
    CheckResult,
    Recommendation,
    Check,
    get_default_checks,
)

# Orchestration
from .manager import (
    Events,
    TaskVerificationManager,
    VerificationStatusView,
    BlockedTask,
)
from .lifecycle import TaskLifecycle, TaskBoard, BoardStatus, CompletionResult
from .autofix import AutoFixer, FixResult, RemediationKind

# Supporting types
from .main import (
    AgentConfig,
    ManagerConfig,
    Task,
    Endpoint,
    Behavior,
    PerformanceRequirement,
    Claim,
    CheckType,
    Severity,
    VerificationStatus,
    RecommendationAction,
)
from .reports import ReportStore
from .runner import CommandRunner, CommandResult, EndpointProber
from .errors import (
    VerificationError,
    CommandError,
    CommandTimeoutError,
    ReportError,
    RecordSealedError,
    AutoFixError,
    TaskNotFoundError,
    TaskBlockedError,
    VerificationFailedError,
)

__all__ = [
    # Engine
    "VerificationAgent",
    "VerificationOutcome",
    "VerificationRecord",
    "CheckResult",
    "Recommendation",
    "Check",
    "get_default_checks",
    # Orchestration
    "Events",
    "TaskVerificationManager",
    "VerificationStatusView",
    "BlockedTask",
    "TaskLifecycle",
    "TaskBoard",
    "BoardStatus",
    "CompletionResult",
    "AutoFixer",
    "FixResult",
    "RemediationKind",
    # Types
    "AgentConfig",
    "ManagerConfig",
    "Task",
    "Endpoint",
    "Behavior",
    "PerformanceRequirement",
    "Claim",
    "CheckType",
    "Severity",
    "VerificationStatus",
    "RecommendationAction",
    # Infrastructure
    "ReportStore",
    "CommandRunner",
    "CommandResult",
    "EndpointProber",
    # Errors
    "VerificationError",
    "CommandError",
    "CommandTimeoutError",
    "ReportError",
    "RecordSealedError",
    "AutoFixError",
    "TaskNotFoundError",
    "TaskBlockedError",
    "VerificationFailedError",
    # Meta
    "__version__",
]
