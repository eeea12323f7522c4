"""
Task Lifecycle

The manager reports verification outcomes back to whatever owns task
status through the TaskLifecycle interface. TaskBoard is an in-memory
owner that also refuses to start blocked tasks and verifies tasks when
they are completed.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import TaskBlockedError, TaskNotFoundError, VerificationFailedError
from .main import ManagerConfig, Task
from .manager import BlockedTask, Events, TaskVerificationManager, generate_task_id
from .verification.records import VerificationOutcome

logger = logging.getLogger(__name__)


class TaskLifecycle(ABC):
    """Receives verification outcomes for tasks it owns"""

    @abstractmethod
    def mark_complete(self, task_id: str, verification_data: Dict[str, Any]) -> None:
        """Called after a task passed verification"""
        pass

    @abstractmethod
    def mark_pending(self, task_id: str, issue_data: Dict[str, Any]) -> None:
        """Called after a task exhausted its verification attempts"""
        pass


class BoardStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    VERIFICATION_FAILED = "verification_failed"


@dataclass
class BoardEntry:
    """A task as tracked by the board"""
    task: Task
    status: BoardStatus = BoardStatus.PENDING
    verification_required: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    verification: Optional[VerificationOutcome] = None
    verification_data: Dict[str, Any] = field(default_factory=dict)
    verification_issues: Dict[str, Any] = field(default_factory=dict)

    @property
    def task_id(self) -> str:
        return self.task.id


@dataclass
class CompletionResult:
    """Result of completing a task on the board"""
    success: bool
    entry: BoardEntry
    verification: Optional[VerificationOutcome] = None
    message: str = ""


class TaskBoard(TaskLifecycle):
    """
    In-memory task board with verification on completion.

    Usage:
        board = TaskBoard(config)
        entry = board.create_task(Task(description="Add src/foo.js", files=["src/foo.js"]))
        board.start_task(entry.task_id)
        result = await board.complete_task(entry.task_id)
    """

    def __init__(
        self,
        config: Optional[ManagerConfig] = None,
        manager: Optional[TaskVerificationManager] = None,
        enable_verification: bool = True,
        strict_mode: Optional[bool] = None,
    ):
        self.manager = manager or TaskVerificationManager(config, lifecycle=self)
        if self.manager.lifecycle is None:
            self.manager.lifecycle = self

        self.enable_verification = enable_verification
        self.strict_mode = (
            self.manager.agent.config.strict_mode if strict_mode is None else strict_mode
        )

        self._entries: Dict[str, BoardEntry] = {}
        self._history: List[BoardEntry] = []

        self._setup_event_listeners()

    # =========================================================================
    # Task Operations
    # =========================================================================

    def create_task(
        self,
        task: Union[Task, Dict[str, Any]],
        requires_verification: bool = True,
    ) -> BoardEntry:
        if isinstance(task, dict):
            task = Task.from_dict(task)
        if not task.id:
            task = replace(task, id=generate_task_id())

        entry = BoardEntry(
            task=task,
            verification_required=self.enable_verification and requires_verification,
        )
        self._entries[task.id] = entry

        logger.debug(f"Task created: {task.id}")
        return entry

    def start_task(self, task_id: str) -> BoardEntry:
        """
        Move a task to in-progress.

        Raises:
            TaskNotFoundError: unknown task id
            TaskBlockedError: the task failed verification and is blocked
        """
        entry = self._get_entry(task_id)

        if self.is_task_blocked(task_id):
            raise TaskBlockedError(f"Task {task_id} is blocked due to verification failure")

        entry.status = BoardStatus.IN_PROGRESS
        entry.started_at = datetime.now()
        return entry

    async def complete_task(self, task_id: str, **completion: Any) -> CompletionResult:
        """
        Complete a task, verifying it first when verification is required.

        Keyword arguments override task fields (files, claims, ...) for the
        verification.

        Raises:
            TaskNotFoundError: unknown task id
            VerificationFailedError: verification failed in strict mode
        """
        entry = self._get_entry(task_id)
        if completion:
            entry.task = replace(entry.task, **completion)

        if entry.verification_required:
            result = await self.manager.force_verify(task_id, entry.task)
            entry.verification = result

            status = self.manager.get_verification_status(task_id)
            if not status.verified or status.blocked:
                entry.status = BoardStatus.VERIFICATION_FAILED

                if self.strict_mode:
                    raise VerificationFailedError(
                        task_id,
                        result.confidence,
                        [r.message for r in result.recommendations],
                    )

                return CompletionResult(
                    success=False,
                    entry=entry,
                    verification=result,
                    message="Task completed but failed verification",
                )

        entry.status = BoardStatus.COMPLETED
        entry.completed_at = datetime.now()
        self._history.append(entry)

        return CompletionResult(
            success=True,
            entry=entry,
            verification=entry.verification,
            message="Task completed and verified successfully",
        )

    # =========================================================================
    # TaskLifecycle
    # =========================================================================

    def mark_complete(self, task_id: str, verification_data: Dict[str, Any]) -> None:
        entry = self._entries.get(task_id)
        if entry:
            entry.status = BoardStatus.COMPLETED
            entry.completed_at = datetime.now()
            entry.verification_data = verification_data

    def mark_pending(self, task_id: str, issue_data: Dict[str, Any]) -> None:
        entry = self._entries.get(task_id)
        if entry:
            entry.status = BoardStatus.PENDING
            entry.verification_issues = issue_data

    # =========================================================================
    # Queries
    # =========================================================================

    def get_task(self, task_id: str) -> Optional[BoardEntry]:
        return self._entries.get(task_id)

    def get_all_tasks(self) -> List[BoardEntry]:
        return list(self._entries.values())

    def get_tasks_by_status(self, status: BoardStatus) -> List[BoardEntry]:
        return [e for e in self._entries.values() if e.status is status]

    def is_task_blocked(self, task_id: str) -> bool:
        return self.manager.get_verification_status(task_id).blocked

    def get_blocked_tasks(self) -> List[BlockedTask]:
        return self.manager.get_blocked_tasks()

    async def unblock_task(self, task_id: str) -> bool:
        return await self.manager.unblock_task(task_id)

    def get_statistics(self) -> Dict[str, Any]:
        total = len(self._entries)
        completed = len(self.get_tasks_by_status(BoardStatus.COMPLETED))

        return {
            "tasks": {
                "total": total,
                "completed": completed,
                "in_progress": len(self.get_tasks_by_status(BoardStatus.IN_PROGRESS)),
                "pending": len(self.get_tasks_by_status(BoardStatus.PENDING)),
                "failed": len(self.get_tasks_by_status(BoardStatus.VERIFICATION_FAILED)),
                "completion_rate": round(completed / total * 100, 2) if total else None,
            },
            "verification": self.manager.get_statistics(),
        }

    def _get_entry(self, task_id: str) -> BoardEntry:
        entry = self._entries.get(task_id)
        if entry is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return entry

    # =========================================================================
    # Event Listeners
    # =========================================================================

    def _setup_event_listeners(self) -> None:
        self.manager.on(Events.VERIFICATION_SUCCESS, self._on_verified)
        self.manager.on(Events.VERIFICATION_FAILED, self._on_failed)
        self.manager.on(Events.TASK_BLOCKED, self._on_blocked)
        self.manager.on(Events.AUTOFIX_APPLIED, self._on_autofix)
        self.manager.on(Events.VERIFICATION_ERROR, self._on_error)

    def _on_verified(self, event: str, task: Task, result: VerificationOutcome, **kwargs) -> None:
        logger.info(f"Task {task.id} verified successfully ({result.confidence}% confidence)")

    def _on_failed(self, event: str, task: Task, result: VerificationOutcome, **kwargs) -> None:
        logger.error(f"Task {task.id} verification failed ({result.confidence}% confidence)")
        for rec in result.recommendations:
            logger.error(f"  - [{rec.severity.value}] {rec.message}")

    def _on_blocked(self, event: str, task: Task, reason: str = "", **kwargs) -> None:
        logger.warning(f"Task {task.id} blocked: {reason}")

    def _on_autofix(self, event: str, task: Task, fix: Any = None, **kwargs) -> None:
        action = fix.action.value if fix is not None else "unknown"
        logger.info(f"Auto-fix applied for task {task.id}: {action}")

    def _on_error(self, event: str, task: Task, error: Exception = None, **kwargs) -> None:
        logger.error(f"Verification error for task {task.id}: {error}")
