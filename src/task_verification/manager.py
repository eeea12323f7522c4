"""
Task Verification Manager - Verification Orchestration

Owns the queue of tasks awaiting verification and drives each one through
the verification agent with bounded retries and auto-fix attempts. A task
that cannot be verified ends up blocked until it passes a later
verification or is explicitly unblocked.

Tasks are verified strictly one at a time, in FIFO order: every check
shares the workspace's build, lint and test tools.
"""

import asyncio
import inspect
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional, Set, Tuple

from .autofix import AutoFixer, FixResult
from .main import ManagerConfig, OutcomeStatus, Task, VerificationMetadata
from .verification.records import Recommendation, VerificationOutcome
from .verification.verifier import VerificationAgent

if TYPE_CHECKING:
    from .lifecycle import TaskLifecycle

logger = logging.getLogger(__name__)


class Events:
    """Lifecycle events published by the manager"""
    TASK_QUEUED = "task:queued"
    VERIFICATION_START = "verification:start"
    VERIFICATION_SUCCESS = "verification:success"
    VERIFICATION_FAILED = "verification:failed"
    VERIFICATION_ERROR = "verification:error"
    TASK_BLOCKED = "task:blocked"
    TASK_UNBLOCKED = "task:unblocked"
    AUTOFIX_APPLIED = "autofix:applied"
    AUTOFIX_FAILED = "autofix:failed"
    QUEUE_PROCESSED = "queue:processed"

    ALL = "*"


@dataclass
class TaskOutcome:
    """Latest verification outcome recorded for a task"""
    status: OutcomeStatus
    result: VerificationOutcome
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class VerificationStatusView:
    """Read-only verification status of a task"""
    task_id: str
    verified: bool
    blocked: bool
    result: Optional[VerificationOutcome] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class BlockedTask:
    task_id: str
    reason: str
    recommendations: List[Recommendation]
    timestamp: Optional[datetime] = None


def generate_task_id() -> str:
    return f"task-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class TaskVerificationManager:
    """
    Verification orchestrator with a single-flight queue drain.

    Key Features:
    1. FIFO queue - tasks are verified in the order they were queued
    2. Retry loop - failed verifications are retried up to max_retries times
    3. Auto-fix - critical recommendations are remediated between attempts
    4. Blocking - tasks that never pass are blocked from completion
    5. Events - every lifecycle step is published to subscribers

    The queue, results and blocked set belong to this instance; callers
    read them only through the query methods.
    """

    def __init__(
        self,
        config: Optional[ManagerConfig] = None,
        agent: Optional[VerificationAgent] = None,
        lifecycle: Optional["TaskLifecycle"] = None,
        fixer: Optional[AutoFixer] = None,
    ):
        self.config = config or ManagerConfig()
        self.agent = agent or VerificationAgent(self.config.agent)
        self.lifecycle = lifecycle
        self.fixer = fixer or AutoFixer(self.agent.config, self.agent.runner)

        self._queue: Deque[Task] = deque()
        self._results: Dict[str, TaskOutcome] = {}
        self._blocked: Set[str] = set()
        self._processing = False
        self._drains: Set[asyncio.Future] = set()
        self._verification_lock = asyncio.Lock()
        self._lock_owner: Optional[asyncio.Task] = None
        self._event_handlers: Dict[str, List[Callable]] = {}

        logger.info(
            f"Task verification manager initialized "
            f"(max_retries={self.config.max_retries}, "
            f"threshold={self.config.verification_threshold})"
        )

    # =========================================================================
    # Queueing
    # =========================================================================

    async def queue_task_for_verification(self, task: Task) -> str:
        """
        Add a task to the verification queue.

        Starts a queue drain when auto-verify is on and none is running.

        Returns:
            The id of the queued task
        """
        enriched = self.enrich_task(task)
        self._queue.append(enriched)

        await self._emit_event(Events.TASK_QUEUED, task=enriched)
        logger.info(f"Task queued for verification: {enriched.id} ({len(self._queue)} pending)")

        if self.config.auto_verify and not self._processing:
            drain = asyncio.ensure_future(self.process_verification_queue())
            self._drains.add(drain)
            drain.add_done_callback(self._drains.discard)

        return enriched.id

    def enrich_task(self, task: Task) -> Task:
        """Copy of the task with an id, queue timestamp and verification metadata"""
        return replace(
            task,
            id=task.id or generate_task_id(),
            queued_at=datetime.now(),
            verification_metadata=VerificationMetadata(
                expected_files=list(task.files),
                expected_directories=list(task.directories),
                test_command=task.test_command,
                endpoints=list(task.endpoints),
                behaviors=list(task.behaviors),
                performance_requirements=list(task.performance_requirements),
                claims=list(task.claims),
            ),
        )

    @property
    def is_processing(self) -> bool:
        return self._processing or any(not d.done() for d in self._drains)

    @property
    def pending(self) -> List[Task]:
        return list(self._queue)

    async def process_verification_queue(self) -> None:
        """Drain the queue, one task's full retry procedure at a time"""
        if self._processing or not self._queue:
            return

        self._processing = True
        try:
            while self._queue:
                task = self._queue.popleft()
                try:
                    await self.verify_task_with_retries(task)
                except Exception as e:
                    logger.exception(f"Verification error for task {task.id}")
                    await self._emit_event(Events.VERIFICATION_ERROR, task=task, error=e)
        finally:
            self._processing = False

        await self._emit_event(Events.QUEUE_PROCESSED)

    async def wait_until_idle(self) -> None:
        """Wait for a running queue drain to finish"""
        while self._drains:
            await asyncio.gather(*self._drains)

    # =========================================================================
    # Retry Loop
    # =========================================================================

    async def verify_task_with_retries(self, task: Task) -> VerificationOutcome:
        """
        Verify a task, retrying with auto-fix until it passes or retries run out.

        The verdict's events and lifecycle callbacks run after the
        verification lock is released, so their handlers may verify again.

        Raises:
            RuntimeError: called from a handler of the verification in progress
        """
        if self._lock_owner is not None and self._lock_owner is asyncio.current_task():
            raise RuntimeError(
                f"Cannot verify {task.id} from inside the verification in progress"
            )

        async with self._verification_lock:
            self._lock_owner = asyncio.current_task()
            try:
                result, verified = await self._verify_with_retries(task)
            finally:
                self._lock_owner = None

        if verified:
            await self._handle_verification_success(task, result)
        else:
            await self._handle_verification_failure(task, result)
        return result

    async def _verify_with_retries(self, task: Task) -> Tuple[VerificationOutcome, bool]:
        max_retries = max(1, self.config.max_retries)
        attempt = 0

        while True:
            attempt += 1
            await self._emit_event(Events.VERIFICATION_START, task=task, attempt=attempt)

            result = await self.agent.verify(task)

            if result.verified and result.confidence >= self.config.verification_threshold:
                return result, True

            if attempt < max_retries and self.config.retry_on_failure:
                await self._attempt_auto_fix(task, result)

                delay_ms = attempt * self.config.retry_delay_ms
                logger.info(
                    f"Task {task.id} failed verification attempt {attempt}/{max_retries} "
                    f"({result.confidence:.2f}%), retrying in {delay_ms}ms"
                )
                await asyncio.sleep(delay_ms / 1000)
            else:
                return result, False

    async def _handle_verification_success(
        self,
        task: Task,
        result: VerificationOutcome,
    ) -> None:
        self._results[task.id] = TaskOutcome(status=OutcomeStatus.VERIFIED, result=result)
        self._blocked.discard(task.id)

        logger.info(f"Task VERIFIED: {task.id} ({result.confidence:.2f}% confidence)")
        await self._emit_event(Events.VERIFICATION_SUCCESS, task=task, result=result)

        await self._notify_lifecycle(
            "mark_complete",
            task.id,
            {
                "verification_id": result.record.id,
                "confidence": result.confidence,
                "verified_at": datetime.now(),
            },
        )

    async def _handle_verification_failure(
        self,
        task: Task,
        result: VerificationOutcome,
    ) -> None:
        outcome = TaskOutcome(status=OutcomeStatus.FAILED, result=result)
        self._results[task.id] = outcome
        if self.config.block_on_failure:
            self._blocked.add(task.id)

        await self._emit_event(Events.VERIFICATION_FAILED, task=task, result=result)

        # a failed-event handler may have verified the task again
        if self._results.get(task.id) is not outcome:
            return

        if self.config.block_on_failure and task.id in self._blocked:
            logger.warning(f"Task BLOCKED: {task.id} ({result.confidence:.2f}% confidence)")
            await self._emit_event(
                Events.TASK_BLOCKED,
                task=task,
                reason="Verification failed",
                recommendations=result.recommendations,
            )

        await self._notify_lifecycle(
            "mark_pending",
            task.id,
            {
                "verification_failed": True,
                "issues": result.recommendations,
                "last_verification_id": result.record.id,
            },
        )

    async def _attempt_auto_fix(
        self,
        task: Task,
        result: VerificationOutcome,
    ) -> List[FixResult]:
        """Try to remediate qualifying recommendations before the next attempt"""
        fixes = []

        for recommendation in result.recommendations:
            if recommendation.severity.value not in self.config.autofix_severities:
                continue

            try:
                fix = await self.fixer.apply(recommendation, task)
            except Exception as e:
                logger.warning(f"Auto-fix failed for task {task.id}: {e}")
                await self._emit_event(
                    Events.AUTOFIX_FAILED,
                    task=task,
                    error=e,
                    recommendation=recommendation,
                )
                continue

            if fix.success:
                fixes.append(fix)
                await self._emit_event(Events.AUTOFIX_APPLIED, task=task, fix=fix)
            else:
                await self._emit_event(
                    Events.AUTOFIX_FAILED,
                    task=task,
                    fix=fix,
                    recommendation=recommendation,
                )

        return fixes

    async def _notify_lifecycle(self, method: str, task_id: str, data: Dict[str, Any]) -> None:
        """Best-effort callback into the task lifecycle collaborator"""
        if self.lifecycle is None:
            return

        try:
            outcome = getattr(self.lifecycle, method)(task_id, data)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Task lifecycle {method} failed for {task_id}: {e}")

    # =========================================================================
    # Commands and Queries
    # =========================================================================

    async def force_verify(
        self,
        task_id: str,
        task: Optional[Task] = None,
    ) -> VerificationOutcome:
        """Run the retry procedure for a task now, outside the queue"""
        task = task or Task(id=task_id, description=f"Task {task_id}")
        if task.id != task_id:
            task = replace(task, id=task_id)
        if task.verification_metadata is None:
            task = self.enrich_task(task)

        return await self.verify_task_with_retries(task)

    def get_verification_status(self, task_id: str) -> VerificationStatusView:
        outcome = self._results.get(task_id)
        return VerificationStatusView(
            task_id=task_id,
            verified=outcome is not None and outcome.status is OutcomeStatus.VERIFIED,
            blocked=task_id in self._blocked,
            result=outcome.result if outcome else None,
            timestamp=outcome.timestamp if outcome else None,
        )

    def get_blocked_tasks(self) -> List[BlockedTask]:
        blocked = []
        for task_id in sorted(self._blocked):
            outcome = self._results.get(task_id)
            blocked.append(
                BlockedTask(
                    task_id=task_id,
                    reason="Verification failed",
                    recommendations=list(outcome.result.recommendations) if outcome else [],
                    timestamp=outcome.timestamp if outcome else None,
                )
            )
        return blocked

    async def unblock_task(self, task_id: str) -> bool:
        """
        Remove a task from the blocked set.

        Manual override: the task's last result stays as recorded.

        Returns:
            True if the task was blocked
        """
        was_blocked = task_id in self._blocked
        self._blocked.discard(task_id)

        logger.info(f"Task unblocked: {task_id}")
        await self._emit_event(Events.TASK_UNBLOCKED, task_id=task_id, was_blocked=was_blocked)

        return was_blocked

    def reset(self) -> None:
        """Clear queue, results and blocked set"""
        if self.is_processing:
            raise RuntimeError("Cannot reset while the verification queue is processing")
        self._queue.clear()
        self._results.clear()
        self._blocked.clear()

    def get_statistics(self) -> Dict[str, Any]:
        """Get verification statistics"""
        total = len(self._results)
        verified = len([
            o for o in self._results.values() if o.status is OutcomeStatus.VERIFIED
        ])

        return {
            "queued": len(self._queue),
            "total_processed": total,
            "verified": verified,
            "failed": total - verified,
            "blocked": len(self._blocked),
            "verification_rate": round(verified / total * 100, 2) if total else None,
            "agent": self.agent.get_statistics(),
        }

    # =========================================================================
    # Event System
    # =========================================================================

    def on(self, event: str, handler: Callable) -> None:
        """Register event handler ("*" receives every event)"""
        if event not in self._event_handlers:
            self._event_handlers[event] = []
        self._event_handlers[event].append(handler)

    def off(self, event: str, handler: Callable) -> None:
        handlers = self._event_handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def _emit_event(self, event: str, **payload: Any) -> None:
        """Call handlers as handler(event, **payload); handler errors are logged"""
        handlers = self._event_handlers.get(event, []) + self._event_handlers.get(Events.ALL, [])
        for handler in handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(event, **payload)
                else:
                    handler(event, **payload)
            except Exception as e:
                logger.error(f"Event handler error for {event}: {e}")
