"""
Tests for the Task Verification Manager
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_outcome
from task_verification.autofix import FixResult, RemediationKind
from task_verification.main import (
    CheckType,
    RecommendationAction,
    Severity,
    Task,
)
from task_verification.manager import Events, TaskVerificationManager
from task_verification.verification.records import Recommendation
from task_verification.verification.verifier import VerificationAgent


def critical_rec() -> Recommendation:
    return Recommendation(
        severity=Severity.CRITICAL,
        message="Missing files or directories detected",
        action=RecommendationAction.CREATE_MISSING_RESOURCES,
        check_type=CheckType.EXISTENCE,
        details=[{"file": "src/foo.js", "exists": False, "issue": "File not found"}],
    )


@pytest.fixture
def agent(agent_config, runner, prober):
    return VerificationAgent(config=agent_config, runner=runner, prober=prober)


@pytest.fixture
def fixer():
    fixer = MagicMock()
    fixer.apply = AsyncMock(
        return_value=FixResult(
            kind=RemediationKind.CREATE_MISSING_RESOURCES,
            action=RecommendationAction.CREATE_MISSING_RESOURCES,
            success=True,
        )
    )
    return fixer


@pytest.fixture
def manager(manager_config, agent, fixer):
    return TaskVerificationManager(config=manager_config, agent=agent, fixer=fixer)


def record_events(manager):
    events = []
    manager.on(Events.ALL, lambda event, **payload: events.append((event, payload)))
    return events


class TestRetryLoop:
    """Tests for verify_task_with_retries"""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(True, 95))
        lifecycle = MagicMock()
        manager.lifecycle = lifecycle

        result = await manager.verify_task_with_retries(Task(id="task-1"))

        assert result.verified
        assert agent.verify.await_count == 1
        status = manager.get_verification_status("task-1")
        assert status.verified
        assert not status.blocked
        lifecycle.mark_complete.assert_called_once()
        task_id, data = lifecycle.mark_complete.call_args[0]
        assert task_id == "task-1"
        assert data["verification_id"] == result.record.id
        assert data["confidence"] == 95

    @pytest.mark.asyncio
    async def test_attempts_are_bounded(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(False, 40))

        result = await manager.verify_task_with_retries(Task(id="task-1"))

        assert not result.verified
        assert agent.verify.await_count == 3
        assert [b.task_id for b in manager.get_blocked_tasks()] == ["task-1"]

    @pytest.mark.asyncio
    async def test_no_retry_when_disabled(self, manager, agent):
        manager.config.retry_on_failure = False
        agent.verify = AsyncMock(return_value=make_outcome(False, 40))

        await manager.verify_task_with_retries(Task(id="task-1"))

        assert agent.verify.await_count == 1

    @pytest.mark.asyncio
    async def test_verified_below_manager_threshold_is_retried(self, manager, agent):
        manager.config.verification_threshold = 90
        agent.verify = AsyncMock(return_value=make_outcome(True, 85))

        result = await manager.verify_task_with_retries(Task(id="task-1"))

        assert agent.verify.await_count == 3
        assert not manager.get_verification_status("task-1").verified
        assert result.confidence == 85

    @pytest.mark.asyncio
    async def test_passes_on_later_attempt(self, manager, agent):
        agent.verify = AsyncMock(side_effect=[
            make_outcome(False, 50, [critical_rec()]),
            make_outcome(True, 100),
        ])

        result = await manager.verify_task_with_retries(Task(id="task-1"))

        assert result.verified
        assert agent.verify.await_count == 2
        assert manager.fixer.apply.await_count == 1

    @pytest.mark.asyncio
    async def test_failure_notifies_lifecycle(self, manager, agent):
        rec = critical_rec()
        agent.verify = AsyncMock(return_value=make_outcome(False, 40, [rec]))
        lifecycle = MagicMock()
        manager.lifecycle = lifecycle

        result = await manager.verify_task_with_retries(Task(id="task-1"))

        task_id, data = lifecycle.mark_pending.call_args[0]
        assert task_id == "task-1"
        assert data["verification_failed"] is True
        assert data["issues"] == [rec]
        assert data["last_verification_id"] == result.record.id

    @pytest.mark.asyncio
    async def test_lifecycle_errors_are_contained(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(True, 95))
        lifecycle = MagicMock()
        lifecycle.mark_complete.side_effect = RuntimeError("board offline")
        manager.lifecycle = lifecycle

        result = await manager.verify_task_with_retries(Task(id="task-1"))

        assert result.verified
        assert manager.get_verification_status("task-1").verified

    @pytest.mark.asyncio
    async def test_only_configured_severities_are_fixed(self, manager, agent, fixer):
        high = Recommendation(
            severity=Severity.HIGH,
            message="Integration issues detected",
            action=RecommendationAction.FIX_BUILD_LINT,
            check_type=CheckType.INTEGRATION,
            details=[{"lint": "failed", "passed": False}],
        )
        agent.verify = AsyncMock(return_value=make_outcome(False, 40, [high]))

        await manager.verify_task_with_retries(Task(id="task-1"))

        fixer.apply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_autofix_errors_are_published(self, manager, agent, fixer):
        fixer.apply.side_effect = RuntimeError("read-only filesystem")
        agent.verify = AsyncMock(return_value=make_outcome(False, 40, [critical_rec()]))
        events = record_events(manager)

        await manager.verify_task_with_retries(Task(id="task-1"))

        failed = [p for e, p in events if e == Events.AUTOFIX_FAILED]
        assert len(failed) == 2
        assert str(failed[0]["error"]) == "read-only filesystem"


class TestAutoFixScenario:
    """End-to-end: a missing file is created between attempts"""

    @pytest.mark.asyncio
    async def test_missing_file_is_created_and_verified(self, manager_config, runner, prober, tmp_path):
        manager_config.verification_threshold = 95
        manager_config.agent.pass_threshold = 95
        (tmp_path / "tests").mkdir()
        (tmp_path / "tests" / "foo.test.js").write_text("")

        agent = VerificationAgent(manager_config.agent, runner, prober)
        manager = TaskVerificationManager(config=manager_config, agent=agent)
        events = record_events(manager)

        result = await manager.verify_task_with_retries(
            Task(id="task-1", description="Create src/foo.js")
        )

        assert result.verified
        assert result.confidence == 100
        assert (tmp_path / "src" / "foo.js").exists()
        assert [p["attempt"] for e, p in events if e == Events.VERIFICATION_START] == [1, 2]
        applied = [p["fix"] for e, p in events if e == Events.AUTOFIX_APPLIED]
        assert len(applied) == 1
        assert applied[0].details == {"src/foo.js": "created"}
        assert len(agent.history) == 2


class TestQueue:
    """Tests for queueing and the queue drain"""

    @pytest.mark.asyncio
    async def test_queue_enriches_and_drains_in_order(self, manager, agent):
        seen = []

        async def verify(task):
            seen.append(task)
            return make_outcome(True, 100, task_id=task.id)

        agent.verify = verify

        ids = [
            await manager.queue_task_for_verification(Task(description=f"task {i}", files=[f"f{i}.py"]))
            for i in range(3)
        ]
        await manager.wait_until_idle()

        assert [t.id for t in seen] == ids
        assert all(i.startswith("task-") for i in ids)
        assert seen[0].queued_at is not None
        assert seen[0].verification_metadata.expected_files == ["f0.py"]
        assert seen[0].verification_metadata.required_checks == [
            "existence", "functionality", "tests", "integration",
        ]
        assert manager.get_statistics()["verified"] == 3

    @pytest.mark.asyncio
    async def test_caller_task_is_not_mutated(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(True, 100))
        task = Task(description="leave me alone")

        await manager.queue_task_for_verification(task)
        await manager.wait_until_idle()

        assert task.id is None
        assert task.verification_metadata is None

    @pytest.mark.asyncio
    async def test_auto_verify_off(self, manager, agent):
        manager.config.auto_verify = False
        agent.verify = AsyncMock(return_value=make_outcome(True, 100))

        await manager.queue_task_for_verification(Task(id="task-1"))
        await asyncio.sleep(0)

        assert agent.verify.await_count == 0
        assert manager.get_statistics()["queued"] == 1

        await manager.process_verification_queue()

        assert agent.verify.await_count == 1
        assert manager.get_statistics()["queued"] == 0

    @pytest.mark.asyncio
    async def test_drain_is_single_flight(self, manager, agent):
        manager.config.auto_verify = False
        active = 0
        overlap = []

        async def verify(task):
            nonlocal active
            active += 1
            overlap.append(active)
            await asyncio.sleep(0.01)
            active -= 1
            return make_outcome(True, 100, task_id=task.id)

        agent.verify = verify
        for i in range(3):
            await manager.queue_task_for_verification(Task(id=f"task-{i}"))

        await asyncio.gather(
            manager.process_verification_queue(),
            manager.process_verification_queue(),
            manager.force_verify("task-x"),
        )

        assert max(overlap) == 1
        assert len(overlap) == 4

    @pytest.mark.asyncio
    async def test_drain_continues_after_error(self, manager, agent):
        agent.verify = AsyncMock(side_effect=[
            RuntimeError("agent crashed"),
            make_outcome(True, 100, task_id="task-2"),
        ])
        events = record_events(manager)

        await manager.queue_task_for_verification(Task(id="task-1"))
        await manager.queue_task_for_verification(Task(id="task-2"))
        await manager.wait_until_idle()

        names = [e for e, _ in events]
        assert Events.VERIFICATION_ERROR in names
        assert names[-1] == Events.QUEUE_PROCESSED
        assert manager.get_verification_status("task-2").verified
        assert not manager.get_verification_status("task-1").verified


class TestQueriesAndEvents:
    """Tests for status queries, unblocking and events"""

    @pytest.mark.asyncio
    async def test_status_query_is_idempotent(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(False, 30))
        await manager.verify_task_with_retries(Task(id="task-1"))

        first = manager.get_verification_status("task-1")
        second = manager.get_verification_status("task-1")

        assert first == second
        assert first.blocked
        assert manager.get_verification_status("unknown") == manager.get_verification_status("unknown")

    @pytest.mark.asyncio
    async def test_unblock_keeps_result(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(False, 30))
        events = record_events(manager)
        await manager.verify_task_with_retries(Task(id="task-1"))

        assert await manager.unblock_task("task-1") is True
        assert await manager.unblock_task("task-1") is False

        status = manager.get_verification_status("task-1")
        assert not status.blocked
        assert not status.verified
        assert status.result is not None
        assert [e for e, _ in events].count(Events.TASK_UNBLOCKED) == 2

    @pytest.mark.asyncio
    async def test_success_clears_block(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(False, 30))
        await manager.verify_task_with_retries(Task(id="task-1"))

        agent.verify = AsyncMock(return_value=make_outcome(True, 99))
        await manager.force_verify("task-1")

        assert not manager.get_verification_status("task-1").blocked

    @pytest.mark.asyncio
    async def test_no_blocking_when_disabled(self, manager, agent):
        manager.config.block_on_failure = False
        agent.verify = AsyncMock(return_value=make_outcome(False, 30))
        events = record_events(manager)

        await manager.verify_task_with_retries(Task(id="task-1"))

        assert manager.get_blocked_tasks() == []
        assert Events.TASK_BLOCKED not in [e for e, _ in events]

    @pytest.mark.asyncio
    async def test_event_payloads(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(False, 30, [critical_rec()]))
        manager.config.max_retries = 1
        events = record_events(manager)

        await manager.verify_task_with_retries(Task(id="task-1"))

        names = [e for e, _ in events]
        assert names == [Events.VERIFICATION_START, Events.VERIFICATION_FAILED, Events.TASK_BLOCKED]
        blocked = events[-1][1]
        assert blocked["reason"] == "Verification failed"
        assert blocked["recommendations"][0].severity is Severity.CRITICAL

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_break_verification(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(True, 100))

        def broken(event, **payload):
            raise ValueError("bad handler")

        async def async_handler(event, **payload):
            calls.append(event)

        calls = []
        manager.on(Events.VERIFICATION_SUCCESS, broken)
        manager.on(Events.VERIFICATION_SUCCESS, async_handler)

        result = await manager.verify_task_with_retries(Task(id="task-1"))

        assert result.verified
        assert calls == [Events.VERIFICATION_SUCCESS]

    @pytest.mark.asyncio
    async def test_off_unsubscribes(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(True, 100))
        calls = []
        handler = lambda event, **payload: calls.append(event)
        manager.on(Events.VERIFICATION_SUCCESS, handler)
        manager.off(Events.VERIFICATION_SUCCESS, handler)

        await manager.verify_task_with_retries(Task(id="task-1"))

        assert calls == []

    @pytest.mark.asyncio
    async def test_force_verify_builds_task(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(True, 100))

        await manager.force_verify("task-9")

        task = agent.verify.await_args[0][0]
        assert task.id == "task-9"
        assert task.description == "Task task-9"
        assert task.verification_metadata is not None

    @pytest.mark.asyncio
    async def test_failed_handler_can_verify_another_task(self, manager, agent):
        async def verify(task):
            passed = task.id == "task-2"
            return make_outcome(passed, 100 if passed else 20, task_id=task.id)

        agent.verify = verify
        manager.config.max_retries = 1
        reverified = []

        async def reverify(event, task, **payload):
            if task.id == "task-1":
                reverified.append(await manager.force_verify("task-2"))

        manager.on(Events.VERIFICATION_FAILED, reverify)

        result = await asyncio.wait_for(manager.force_verify("task-1"), timeout=3)

        assert not result.verified
        assert reverified[0].verified
        assert manager.get_verification_status("task-1").blocked
        assert manager.get_verification_status("task-2").verified

    @pytest.mark.asyncio
    async def test_reverified_task_is_not_blocked(self, manager, agent):
        agent.verify = AsyncMock(side_effect=[make_outcome(False, 20), make_outcome(True, 100)])
        manager.config.max_retries = 1
        lifecycle = MagicMock()
        manager.lifecycle = lifecycle

        async def retry(event, task, **payload):
            await manager.force_verify(task.id, task)

        manager.on(Events.VERIFICATION_FAILED, retry)
        events = record_events(manager)

        await asyncio.wait_for(manager.verify_task_with_retries(Task(id="task-1")), timeout=3)

        status = manager.get_verification_status("task-1")
        assert status.verified
        assert not status.blocked
        assert Events.TASK_BLOCKED not in [e for e, _ in events]
        lifecycle.mark_complete.assert_called_once()
        lifecycle.mark_pending.assert_not_called()

    @pytest.mark.asyncio
    async def test_verifying_from_a_running_verification_raises(self, manager, agent):
        agent.verify = AsyncMock(return_value=make_outcome(True, 100))
        errors = []

        async def nested(event, **payload):
            try:
                await manager.force_verify("task-2")
            except RuntimeError as e:
                errors.append(e)

        manager.on(Events.VERIFICATION_START, nested)

        result = await asyncio.wait_for(manager.force_verify("task-1"), timeout=3)

        assert result.verified
        assert len(errors) == 1
        assert agent.verify.await_count == 1

    @pytest.mark.asyncio
    async def test_statistics_and_reset(self, manager, agent):
        agent.verify = AsyncMock(side_effect=[make_outcome(True, 100), make_outcome(False, 10)])
        manager.config.max_retries = 1

        await manager.verify_task_with_retries(Task(id="a"))
        await manager.verify_task_with_retries(Task(id="b"))

        stats = manager.get_statistics()
        assert stats["total_processed"] == 2
        assert stats["verified"] == 1
        assert stats["failed"] == 1
        assert stats["blocked"] == 1
        assert stats["verification_rate"] == 50.0
        assert "agent" in stats

        manager.reset()

        stats = manager.get_statistics()
        assert stats["total_processed"] == 0
        assert stats["blocked"] == 0
        assert stats["verification_rate"] is None
