"""
Shared fixtures for task verification tests

The fake runner and prober stand in for build, lint, test, search and
network tools so the checks can be exercised deterministically.
"""

from typing import Dict, List, Optional, Union

import pytest

from task_verification.main import AgentConfig, Endpoint, ManagerConfig, VerificationStatus
from task_verification.runner import CommandResult, CommandRunner, EndpointProber
from task_verification.verification.records import VerificationOutcome, VerificationRecord


class FakeRunner(CommandRunner):
    """Scripted CommandRunner: unscripted commands succeed with default_stdout"""

    def __init__(self, workspace_path, default_stdout: str = "All tests passed"):
        super().__init__(workspace_path)
        self.default_stdout = default_stdout
        self.results: Dict[str, Union[CommandResult, Exception]] = {}
        self.found: Dict[str, Union[bool, Exception]] = {}
        self.calls: List[str] = []
        self.searches: List[str] = []

    def script(
        self,
        command: str,
        exit_code: int = 0,
        stdout: Optional[str] = None,
        stderr: str = "",
        duration_ms: int = 0,
    ) -> None:
        self.results[command] = CommandResult(
            command=command,
            exit_code=exit_code,
            stdout=self.default_stdout if stdout is None else stdout,
            stderr=stderr,
            duration_ms=duration_ms,
        )

    def fail(self, command: str, error: Exception) -> None:
        self.results[command] = error

    async def run(self, command: str, timeout_ms: Optional[int] = None) -> CommandResult:
        self.calls.append(command)
        outcome = self.results.get(command)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return CommandResult(command=command, exit_code=0, stdout=self.default_stdout)
        return outcome

    async def search(self, text, include, exclude_dirs=None, timeout_ms=None) -> bool:
        self.searches.append(text)
        outcome = self.found.get(text, True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeProber(EndpointProber):
    """Endpoints answer successfully unless listed in ``down``"""

    def __init__(self):
        super().__init__()
        self.down = set()
        self.probed: List[str] = []

    async def probe(self, endpoint: Endpoint) -> bool:
        self.probed.append(endpoint.url)
        return endpoint.url not in self.down


def make_outcome(
    verified: bool,
    confidence: float,
    recommendations=None,
    task_id: str = "task-1",
) -> VerificationOutcome:
    """A sealed outcome without running any checks"""
    record = VerificationRecord(id=f"ver-{task_id}-{confidence}", task_id=task_id)
    record.confidence = confidence
    record.passed = verified
    record.recommendations = list(recommendations or [])
    record.seal(VerificationStatus.PASSED if verified else VerificationStatus.FAILED)
    return VerificationOutcome(
        verified=verified,
        confidence=confidence,
        record=record,
        recommendations=list(recommendations or []),
    )


@pytest.fixture
def agent_config(tmp_path):
    """Engine config bound to a temp workspace"""
    return AgentConfig(
        workspace_path=tmp_path,
        report_path=tmp_path / "reports",
    )


@pytest.fixture
def runner(tmp_path):
    return FakeRunner(tmp_path)


@pytest.fixture
def prober():
    return FakeProber()


@pytest.fixture
def manager_config(agent_config):
    return ManagerConfig(agent=agent_config, retry_delay_ms=0)
