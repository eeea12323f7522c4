"""
Verification Checks

The six independent checks run by the verification engine, in order:
existence, functionality, tests, integration, hallucination, performance.

Additive checks score their applicable components proportionally, so a
check with nothing to evaluate scores its full max. Debited checks start
at max and lose points per finding. A check that raises scores 0 and
carries the error instead of aborting the pipeline.

Paths, references and contradictions are pulled out of free-form task
descriptions with regular expressions. That inference is best-effort and
not authoritative.
"""

import fnmatch
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import VerificationError
from ..main import AgentConfig, Behavior, CheckType, PerformanceRequirement, Task
from ..runner import CommandRunner, EndpointProber
from .records import CheckResult

logger = logging.getLogger(__name__)


URL_PATTERN = re.compile(r"\b\w+://\S+")
FILE_PATTERN = re.compile(r"[\w./-]+\.[A-Za-z][A-Za-z0-9]*")
REFERENCE_PATTERN = re.compile(
    r"\b(?:class|function|method|component|module)\s+(\w+)",
    re.IGNORECASE,
)

KNOWN_EXTENSIONS = {
    "c", "cfg", "cpp", "css", "go", "h", "html", "ini", "java", "js", "json",
    "jsx", "md", "py", "rb", "rs", "scss", "sh", "sql", "toml", "ts", "tsx",
    "txt", "yaml", "yml",
}

# (pattern, opposite pattern, description)
CONTRADICTIONS = [
    (
        re.compile(r"\basync(?:hronous(?:ly)?)?\b", re.IGNORECASE),
        re.compile(r"\bsynchronous(?:ly)?\b", re.IGNORECASE),
        "Task claims both async and synchronous behavior",
    ),
    (
        re.compile(r"\bstateless\b", re.IGNORECASE),
        re.compile(r"\bstateful\b", re.IGNORECASE),
        "Task claims both stateless and stateful behavior",
    ),
]


def extract_file_paths(description: str) -> List[str]:
    """Path-like tokens mentioned in a description, in order of appearance"""
    text = URL_PATTERN.sub(" ", description or "")
    paths: List[str] = []

    for token in FILE_PATTERN.findall(text):
        token = token.rstrip("./")
        if not token or token.startswith("."):
            continue
        extension = token.rsplit(".", 1)[-1].lower()
        if "/" not in token and extension not in KNOWN_EXTENSIONS:
            continue
        if token not in paths:
            paths.append(token)

    return paths


def extract_references(description: str) -> List[str]:
    """Names following class/function/method/component/module"""
    references: List[str] = []
    for name in REFERENCE_PATTERN.findall(description or ""):
        if name not in references:
            references.append(name)
    return references


def find_contradictions(description: str) -> List[Dict[str, Any]]:
    contradictions = []
    for pattern, opposite, message in CONTRADICTIONS:
        if pattern.search(description or "") and opposite.search(description or ""):
            contradictions.append({"type": "contradiction", "description": message})
    return contradictions


def referenced_files(task: Task) -> List[str]:
    """Declared files plus paths mentioned in the description"""
    files = list(task.files)
    for path in extract_file_paths(task.description):
        if path not in files:
            files.append(path)
    return files


class Check(ABC):
    """Base class for verification checks"""

    check_type: CheckType
    name: str = "base"
    max_score: float = 0.0
    pass_ratio: float = 1.0

    def __init__(
        self,
        config: AgentConfig,
        runner: CommandRunner,
        prober: EndpointProber,
    ):
        self.config = config
        self.runner = runner
        self.prober = prober

    async def run(self, task: Task) -> CheckResult:
        """
        Run the check against a task.

        Never raises: an exception becomes the result's error and scores 0.
        """
        result = CheckResult(
            name=self.name,
            check_type=self.check_type,
            max_score=self.max_score,
        )

        try:
            await self.evaluate(task, result)
        except Exception as e:
            logger.warning(f"{self.name} errored for task {task.id}: {e}")
            result.error = str(e) or e.__class__.__name__
            result.score = 0.0
            result.passed = False
            return result

        result.score = round(min(max(result.score, 0.0), self.max_score), 2)
        return result

    @abstractmethod
    async def evaluate(self, task: Task, result: CheckResult) -> None:
        """Fill in score, passed and details"""
        pass

    def _scaled(self, earned: float, possible: float) -> float:
        if possible <= 0:
            return self.max_score
        return self.max_score * earned / possible

    def _meets_ratio(self, score: float) -> bool:
        return score >= self.max_score * self.pass_ratio

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.config.workspace_path / candidate

    def _signals_success(self, output: str) -> bool:
        return any(marker in output for marker in self.config.success_markers)


class ExistenceCheck(Check):
    """Referenced files (2 points each) and expected directories (1 point each) exist"""

    check_type = CheckType.EXISTENCE
    name = "Existence Verification"
    max_score = 10.0
    pass_ratio = 0.6

    async def evaluate(self, task: Task, result: CheckResult) -> None:
        earned = 0
        possible = 0

        for file_path in referenced_files(task):
            possible += 2
            if self._resolve(file_path).exists():
                earned += 2
                result.details.append({"file": file_path, "exists": True})
            else:
                result.details.append({
                    "file": file_path,
                    "exists": False,
                    "issue": "File not found",
                })

        for directory in task.directories:
            possible += 1
            if self._resolve(directory).is_dir():
                earned += 1
                result.details.append({"directory": directory, "exists": True})
            else:
                result.details.append({
                    "directory": directory,
                    "exists": False,
                    "issue": "Directory not found",
                })

        result.score = self._scaled(earned, possible)
        result.passed = self._meets_ratio(result.score)


class FunctionalityCheck(Check):
    """Declared test command, endpoints and behaviors actually work"""

    check_type = CheckType.FUNCTIONALITY
    name = "Functionality Verification"
    max_score = 20.0
    pass_ratio = 0.7

    async def evaluate(self, task: Task, result: CheckResult) -> None:
        earned = 0
        possible = 0

        if task.test_command:
            possible += 20
            command = await self.runner.run(task.test_command, self.config.timeout_ms)
            passed = command.ok and self._signals_success(command.stdout)
            if passed:
                earned += 20
            result.details.append({
                "command": task.test_command,
                "passed": passed,
                "exit_code": command.exit_code,
                "output": command.stdout[:500],
            })

        for endpoint in task.endpoints:
            possible += 5
            working = await self.prober.probe(endpoint)
            if working:
                earned += 5
            result.details.append({
                "endpoint": endpoint.url,
                "method": endpoint.method,
                "status": "working" if working else "failed",
                "passed": working,
            })

        for behavior in task.behaviors:
            if not behavior.test_script:
                result.details.append({
                    "behavior": behavior.name,
                    "skipped": True,
                    "reason": "No check script declared",
                })
                continue

            possible += 3
            passed = await self._verify_behavior(behavior)
            if passed:
                earned += 3
            result.details.append({"behavior": behavior.name, "passed": passed})

        result.score = self._scaled(earned, possible)
        result.passed = self._meets_ratio(result.score)

    async def _verify_behavior(self, behavior: Behavior) -> bool:
        try:
            command = await self.runner.run(
                behavior.test_script,
                self.config.behavior_timeout_ms,
            )
        except VerificationError as e:
            logger.debug(f"Behavior '{behavior.name}' check failed: {e}")
            return False
        return command.ok and behavior.expected_output in command.stdout


class TestsCheck(Check):
    """Relevant test files exist and the declared test directory passes"""

    check_type = CheckType.TESTS
    name = "Test Coverage Verification"
    max_score = 15.0
    pass_ratio = 0.5

    async def evaluate(self, task: Task, result: CheckResult) -> None:
        earned = 0
        possible = 0

        if referenced_files(task) or task.test_directory:
            possible += 5
            test_files = self.find_test_files(task)
            if test_files:
                earned += 5
                result.details.append({
                    "test_files": len(test_files),
                    "files": test_files[:20],
                    "passed": True,
                })
            else:
                result.details.append({
                    "test_files": 0,
                    "passed": False,
                    "issue": "No relevant test files found",
                })

        if task.test_directory and self.config.test_runner_command:
            possible += 10
            command_line = self.config.test_runner_command.format(
                directory=task.test_directory,
            )
            try:
                command = await self.runner.run(command_line, self.config.timeout_ms)
            except VerificationError as e:
                result.details.append({
                    "tests_run": False,
                    "passed": False,
                    "directory": task.test_directory,
                    "error": str(e),
                })
            else:
                passed = command.ok and self._signals_success(command.stdout)
                if passed:
                    earned += 10
                result.details.append({
                    "tests_run": True,
                    "passed": passed,
                    "directory": task.test_directory,
                })

        result.score = self._scaled(earned, possible)
        result.passed = self._meets_ratio(result.score)

    def find_test_files(self, task: Task) -> List[str]:
        """
        Test files relevant to the task.

        With referenced files, a test file is relevant when its name contains
        one of their stems or it lives in the declared test directory.
        Without, every test file in the workspace is relevant.
        """
        workspace = self.config.workspace_path
        if not workspace.is_dir():
            return []

        stems = {
            Path(p).name.split(".")[0].lower()
            for p in referenced_files(task)
        }
        stems.discard("")
        test_dir = (
            os.path.join(str(self._resolve(task.test_directory)), "")
            if task.test_directory else None
        )

        found = []
        for root, dirs, files in os.walk(workspace):
            dirs[:] = sorted(d for d in dirs if d not in self.config.ignored_dirs)
            for file_name in sorted(files):
                if not any(fnmatch.fnmatch(file_name, p) for p in self.config.test_file_patterns):
                    continue
                full_path = os.path.join(root, file_name)
                relevant = (
                    not stems
                    or any(stem in file_name.lower() for stem in stems)
                    or (test_dir is not None and full_path.startswith(test_dir))
                )
                if relevant:
                    found.append(os.path.relpath(full_path, workspace))

        return found


class IntegrationCheck(Check):
    """Project still builds (10 points) and lints cleanly (5 points)"""

    check_type = CheckType.INTEGRATION
    name = "Integration Verification"
    max_score = 15.0
    pass_ratio = 0.6

    async def evaluate(self, task: Task, result: CheckResult) -> None:
        earned = 0
        possible = 0

        if task.requires_build and self.config.build_command:
            possible += 10
            try:
                command = await self.runner.run(self.config.build_command, self.config.timeout_ms)
            except VerificationError as e:
                result.details.append({"build": "failed", "passed": False, "error": str(e)})
            else:
                if command.clean:
                    earned += 10
                    result.details.append({"build": "success", "passed": True})
                else:
                    result.details.append({
                        "build": "failed",
                        "passed": False,
                        "exit_code": command.exit_code,
                        "error": (command.stderr or command.stdout)[:500],
                    })

        if self.config.lint_command:
            possible += 5
            # Lint problems are recorded, never raised
            try:
                command = await self.runner.run(
                    self.config.lint_command,
                    self.config.lint_timeout_ms,
                )
            except VerificationError as e:
                result.details.append({"lint": "skipped", "passed": False, "error": str(e)})
            else:
                if command.clean:
                    earned += 5
                    result.details.append({"lint": "passed", "passed": True})
                else:
                    result.details.append({
                        "lint": "failed",
                        "passed": False,
                        "issues": (command.stderr or command.stdout)[:500],
                    })

        result.score = self._scaled(earned, possible)
        result.passed = self._meets_ratio(result.score)


class HallucinationCheck(Check):
    """
    Claims and references in the task hold up against real state.

    Starts at 20: -5 per invalid claim, -3 per reference missing from the
    codebase, -2 per contradiction in the description.
    """

    check_type = CheckType.HALLUCINATION
    name = "Hallucination Detection"
    max_score = 20.0

    CLAIM_PENALTY = 5
    REFERENCE_PENALTY = 3
    CONTRADICTION_PENALTY = 2

    async def evaluate(self, task: Task, result: CheckResult) -> None:
        score = self.max_score
        hallucinations: List[Dict[str, Any]] = []

        for claim in task.claims:
            if not claim.is_valid:
                reason = claim.validation_error or (
                    "Claim marked impossible" if claim.impossible
                    else "Claim marked contradictory"
                )
                hallucinations.append({
                    "type": "impossible_claim",
                    "claim": claim.description,
                    "reason": reason,
                })
                score -= self.CLAIM_PENALTY

        for reference in extract_references(task.description):
            found = await self.runner.search(
                reference,
                include=self.config.search_globs,
                exclude_dirs=self.config.ignored_dirs,
                timeout_ms=self.config.search_timeout_ms,
            )
            if not found:
                hallucinations.append({
                    "type": "non_existent_reference",
                    "reference": reference,
                    "issue": "Reference not found in codebase",
                })
                score -= self.REFERENCE_PENALTY

        contradictions = find_contradictions(task.description)
        hallucinations.extend(contradictions)
        score -= len(contradictions) * self.CONTRADICTION_PENALTY

        result.details = hallucinations
        result.passed = not hallucinations
        result.score = max(0.0, score)


class PerformanceCheck(Check):
    """Declared performance requirements stay within threshold (-2 each)"""

    check_type = CheckType.PERFORMANCE
    name = "Performance Verification"
    max_score = 10.0
    pass_ratio = 0.7

    PENALTY = 2

    async def evaluate(self, task: Task, result: CheckResult) -> None:
        score = self.max_score

        for requirement in task.performance_requirements:
            detail: Dict[str, Any] = {
                "metric": requirement.name,
                "expected": f"<= {requirement.threshold}",
            }
            measurement = await self._measure(requirement)

            if measurement is None:
                detail.update({"actual": None, "skipped": True, "reason": "No measurement command"})
                result.details.append(detail)
                continue

            value, error = measurement
            exceeded = error is not None or value > requirement.threshold
            if exceeded:
                score -= self.PENALTY
            detail.update({"actual": value, "passed": not exceeded})
            if error:
                detail["error"] = error
            result.details.append(detail)

        result.score = max(0.0, score)
        result.passed = self._meets_ratio(result.score)

    async def _measure(self, requirement: PerformanceRequirement) -> Optional[tuple]:
        """Wall-clock milliseconds of the requirement's command, plus any failure"""
        if not requirement.command:
            return None

        command = await self.runner.run(requirement.command, self.config.timeout_ms)
        error = None if command.ok else f"exit code {command.exit_code}"
        return float(command.duration_ms), error


def get_default_checks(
    config: AgentConfig,
    runner: CommandRunner,
    prober: EndpointProber,
) -> List[Check]:
    """The fixed verification pipeline, in execution order"""
    return [
        check_class(config, runner, prober)
        for check_class in (
            ExistenceCheck,
            FunctionalityCheck,
            TestsCheck,
            IntegrationCheck,
            HallucinationCheck,
            PerformanceCheck,
        )
    ]
