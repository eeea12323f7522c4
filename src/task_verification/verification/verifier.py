"""
Verification Agent

The core verification engine that decides whether a task claimed as done
is actually done. It runs every check, turns the scores into a confidence
percentage, derives recommendations from the failed checks and writes a
report per attempt.
"""

import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import ReportError
from ..main import (
    AgentConfig,
    CheckType,
    RecommendationAction,
    Severity,
    Task,
    VerificationStatus,
)
from ..reports import ReportStore
from ..runner import CommandRunner, EndpointProber
from .checks import Check, get_default_checks
from .records import CheckResult, Recommendation, VerificationOutcome, VerificationRecord

logger = logging.getLogger(__name__)


def _not_passed(detail: Dict[str, Any]) -> bool:
    return detail.get("passed") is False


def _missing(detail: Dict[str, Any]) -> bool:
    return detail.get("exists") is False


def _build_or_lint_failed(detail: Dict[str, Any]) -> bool:
    return detail.get("build") == "failed" or detail.get("lint") == "failed"


def _everything(detail: Dict[str, Any]) -> bool:
    return True


# check type -> (severity, message, action, detail filter)
RECOMMENDATION_RULES: Dict[
    CheckType,
    Tuple[Severity, str, RecommendationAction, Callable[[Dict[str, Any]], bool]],
] = {
    CheckType.EXISTENCE: (
        Severity.CRITICAL,
        "Missing files or directories detected",
        RecommendationAction.CREATE_MISSING_RESOURCES,
        _missing,
    ),
    CheckType.FUNCTIONALITY: (
        Severity.HIGH,
        "Feature not working as expected",
        RecommendationAction.DEBUG_IMPLEMENTATION,
        _not_passed,
    ),
    CheckType.TESTS: (
        Severity.MEDIUM,
        "Insufficient test coverage",
        RecommendationAction.ADD_TESTS,
        _not_passed,
    ),
    CheckType.INTEGRATION: (
        Severity.HIGH,
        "Integration issues detected",
        RecommendationAction.FIX_BUILD_LINT,
        _build_or_lint_failed,
    ),
    CheckType.HALLUCINATION: (
        Severity.CRITICAL,
        "Potential hallucinations detected",
        RecommendationAction.VERIFY_CLAIMS,
        _everything,
    ),
    CheckType.PERFORMANCE: (
        Severity.MEDIUM,
        "Performance requirements not met",
        RecommendationAction.OPTIMIZE_PERFORMANCE,
        _not_passed,
    ),
}


def generate_recommendations(checks: List[CheckResult]) -> List[Recommendation]:
    """One recommendation per failed check, carrying only its failing details"""
    recommendations = []

    for check in checks:
        if check.passed:
            continue
        severity, message, action, keep = RECOMMENDATION_RULES[check.check_type]
        recommendations.append(
            Recommendation(
                severity=severity,
                message=message,
                action=action,
                check_type=check.check_type,
                details=[d for d in check.details if keep(d)],
            )
        )

    return recommendations


def generate_verification_id() -> str:
    return f"ver-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class VerificationAgent:
    """
    Verifies that task completion claims are accurate.

    Verification pipeline (fixed order, each check isolated):
    1. Existence - referenced files and directories exist
    2. Functionality - declared test command, endpoints, behaviors work
    3. Tests - relevant tests exist and pass
    4. Integration - build and lint are clean
    5. Hallucination - claims, references and wording hold up
    6. Performance - declared requirements are met

    The agent never raises from verify(). A failure outside the per-check
    boundary yields an ERROR record with confidence 0.
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        runner: Optional[CommandRunner] = None,
        prober: Optional[EndpointProber] = None,
        report_store: Optional[ReportStore] = None,
        checks: Optional[List[Check]] = None,
    ):
        self.config = config or AgentConfig()
        self.runner = runner or CommandRunner(
            self.config.workspace_path,
            timeout_ms=self.config.timeout_ms,
        )
        self.prober = prober or EndpointProber(timeout_ms=self.config.endpoint_timeout_ms)
        self.report_store = report_store or ReportStore(self.config.report_path)
        self.checks = checks or get_default_checks(self.config, self.runner, self.prober)

        self._history: List[VerificationRecord] = []
        self._hallucination_detections: List[Dict[str, Any]] = []

    @property
    def history(self) -> List[VerificationRecord]:
        return list(self._history)

    @property
    def hallucination_detections(self) -> List[Dict[str, Any]]:
        return list(self._hallucination_detections)

    async def verify(self, task: Task) -> VerificationOutcome:
        """
        Verify a claimed task completion.

        Args:
            task: The task being verified

        Returns:
            VerificationOutcome with verdict, confidence, sealed record and
            recommendations
        """
        record = VerificationRecord(
            id=generate_verification_id(),
            task_id=task.id,
            task_description=task.description,
        )

        logger.info(f"Starting verification {record.id} for task {task.id}")

        try:
            await self._run_pipeline(task, record)
        except Exception as e:
            logger.exception(f"Verification error for task {task.id}")
            record.confidence = 0.0
            record.passed = False
            record.seal(VerificationStatus.ERROR, error=str(e))
            self._finish(record)
            return VerificationOutcome(
                verified=False,
                confidence=0.0,
                record=record,
                recommendations=[],
                error=str(e),
            )

        status = VerificationStatus.PASSED if record.passed else VerificationStatus.FAILED
        record.seal(status)
        self._finish(record)

        logger.info(
            f"Verification {record.id} for task {task.id}: "
            f"{record.status.value} ({record.confidence:.2f}% confidence) "
            f"in {record.duration_ms}ms"
        )

        return VerificationOutcome(
            verified=record.passed,
            confidence=record.confidence,
            record=record,
            recommendations=list(record.recommendations),
        )

    async def _run_pipeline(self, task: Task, record: VerificationRecord) -> None:
        """Run the checks in order and score the attempt"""
        for check in self.checks:
            record.checks.append(await check.run(task))

        total_score = sum(c.score for c in record.checks)
        max_score = sum(c.max_score for c in record.checks)

        record.score = round(total_score, 2)
        record.max_score = max_score
        record.confidence = round(total_score / max_score * 100, 2) if max_score else 0.0
        record.passed = record.confidence >= self.config.threshold
        record.recommendations = generate_recommendations(record.checks)

        hallucination = record.get_check(CheckType.HALLUCINATION)
        if hallucination and hallucination.error is None and hallucination.details:
            self._hallucination_detections.append({
                "task_id": task.id,
                "verification_id": record.id,
                "timestamp": datetime.now().isoformat(),
                "hallucinations": list(hallucination.details),
            })

    def _finish(self, record: VerificationRecord) -> None:
        """Append to history and write the report"""
        self._history.append(record)

        if not self.config.write_reports:
            return

        try:
            self.report_store.save(record)
        except ReportError as e:
            logger.warning(f"Verification report not written for {record.id}: {e}")

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_statistics(self) -> Dict[str, Any]:
        """Get verification statistics"""
        total = len(self._history)
        passed = len([r for r in self._history if r.passed])
        errors = len([r for r in self._history if r.status is VerificationStatus.ERROR])
        avg_confidence = (
            sum(r.confidence for r in self._history) / total if total else 0.0
        )

        return {
            "total": total,
            "passed": passed,
            "failed": total - passed,
            "errors": errors,
            "pass_rate": round(passed / total * 100, 2) if total else 0.0,
            "avg_confidence": round(avg_confidence, 2),
            "hallucinations_detected": len(self._hallucination_detections),
        }
