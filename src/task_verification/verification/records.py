"""
Verification Records

Results produced by the verification engine: one CheckResult per check,
one VerificationRecord per attempt, and the recommendations derived from
failed checks.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import RecordSealedError
from ..main import CheckType, RecommendationAction, Severity, VerificationStatus


@dataclass
class CheckResult:
    """Result of a single verification check"""
    name: str
    check_type: CheckType
    max_score: float
    score: float = 0.0
    passed: bool = False
    details: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.check_type.value,
            "passed": self.passed,
            "score": self.score,
            "max_score": self.max_score,
            "details": self.details,
            "error": self.error,
        }


@dataclass
class Recommendation:
    """Remediation hint derived from a failed check"""
    severity: Severity
    message: str
    action: RecommendationAction
    check_type: CheckType
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "action": self.action.value,
            "check_type": self.check_type.value,
            "details": self.details,
        }


@dataclass
class VerificationRecord:
    """
    One verification attempt.

    Created in RUNNING state and sealed once the attempt finishes. A sealed
    record rejects further attribute assignment.
    """
    id: str
    task_id: Optional[str]
    task_description: str = ""
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None
    duration_ms: int = 0
    status: VerificationStatus = VerificationStatus.RUNNING
    checks: List[CheckResult] = field(default_factory=list)
    score: float = 0.0
    max_score: float = 0.0
    confidence: float = 0.0
    passed: bool = False
    recommendations: List[Recommendation] = field(default_factory=list)
    error: Optional[str] = None
    sealed: bool = False

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "sealed", False):
            raise RecordSealedError(f"Verification record {self.id} is sealed")
        super().__setattr__(name, value)

    def seal(
        self,
        status: VerificationStatus,
        error: Optional[str] = None,
    ) -> None:
        """Finish the attempt and freeze the record"""
        if status is VerificationStatus.RUNNING:
            raise ValueError("Cannot seal a record as running")

        self.status = status
        self.error = error
        self.ended_at = datetime.now()
        self.duration_ms = int((self.ended_at - self.started_at).total_seconds() * 1000)
        self.checks = tuple(self.checks)
        self.recommendations = tuple(self.recommendations)
        self.sealed = True

    def get_check(self, check_type: CheckType) -> Optional[CheckResult]:
        for check in self.checks:
            if check.check_type is check_type:
                return check
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "task_description": self.task_description,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "score": self.score,
            "max_score": self.max_score,
            "confidence": self.confidence,
            "passed": self.passed,
            "checks": [c.to_dict() for c in self.checks],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "error": self.error,
        }


@dataclass
class VerificationOutcome:
    """What the engine returns to its caller for one attempt"""
    verified: bool
    confidence: float
    record: VerificationRecord
    recommendations: List[Recommendation] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verified": self.verified,
            "confidence": self.confidence,
            "verification": self.record.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "error": self.error,
        }
