"""
Verification Engine

Runs the fixed check suite against a task and produces a scored,
sealed verification record with remediation recommendations.
"""

from .checks import (
    Check,
    ExistenceCheck,
    FunctionalityCheck,
    HallucinationCheck,
    IntegrationCheck,
    PerformanceCheck,
    TestsCheck,
    extract_file_paths,
    extract_references,
    find_contradictions,
    get_default_checks,
)
from .records import (
    CheckResult,
    Recommendation,
    VerificationOutcome,
    VerificationRecord,
)
from .verifier import VerificationAgent, generate_recommendations

__all__ = [
    # Engine
    "VerificationAgent",
    "generate_recommendations",
    # Records
    "CheckResult",
    "Recommendation",
    "VerificationOutcome",
    "VerificationRecord",
    # Checks
    "Check",
    "ExistenceCheck",
    "FunctionalityCheck",
    "TestsCheck",
    "IntegrationCheck",
    "HallucinationCheck",
    "PerformanceCheck",
    "get_default_checks",
    "extract_file_paths",
    "extract_references",
    "find_contradictions",
]
