"""
Configuration and Types for Task Verification

Tasks, their declared verification hints, and the configuration of the
verification engine and the verification manager.
"""

import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class CheckType(Enum):
    """Verification check dimensions, in pipeline order"""
    EXISTENCE = "existence"
    FUNCTIONALITY = "functionality"
    TESTS = "tests"
    INTEGRATION = "integration"
    HALLUCINATION = "hallucination"
    PERFORMANCE = "performance"


class VerificationStatus(Enum):
    """Status of a single verification attempt"""
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


class Severity(Enum):
    """Recommendation severity"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class OutcomeStatus(Enum):
    """Latest outcome recorded by the manager for a task"""
    VERIFIED = "verified"
    FAILED = "failed"


class RecommendationAction(Enum):
    """Suggested remediation for a failed check"""
    CREATE_MISSING_RESOURCES = "create_missing_resources"
    DEBUG_IMPLEMENTATION = "debug_implementation"
    ADD_TESTS = "add_tests"
    FIX_BUILD_LINT = "fix_build_lint"
    VERIFY_CLAIMS = "verify_claims"
    OPTIMIZE_PERFORMANCE = "optimize_performance"


# =========================================================================
# Task Hints
# =========================================================================

@dataclass
class Endpoint:
    """HTTP endpoint to probe"""
    url: str
    method: str = "GET"

    @classmethod
    def from_value(cls, value: Any) -> "Endpoint":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(url=value)
        return cls(url=value["url"], method=value.get("method", "GET"))


@dataclass
class Behavior:
    """Declared behavior with an optional check script"""
    name: str
    test_script: Optional[str] = None
    expected_output: str = "success"

    @classmethod
    def from_value(cls, value: Any) -> "Behavior":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(name=value)
        return cls(
            name=value["name"],
            test_script=value.get("test_script"),
            expected_output=value.get("expected_output", "success"),
        )


@dataclass
class PerformanceRequirement:
    """
    Upper bound on a named metric.

    When a command is given, the metric is the command's wall-clock
    duration in milliseconds.
    """
    name: str
    threshold: float
    command: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> "PerformanceRequirement":
        if isinstance(value, cls):
            return value
        return cls(
            name=value["name"],
            threshold=float(value["threshold"]),
            command=value.get("command"),
        )


@dataclass
class Claim:
    """A claim made about the finished work, with its own validation metadata"""
    description: str
    impossible: bool = False
    contradictory: bool = False
    validation_error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return not self.impossible and not self.contradictory

    @classmethod
    def from_value(cls, value: Any) -> "Claim":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(description=value)
        return cls(
            description=value["description"],
            impossible=bool(value.get("impossible", False)),
            contradictory=bool(value.get("contradictory", False)),
            validation_error=value.get("validation_error"),
        )


@dataclass
class VerificationMetadata:
    """Metadata attached to a task when it is queued for verification"""
    required_checks: List[str] = field(
        default_factory=lambda: [
            CheckType.EXISTENCE.value,
            CheckType.FUNCTIONALITY.value,
            CheckType.TESTS.value,
            CheckType.INTEGRATION.value,
        ]
    )
    expected_files: List[str] = field(default_factory=list)
    expected_directories: List[str] = field(default_factory=list)
    test_command: Optional[str] = None
    endpoints: List[Endpoint] = field(default_factory=list)
    behaviors: List[Behavior] = field(default_factory=list)
    performance_requirements: List[PerformanceRequirement] = field(default_factory=list)
    claims: List[Claim] = field(default_factory=list)
    enriched_at: datetime = field(default_factory=datetime.now)


@dataclass
class Task:
    """
    A unit of claimed work submitted for verification.

    The caller owns every field except ``queued_at`` and
    ``verification_metadata``, which the manager attaches on a copy.
    """
    id: Optional[str] = None
    description: str = ""

    # Verification hints
    files: List[str] = field(default_factory=list)
    directories: List[str] = field(default_factory=list)
    test_command: Optional[str] = None
    test_directory: Optional[str] = None
    endpoints: List[Endpoint] = field(default_factory=list)
    behaviors: List[Behavior] = field(default_factory=list)
    performance_requirements: List[PerformanceRequirement] = field(default_factory=list)
    claims: List[Claim] = field(default_factory=list)
    requires_build: bool = True

    metadata: Dict[str, Any] = field(default_factory=dict)

    # Attached by the manager
    queued_at: Optional[datetime] = None
    verification_metadata: Optional[VerificationMetadata] = None

    @property
    def has_hints(self) -> bool:
        return bool(
            self.files or self.directories or self.test_command
            or self.test_directory or self.endpoints or self.behaviors
            or self.performance_requirements or self.claims
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Build a task from a plain mapping (YAML/JSON task files)"""
        return cls(
            id=data.get("id"),
            description=data.get("description", ""),
            files=list(data.get("files", [])),
            directories=list(data.get("directories", [])),
            test_command=data.get("test_command"),
            test_directory=data.get("test_directory"),
            endpoints=[Endpoint.from_value(e) for e in data.get("endpoints", [])],
            behaviors=[Behavior.from_value(b) for b in data.get("behaviors", [])],
            performance_requirements=[
                PerformanceRequirement.from_value(p)
                for p in data.get("performance_requirements", [])
            ],
            claims=[Claim.from_value(c) for c in data.get("claims", [])],
            requires_build=data.get("requires_build", True),
            metadata=dict(data.get("metadata", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        data = asdict(self)
        data["queued_at"] = self.queued_at.isoformat() if self.queued_at else None
        if self.verification_metadata:
            data["verification_metadata"]["enriched_at"] = (
                self.verification_metadata.enriched_at.isoformat()
            )
        return data


# =========================================================================
# Configuration
# =========================================================================

def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


@dataclass
class AgentConfig:
    """Configuration for the verification engine"""
    workspace_path: Path = field(
        default_factory=lambda: Path(os.getenv("WORKSPACE_PATH", "."))
    )

    # Verdict
    strict_mode: bool = True
    pass_threshold: Optional[float] = None  # None = 80 strict / 60 lenient

    # Timeouts
    timeout_ms: int = 30000
    lint_timeout_ms: int = 10000
    behavior_timeout_ms: int = 10000
    endpoint_timeout_ms: int = 5000
    search_timeout_ms: int = 10000

    # External tools (None = not applicable)
    build_command: Optional[str] = "npm run build"
    lint_command: Optional[str] = "npm run lint"
    lint_fix_command: Optional[str] = "npm run lint -- --fix"
    test_runner_command: Optional[str] = "npm test -- {directory}"
    success_markers: List[str] = field(
        default_factory=lambda: ["passed", "passing", "PASS"]
    )

    # Discovery
    test_file_patterns: List[str] = field(
        default_factory=lambda: [
            "*.test.js", "*.spec.js", "*.test.ts", "*.spec.ts",
            "test_*.py", "*_test.py",
        ]
    )
    search_globs: List[str] = field(default_factory=lambda: ["*.py", "*.js", "*.ts"])
    ignored_dirs: List[str] = field(
        default_factory=lambda: [".git", "node_modules", "__pycache__", ".venv"]
    )

    # Reports
    report_path: Path = field(
        default_factory=lambda: Path(os.getenv("VERIFICATION_REPORT_PATH", "./verification-reports"))
    )
    write_reports: bool = True

    def __post_init__(self):
        self.workspace_path = Path(self.workspace_path)
        self.report_path = Path(self.report_path)

    @property
    def threshold(self) -> float:
        """Confidence needed for a passing verdict"""
        if self.pass_threshold is not None:
            return float(self.pass_threshold)
        return 80.0 if self.strict_mode else 60.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentConfig":
        return cls(**data)

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load config from environment variables"""
        config = cls(
            strict_mode=_env_bool("TV_STRICT_MODE", True),
            timeout_ms=int(os.getenv("TV_TIMEOUT_MS", "30000")),
            write_reports=_env_bool("TV_WRITE_REPORTS", True),
        )
        if os.getenv("TV_PASS_THRESHOLD"):
            config.pass_threshold = float(os.environ["TV_PASS_THRESHOLD"])
        return config

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["workspace_path"] = str(self.workspace_path)
        data["report_path"] = str(self.report_path)
        return data


@dataclass
class ManagerConfig:
    """
    Configuration for the verification manager.

    Controls queueing, retries, blocking and auto-fix behavior.
    """
    auto_verify: bool = True
    block_on_failure: bool = True
    retry_on_failure: bool = True
    max_retries: int = 3
    verification_threshold: float = 80.0
    retry_delay_ms: int = 1000  # multiplied by the attempt number
    autofix_severities: List[str] = field(
        default_factory=lambda: [Severity.CRITICAL.value]
    )

    agent: AgentConfig = field(default_factory=AgentConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManagerConfig":
        data = dict(data)
        agent_data = data.pop("agent", None) or {}
        return cls(agent=AgentConfig.from_dict(agent_data), **data)

    @classmethod
    def from_yaml(cls, path: str) -> "ManagerConfig":
        """Load config from YAML file"""
        import yaml

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "ManagerConfig":
        """Load config from environment variables"""
        return cls(
            auto_verify=_env_bool("TV_AUTO_VERIFY", True),
            block_on_failure=_env_bool("TV_BLOCK_ON_FAILURE", True),
            retry_on_failure=_env_bool("TV_RETRY_ON_FAILURE", True),
            max_retries=int(os.getenv("TV_MAX_RETRIES", "3")),
            verification_threshold=float(os.getenv("TV_VERIFICATION_THRESHOLD", "80")),
            retry_delay_ms=int(os.getenv("TV_RETRY_DELAY_MS", "1000")),
            agent=AgentConfig.from_env(),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["agent"] = self.agent.to_dict()
        return data
