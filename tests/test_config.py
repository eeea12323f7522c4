"""
Tests for configuration and task parsing
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from task_verification.main import (
    AgentConfig,
    Behavior,
    Claim,
    Endpoint,
    ManagerConfig,
    PerformanceRequirement,
    Task,
)


class TestAgentConfig:
    """Tests for AgentConfig"""

    def test_strict_threshold(self):
        assert AgentConfig().threshold == 80

    def test_lenient_threshold(self):
        assert AgentConfig(strict_mode=False).threshold == 60

    def test_threshold_override(self):
        assert AgentConfig(strict_mode=False, pass_threshold=72.5).threshold == 72.5

    def test_paths_are_coerced(self):
        config = AgentConfig(workspace_path="/srv/app", report_path="out")
        assert config.workspace_path == Path("/srv/app")
        assert config.report_path == Path("out")

    def test_from_env(self):
        env = {
            "WORKSPACE_PATH": "/srv/app",
            "TV_STRICT_MODE": "false",
            "TV_TIMEOUT_MS": "5000",
            "TV_PASS_THRESHOLD": "70",
        }
        with patch.dict("os.environ", env):
            config = AgentConfig.from_env()

        assert config.workspace_path == Path("/srv/app")
        assert not config.strict_mode
        assert config.timeout_ms == 5000
        assert config.threshold == 70


class TestManagerConfig:
    """Tests for ManagerConfig"""

    def test_defaults(self):
        config = ManagerConfig()
        assert config.auto_verify
        assert config.block_on_failure
        assert config.retry_on_failure
        assert config.max_retries == 3
        assert config.verification_threshold == 80
        assert config.autofix_severities == ["critical"]

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(
            "max_retries: 5\n"
            "retry_delay_ms: 250\n"
            "agent:\n"
            "  strict_mode: false\n"
            "  build_command: make\n"
            "  lint_command: null\n"
        )

        config = ManagerConfig.from_yaml(str(path))

        assert config.max_retries == 5
        assert config.retry_delay_ms == 250
        assert config.agent.threshold == 60
        assert config.agent.build_command == "make"
        assert config.agent.lint_command is None

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("")

        assert ManagerConfig.from_yaml(str(path)).max_retries == 3

    def test_unknown_key_is_rejected(self):
        with pytest.raises(TypeError):
            ManagerConfig.from_dict({"max_retrys": 2})

    def test_from_env(self):
        with patch.dict("os.environ", {"TV_MAX_RETRIES": "1", "TV_AUTO_VERIFY": "0"}):
            config = ManagerConfig.from_env()

        assert config.max_retries == 1
        assert not config.auto_verify

    def test_to_dict(self):
        data = ManagerConfig().to_dict()
        assert data["agent"]["strict_mode"] is True
        assert isinstance(data["agent"]["workspace_path"], str)


class TestTask:
    """Tests for Task parsing"""

    def test_from_dict(self):
        task = Task.from_dict({
            "id": "task-7",
            "description": "Add health endpoint",
            "files": ["src/health.js"],
            "endpoints": ["http://localhost:3000/health", {"url": "http://localhost:3000/x", "method": "POST"}],
            "behaviors": ["returns ok", {"name": "status", "test_script": "./s.sh"}],
            "performance_requirements": [{"name": "latency", "threshold": 50, "command": "./bench"}],
            "claims": ["Handles 10k rps", {"description": "Zero latency", "impossible": True}],
            "requires_build": False,
        })

        assert task.endpoints[0] == Endpoint("http://localhost:3000/health")
        assert task.endpoints[1].method == "POST"
        assert task.behaviors[0] == Behavior("returns ok")
        assert task.behaviors[1].test_script == "./s.sh"
        assert task.performance_requirements[0] == PerformanceRequirement("latency", 50.0, "./bench")
        assert task.claims[0].is_valid
        assert not task.claims[1].is_valid
        assert not task.requires_build
        assert task.has_hints

    def test_no_hints(self):
        assert not Task(description="Refactor").has_hints

    def test_to_dict(self):
        data = Task(id="t1", claims=[Claim("x")]).to_dict()
        assert data["claims"] == [
            {"description": "x", "impossible": False, "contradictory": False, "validation_error": None}
        ]
        assert data["queued_at"] is None
