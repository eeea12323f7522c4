"""
Automatic Remediation

Bounded fixes attempted between verification retries. A recommendation's
action maps to exactly one RemediationKind; actions without a remediation
map to UNSUPPORTED and produce a no-op fix.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from .errors import AutoFixError
from .main import AgentConfig, RecommendationAction, Task
from .runner import CommandRunner
from .safety import SafetyChecker
from .verification.records import Recommendation

logger = logging.getLogger(__name__)


class RemediationKind(Enum):
    """Remediations the fixer knows how to apply"""
    CREATE_MISSING_RESOURCES = "create_missing_resources"
    LINT_AUTOFIX = "lint_autofix"
    UNSUPPORTED = "unsupported"


@dataclass
class FixResult:
    """Outcome of one auto-fix attempt"""
    kind: RemediationKind
    action: RecommendationAction
    success: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "action": self.action.value,
            "success": self.success,
            "details": self.details,
        }


def remediation_for(recommendation: Recommendation) -> RemediationKind:
    """Select the remediation for a recommendation"""
    action = recommendation.action

    if action is RecommendationAction.CREATE_MISSING_RESOURCES:
        return RemediationKind.CREATE_MISSING_RESOURCES

    if action is RecommendationAction.FIX_BUILD_LINT:
        if any(d.get("lint") == "failed" for d in recommendation.details):
            return RemediationKind.LINT_AUTOFIX
        return RemediationKind.UNSUPPORTED

    if action in (
        RecommendationAction.DEBUG_IMPLEMENTATION,
        RecommendationAction.ADD_TESTS,
        RecommendationAction.VERIFY_CLAIMS,
        RecommendationAction.OPTIMIZE_PERFORMANCE,
    ):
        return RemediationKind.UNSUPPORTED

    raise ValueError(f"Unknown recommendation action: {action}")


def placeholder_content(file_path: str, task: Task) -> str:
    """Minimal body for a created file, chosen by extension"""
    path = Path(file_path)
    extension = path.suffix.lower()
    summary = (task.description or "").strip().splitlines()
    summary = summary[0] if summary else f"task {task.id}"

    if extension == ".py":
        return f'"""Auto-generated for: {summary}"""\n'
    if extension in (".js", ".jsx", ".cjs"):
        return f"// Auto-generated file for: {summary}\n\nmodule.exports = {{}};\n"
    if extension in (".ts", ".tsx", ".mjs"):
        return f"// Auto-generated file for: {summary}\n\nexport {{}};\n"
    if extension == ".json":
        return "{}\n"
    if extension in (".yml", ".yaml"):
        return f"# Auto-generated for: {summary}\n"
    if extension == ".md":
        return f"# {path.stem}\n\nAuto-generated for: {summary}\n"
    return ""


class AutoFixer:
    """Applies remediations inside the workspace"""

    def __init__(
        self,
        config: AgentConfig,
        runner: CommandRunner,
        safety: SafetyChecker = None,
    ):
        self.config = config
        self.runner = runner
        self.safety = safety or SafetyChecker(config.workspace_path)

    async def apply(self, recommendation: Recommendation, task: Task) -> FixResult:
        """
        Apply the remediation for one recommendation.

        Raises:
            AutoFixError: the remediation could not run at all
        """
        kind = remediation_for(recommendation)
        fix = FixResult(kind=kind, action=recommendation.action)

        if kind is RemediationKind.CREATE_MISSING_RESOURCES:
            self._create_missing_resources(recommendation, task, fix)
        elif kind is RemediationKind.LINT_AUTOFIX:
            await self._lint_autofix(fix)
        else:
            fix.details["message"] = "No auto-fix available"

        logger.info(
            f"Auto-fix {kind.value} for task {task.id}: "
            f"{'applied' if fix.success else 'not applied'}"
        )
        return fix

    def _create_missing_resources(
        self,
        recommendation: Recommendation,
        task: Task,
        fix: FixResult,
    ) -> None:
        for detail in recommendation.details:
            if detail.get("exists") is not False:
                continue

            if "file" in detail:
                path = detail["file"]
                try:
                    self._create_file(path, task)
                except AutoFixError as e:
                    fix.details[path] = f"failed: {e}"
                else:
                    fix.details[path] = "created"
                    fix.success = True

            elif "directory" in detail:
                path = detail["directory"]
                try:
                    self._create_directory(path)
                except AutoFixError as e:
                    fix.details[path] = f"failed: {e}"
                else:
                    fix.details[path] = "created"
                    fix.success = True

    def _resolve(self, path: str) -> Path:
        safety = self.safety.check_path(path)
        if not safety.safe:
            raise AutoFixError(f"{safety.reason}: {path}")

        target = Path(path)
        if target.is_absolute():
            return target
        return self.config.workspace_path / target

    def _create_file(self, path: str, task: Task) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if not target.exists():
                target.write_text(placeholder_content(path, task))
        except OSError as e:
            raise AutoFixError(str(e)) from e

    def _create_directory(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AutoFixError(str(e)) from e

    async def _lint_autofix(self, fix: FixResult) -> None:
        if not self.config.lint_fix_command:
            fix.details["lint"] = "no lint fix command configured"
            return

        command = await self.runner.run(
            self.config.lint_fix_command,
            self.config.lint_timeout_ms,
        )
        if command.ok:
            fix.success = True
            fix.details["lint"] = "auto-fixed"
        else:
            fix.details["lint"] = f"failed: exit code {command.exit_code}"
