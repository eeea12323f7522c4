"""
Safety Checks

Guards automatic remediation so it never writes outside the workspace or
into sensitive locations.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class SafetyCheckResult:
    """Result of a safety check"""
    safe: bool
    reason: str = ""
    blocked_items: List[str] = field(default_factory=list)


class SafetyChecker:
    """
    Validates paths before auto-fix writes to them.

    Prevents:
    - Writes that escape the workspace
    - Writes to secrets, VCS metadata and dependency folders
    """

    # Paths that should never be modified
    FORBIDDEN_PATHS: Set[str] = {
        ".git",
        ".env",
        ".env.local",
        ".env.production",
        "credentials.json",
        "serviceAccountKey.json",
        "secrets/",
        "node_modules/",
        "__pycache__/",
    }

    def __init__(self, workspace_path: Path, forbidden_paths: Optional[Set[str]] = None):
        self.workspace_path = Path(workspace_path).resolve()
        self.forbidden_paths = forbidden_paths or self.FORBIDDEN_PATHS

    def check_path(self, path: str) -> SafetyCheckResult:
        """Check that a path may be created by remediation"""
        target = Path(path)
        if not target.is_absolute():
            target = self.workspace_path / target
        target = target.resolve()

        try:
            relative = target.relative_to(self.workspace_path)
        except ValueError:
            return SafetyCheckResult(
                safe=False,
                reason="Path escapes the workspace",
                blocked_items=[path],
            )

        if self._is_forbidden_path(relative.as_posix()):
            return SafetyCheckResult(
                safe=False,
                reason="Path is protected",
                blocked_items=[path],
            )

        return SafetyCheckResult(safe=True, reason="Path is safe")

    def check_paths(self, paths: List[str]) -> SafetyCheckResult:
        blocked = [p for p in paths if not self.check_path(p).safe]
        if blocked:
            return SafetyCheckResult(
                safe=False,
                reason="Paths escape the workspace or are protected",
                blocked_items=blocked,
            )
        return SafetyCheckResult(safe=True, reason="All paths are safe")

    def _is_forbidden_path(self, path: str) -> bool:
        """Check if a workspace-relative path is forbidden"""
        path_lower = path.lower()
        parts = path_lower.split("/")

        for forbidden in self.forbidden_paths:
            forbidden = forbidden.lower()
            if forbidden.endswith("/"):
                if forbidden.rstrip("/") in parts[:-1] or path_lower.startswith(forbidden):
                    return True
            elif forbidden in parts:
                return True

        return False
