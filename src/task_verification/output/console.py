"""
Console Output Formatter

Colored console output for verification progress and results.
"""

import sys
from datetime import datetime
from typing import Any, Dict, List, Optional, TextIO

from .base import BaseFormatter, OutputLevel
from ..autofix import FixResult
from ..main import Task
from ..manager import Events, TaskVerificationManager
from ..verification.records import Recommendation, VerificationOutcome


class ConsoleFormatter(BaseFormatter):
    """
    Console formatter with colored output.

    Uses ANSI escape codes for colors in terminal environments.
    Falls back to plain text when not in a TTY.
    """

    COLORS = {
        "reset": "\033[0m",
        "bold": "\033[1m",
        "dim": "\033[2m",
        "green": "\033[32m",
        "yellow": "\033[33m",
        "red": "\033[31m",
        "blue": "\033[34m",
        "cyan": "\033[36m",
        "magenta": "\033[35m",
    }

    SEVERITY_COLORS = {
        "critical": "red",
        "high": "yellow",
        "medium": "cyan",
    }

    def __init__(
        self,
        level: OutputLevel = OutputLevel.NORMAL,
        use_colors: bool = True,
        stream: Optional[TextIO] = None,
    ):
        super().__init__(level)
        self.stream = stream or sys.stdout
        self.use_colors = use_colors and hasattr(self.stream, "isatty") and self.stream.isatty()

    def _c(self, color: str, text: str) -> str:
        """Apply color to text"""
        if self.use_colors:
            return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"
        return text

    def _print(self, line: str = "") -> None:
        print(line, file=self.stream)

    def _timestamp(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def attach(self, manager: TaskVerificationManager) -> None:
        """Subscribe to the manager's events"""
        manager.on(Events.VERIFICATION_START, self._on_start)
        manager.on(Events.VERIFICATION_SUCCESS, self._on_result)
        manager.on(Events.VERIFICATION_FAILED, self._on_result)
        manager.on(Events.TASK_BLOCKED, self._on_blocked)
        manager.on(Events.AUTOFIX_APPLIED, self._on_autofix)

    def _on_start(self, event: str, task: Task, attempt: int = 1, **kwargs) -> None:
        self.verification_started(task, attempt)

    def _on_result(self, event: str, task: Task, result: VerificationOutcome, **kwargs) -> None:
        self.verification_result(task, result)

    def _on_blocked(self, event: str, task: Task, reason: str = "", recommendations=None, **kwargs) -> None:
        self.task_blocked(task, reason, recommendations or [])

    def _on_autofix(self, event: str, task: Task, fix: FixResult, **kwargs) -> None:
        self.autofix(task, fix)

    def verification_started(self, task: Task, attempt: int) -> None:
        if self.level < OutputLevel.NORMAL:
            return

        ts = self._c("dim", f"[{self._timestamp()}]")
        task_id = self._c("cyan", task.id or "-")
        self._print(f"{self._c('blue', '◔')} {ts} {task_id} verification attempt {attempt}")

        if self.level >= OutputLevel.VERBOSE and task.description:
            self._print(f"  {self._c('dim', 'Task:')} {task.description}")

    def verification_result(self, task: Task, outcome: VerificationOutcome) -> None:
        if outcome.verified:
            symbol = self._c("green", "✓")
            status = self._c("green", "VERIFIED")
        else:
            symbol = self._c("red", "✗")
            status = self._c("red", "VERIFICATION FAILED")

        self._print(f"{symbol} {task.id} {status} ({outcome.confidence:.2f}% confidence)")

        if outcome.error:
            self._print(f"  {self._c('red', 'Error:')} {outcome.error}")

        if self.level >= OutputLevel.VERBOSE:
            for check in outcome.record.checks:
                mark = self._c("green", "✓") if check.passed else self._c("red", "✗")
                self._print(f"    {mark} {check.name:<14} {check.score:g}/{check.max_score:g}")

        for rec in outcome.recommendations:
            self._recommendation(rec)

    def _recommendation(self, rec: Recommendation) -> None:
        color = self.SEVERITY_COLORS.get(rec.severity.value, "dim")
        self._print(f"  {self._c(color, rec.severity.value.upper())} {rec.message}")

        if self.level >= OutputLevel.VERBOSE:
            for detail in rec.details[:5]:
                text = detail.get("issue") or detail.get("reason") or detail.get("description")
                if not text:
                    text = ", ".join(f"{k}={v}" for k, v in detail.items())
                self._print(f"    {self._c('dim', '-')} {text}")

    def task_blocked(self, task: Task, reason: str, recommendations: List[Recommendation]) -> None:
        self._print(f"{self._c('yellow', '⊘')} {task.id} {self._c('yellow', 'BLOCKED')}: {reason}")

    def autofix(self, task: Task, fix: FixResult) -> None:
        if self.level < OutputLevel.NORMAL:
            return
        self._print(f"  {self._c('magenta', '🔧')} auto-fix {fix.kind.value} applied for {task.id}")

        if self.level >= OutputLevel.VERBOSE:
            for key, value in fix.details.items():
                self._print(f"    {self._c('dim', '-')} {key}: {value}")

    def report(self, report: Dict[str, Any]) -> None:
        status = report.get("status", "unknown")
        color = {"passed": "green", "failed": "red", "error": "red"}.get(status, "dim")

        self._print(self._c("bold", f"Verification {report.get('id')}"))
        self._print(f"  Task:       {report.get('task_id')}")
        self._print(f"  Status:     {self._c(color, status.upper())}")
        self._print(f"  Confidence: {report.get('confidence', 0):.2f}%")
        self._print(f"  Score:      {report.get('score', 0):g}/{report.get('max_score', 0):g}")
        self._print(f"  Duration:   {report.get('duration_ms', 0)}ms")

        if report.get("error"):
            self._print(f"  {self._c('red', 'Error:')} {report['error']}")

        self._print(f"\n  {self._c('bold', 'Checks:')}")
        for check in report.get("checks", []):
            mark = self._c("green", "✓") if check.get("passed") else self._c("red", "✗")
            line = f"    {mark} {check.get('name', ''):<14} {check.get('score', 0):g}/{check.get('max_score', 0):g}"
            if check.get("error"):
                line = f"{line} {self._c('red', check['error'])}"
            self._print(line)

        recommendations = report.get("recommendations", [])
        if recommendations:
            self._print(f"\n  {self._c('bold', 'Recommendations:')}")
            for rec in recommendations:
                color = self.SEVERITY_COLORS.get(rec.get("severity"), "dim")
                self._print(f"    {self._c(color, rec.get('severity', '').upper())} {rec.get('message')}")

    def summary(self, stats: Dict[str, Any]) -> None:
        """Format manager statistics"""
        agent = stats.get("agent", {})
        rate = stats.get("verification_rate")

        self._print()
        self._print(self._c("bold", "═" * 50))
        self._print(self._c("bold", "  VERIFICATION SUMMARY"))
        self._print(self._c("bold", "═" * 50))

        self._print(f"\n  {self._c('bold', 'Tasks:')}")
        self._print(f"    Verified:  {self._c('green', str(stats.get('verified', 0)))}")
        self._print(f"    Failed:    {self._c('red', str(stats.get('failed', 0)))}")
        self._print(f"    Blocked:   {self._c('yellow', str(stats.get('blocked', 0)))}")
        self._print(f"    Queued:    {stats.get('queued', 0)}")
        self._print(f"    Rate:      {'N/A' if rate is None else f'{rate:.1f}%'}")

        self._print(f"\n  {self._c('bold', 'Attempts:')}")
        self._print(f"    Total:              {agent.get('total', 0)}")
        self._print(f"    Errors:             {agent.get('errors', 0)}")
        self._print(f"    Avg confidence:     {agent.get('avg_confidence', 0):.1f}%")
        self._print(f"    Hallucinations:     {agent.get('hallucinations_detected', 0)}")

        self._print()
        self._print(self._c("bold", "═" * 50))
