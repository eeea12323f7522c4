"""
Task Verification CLI

Command-line interface for verifying tasks and reading verification reports.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from . import __version__
from .errors import ReportError
from .logging_config import setup_logging
from .main import ManagerConfig, Task
from .manager import TaskVerificationManager
from .output.console import ConsoleFormatter, OutputLevel
from .reports import ReportStore

DEFAULT_CONFIG_FILE = "task-verification.yml"

DEFAULT_CONFIG = """# Task Verification Configuration

# Manager settings
auto_verify: true
block_on_failure: true
retry_on_failure: true
max_retries: 3
verification_threshold: 80
retry_delay_ms: 1000  # multiplied by the attempt number
autofix_severities:
  - critical

# Verification engine
agent:
  workspace_path: .
  strict_mode: true  # pass threshold 80, or 60 when false
  timeout_ms: 30000
  lint_timeout_ms: 10000
  behavior_timeout_ms: 10000
  endpoint_timeout_ms: 5000
  build_command: npm run build
  lint_command: npm run lint
  lint_fix_command: npm run lint -- --fix
  test_runner_command: npm test -- {directory}
  report_path: ./verification-reports
  write_reports: true
"""


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog="task-verification",
        description="Task Verification - verify that completed tasks are actually done",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Verify command
    verify_parser = subparsers.add_parser("verify", help="Verify tasks from a YAML file")
    verify_parser.add_argument("task_file", help="YAML file with a task or a list of tasks")
    verify_parser.add_argument("--workspace", "-w", help="Workspace to verify against")
    verify_parser.add_argument(
        "--max-retries",
        type=int,
        help="Maximum verification attempts per task",
    )
    verify_parser.add_argument(
        "--lenient",
        action="store_true",
        help="Use the lenient pass threshold (60 instead of 80)",
    )

    # Report command
    report_parser = subparsers.add_parser("report", help="Show stored verification reports")
    report_parser.add_argument("verification_id", nargs="?", help="Report to show (lists reports if omitted)")
    report_parser.add_argument("--json", action="store_true", help="Print raw JSON")

    # Status command
    status_parser = subparsers.add_parser("status", help="Summarize stored verification reports")
    status_parser.add_argument("--task-id", help="Show the latest verification of one task")

    # Config command
    config_parser = subparsers.add_parser("config", help="Show/initialize configuration")
    config_parser.add_argument("--show", action="store_true", help="Show current config")
    config_parser.add_argument("--init", action="store_true", help="Initialize config file")

    # Global options
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase verbosity",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Quiet mode",
    )
    parser.add_argument(
        "--log-file",
        help="Log to file",
    )
    parser.add_argument(
        "--config",
        help="Config file path",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ManagerConfig:
    """Config file if given (or present in the working directory), else environment"""
    if args.config:
        return ManagerConfig.from_yaml(args.config)
    if Path(DEFAULT_CONFIG_FILE).exists():
        return ManagerConfig.from_yaml(DEFAULT_CONFIG_FILE)
    return ManagerConfig.from_env()


def load_tasks(path: str) -> List[Task]:
    """Tasks from a YAML file: a single mapping, a list, or a mapping with 'tasks'"""
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    if isinstance(data, dict) and "tasks" in data:
        data = data["tasks"]
    if isinstance(data, dict):
        data = [data]

    return [Task.from_dict(item) for item in data]


async def run_verify(args: argparse.Namespace, formatter: ConsoleFormatter) -> int:
    """Queue every task and wait for the drain"""
    config = load_config(args)
    config.auto_verify = True

    if args.workspace:
        config.agent.workspace_path = Path(args.workspace)
    if args.max_retries is not None:
        config.max_retries = args.max_retries
    if args.lenient:
        config.agent.strict_mode = False

    tasks = load_tasks(args.task_file)
    if not tasks:
        print(f"No tasks in {args.task_file}", file=sys.stderr)
        return 1

    manager = TaskVerificationManager(config=config)
    formatter.attach(manager)

    task_ids = [await manager.queue_task_for_verification(task) for task in tasks]
    await manager.wait_until_idle()

    if formatter.level > OutputLevel.QUIET:
        formatter.summary(manager.get_statistics())

    verified = all(manager.get_verification_status(t).verified for t in task_ids)
    return 0 if verified else 1


def show_report(args: argparse.Namespace, formatter: ConsoleFormatter) -> int:
    """Show one stored report or list the stored report ids"""
    config = load_config(args)
    store = ReportStore(config.agent.report_path)

    if not args.verification_id:
        for verification_id in store.list_ids():
            print(verification_id)
        return 0

    try:
        report = store.load(args.verification_id)
    except ReportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        formatter.report(report)
    return 0


def show_status(args: argparse.Namespace, formatter: ConsoleFormatter) -> int:
    """Summarize stored reports, or show the latest report for one task"""
    config = load_config(args)
    store = ReportStore(config.agent.report_path)

    reports = []
    for verification_id in store.list_ids():
        try:
            reports.append(store.load(verification_id))
        except ReportError as e:
            print(f"Skipping unreadable report: {e}", file=sys.stderr)

    if args.task_id:
        task_reports = [r for r in reports if r.get("task_id") == args.task_id]
        if not task_reports:
            print(f"Task not found: {args.task_id}")
            return 1
        formatter.report(max(task_reports, key=lambda r: r.get("started_at", "")))
        return 0

    counts = {"passed": 0, "failed": 0, "error": 0}
    for report in reports:
        status = report.get("status", "error")
        counts[status] = counts.get(status, 0) + 1

    print(f"Reports:  {len(reports)}")
    print(f"Tasks:    {len({r.get('task_id') for r in reports})}")
    for status, count in counts.items():
        print(f"{status.capitalize() + ':':<9} {count}")
    return 0


def show_config(args: argparse.Namespace) -> int:
    """Show or initialize configuration"""
    if args.init:
        config_path = Path(args.config or DEFAULT_CONFIG_FILE)
        if config_path.exists():
            print(f"Config already exists: {config_path}")
            return 1

        config_path.write_text(DEFAULT_CONFIG)
        print(f"Created config: {config_path}")
        return 0

    if args.show:
        config = load_config(args)
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    print("Use --show or --init")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)

    log_level = "DEBUG" if args.verbose >= 2 else ("INFO" if args.verbose >= 1 else "WARNING")
    if args.quiet:
        log_level = "ERROR"

    setup_logging(
        level=log_level,
        log_file=args.log_file,
        use_colors=not args.no_color,
    )

    output_level = OutputLevel.DEBUG if args.verbose >= 2 else (
        OutputLevel.VERBOSE if args.verbose >= 1 else (
            OutputLevel.QUIET if args.quiet else OutputLevel.NORMAL
        )
    )
    formatter = ConsoleFormatter(level=output_level, use_colors=not args.no_color)

    try:
        if args.command == "verify":
            return asyncio.run(run_verify(args, formatter))
        elif args.command == "report":
            return show_report(args, formatter)
        elif args.command == "status":
            return show_status(args, formatter)
        elif args.command == "config":
            return show_config(args)
    except (OSError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Use --help for usage information")
    return 1


if __name__ == "__main__":
    sys.exit(main())
