"""
External Command and Endpoint Access

Every interaction with build, lint, test and search tools goes through
CommandRunner; every network probe goes through EndpointProber. Both are
bounded by timeouts and can be replaced in tests.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import httpx

from .errors import CommandError, CommandTimeoutError
from .main import Endpoint

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured output of an external command"""
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def clean(self) -> bool:
        """Exited with 0 and wrote nothing to stderr"""
        return self.exit_code == 0 and not self.stderr.strip()


class CommandRunner:
    """Runs shell commands inside the workspace"""

    def __init__(self, workspace_path: Path, timeout_ms: int = 30000):
        self.workspace_path = Path(workspace_path)
        self.timeout_ms = timeout_ms

    async def run(self, command: str, timeout_ms: Optional[int] = None) -> CommandResult:
        """
        Run a shell command.

        Non-zero exit codes are returned, not raised.

        Raises:
            CommandError: the command could not be started
            CommandTimeoutError: the command exceeded its timeout
        """
        timeout_ms = timeout_ms or self.timeout_ms
        start_time = time.monotonic()

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=str(self.workspace_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CommandError(command, str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise CommandTimeoutError(command, timeout_ms)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug(f"Command '{command}' exited {process.returncode} in {duration_ms}ms")

        return CommandResult(
            command=command,
            exit_code=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
            stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
            duration_ms=duration_ms,
        )

    async def search(
        self,
        text: str,
        include: List[str],
        exclude_dirs: Optional[List[str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> bool:
        """Return True if ``text`` appears in any workspace file matching ``include``"""
        args = ["grep", "-r", "-l", "-F"]
        args += [f"--include={pattern}" for pattern in include]
        args += [f"--exclude-dir={d}" for d in exclude_dirs or []]
        args += ["-e", text, "."]

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(self.workspace_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CommandError("grep", str(e)) from e

        timeout_ms = timeout_ms or self.timeout_ms
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise CommandTimeoutError(f"grep {text}", timeout_ms)

        # grep exits 1 when nothing matched
        return process.returncode == 0 and bool(stdout.strip())


class EndpointProber:
    """Checks that declared HTTP endpoints answer with a success status"""

    def __init__(self, timeout_ms: int = 5000):
        self.timeout_ms = timeout_ms

    async def probe(self, endpoint: Endpoint) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_ms / 1000) as client:
                response = await client.request(endpoint.method.upper(), endpoint.url)
                return response.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Endpoint {endpoint.method} {endpoint.url} unreachable: {e}")
            return False
