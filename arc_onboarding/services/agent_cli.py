"""Wrapper for the azcmagent command-line tool.

Exit code 0 means success; any other code is a failure that is reported,
never retried. A missing executable maps to 127 and a timeout to -1.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from arc_onboarding.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = -1


@dataclass
class AgentCommandResult:
    """Outcome of one azcmagent invocation."""

    args: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def command(self) -> str:
        return " ".join(("azcmagent",) + self.args)


class AzcmagentClient:
    """Run azcmagent verbs as asyncio subprocesses."""

    def __init__(self, settings: Settings | None = None, executable: str | None = None):
        self.settings = settings or get_settings()
        self.executable = executable or self.settings.azcmagent_path

    async def run(self, *args: str, timeout: float | None = None) -> AgentCommandResult:
        """Run ``azcmagent <args>`` and capture its output."""
        timeout = timeout or self.settings.check_timeout_seconds
        loop = asyncio.get_running_loop()
        started = loop.time()
        logger.info(f"Running azcmagent {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error(f"azcmagent executable not found: {self.executable}")
            return AgentCommandResult(
                args=args,
                exit_code=EXIT_NOT_FOUND,
                stderr=f"{self.executable} not found",
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.error(f"azcmagent {' '.join(args)} timed out after {timeout}s")
            return AgentCommandResult(
                args=args,
                exit_code=EXIT_TIMEOUT,
                stderr=f"Timed out after {timeout:.0f} seconds",
                duration_seconds=loop.time() - started,
            )

        result = AgentCommandResult(
            args=args,
            exit_code=process.returncode if process.returncode is not None else EXIT_TIMEOUT,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_seconds=loop.time() - started,
        )
        if not result.success:
            logger.warning(f"{result.command} exited with code {result.exit_code}")
        return result

    async def check(self, location: str) -> AgentCommandResult:
        return await self.run("check", "--location", location)

    async def show(self) -> AgentCommandResult:
        return await self.run("show")

    async def extension_list(self) -> AgentCommandResult:
        return await self.run("extension", "list")

    async def logs(self, output_path: str | Path, timeout: float | None = None) -> AgentCommandResult:
        """Archive the full agent logs into a zip file."""
        return await self.run(
            "logs",
            "--full",
            "--output",
            str(output_path),
            timeout=timeout or self.settings.diagnostics_timeout_seconds,
        )
