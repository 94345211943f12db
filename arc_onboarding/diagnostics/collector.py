"""Azure Arc agent diagnostics collection.

Runs the agent's connectivity check, status and extension listing, then
archives the full agent logs. The archive command runs as a background
task while elapsed time drives a heuristic progress percentage; the
percentage is cosmetic and never decides when collection is done.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from arc_onboarding.core.config import Settings, get_settings
from arc_onboarding.core.logfile import log_success
from arc_onboarding.core.prompts import Prompter
from arc_onboarding.services.agent_cli import AgentCommandResult, AzcmagentClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressPhase:
    """One phase of the progress indicator."""

    label: str
    start_percent: float
    end_percent: float
    duration_seconds: float


PROGRESS_PHASES = (
    ProgressPhase("Gathering agent configuration", 0, 20, 5),
    ProgressPhase("Collecting agent logs", 20, 60, 20),
    ProgressPhase("Collecting extension logs", 60, 85, 15),
    ProgressPhase("Compressing archive", 85, 100, 10),
)

# Never report completion before the archive task has finished
MAX_RUNNING_PERCENT = 99.0


def estimate_progress(elapsed_seconds: float) -> tuple[float, str]:
    """Heuristic progress for an elapsed time.

    Returns:
        (percent, phase label), percent capped below 100
    """
    remaining = max(elapsed_seconds, 0.0)
    for phase in PROGRESS_PHASES:
        if remaining < phase.duration_seconds:
            fraction = remaining / phase.duration_seconds
            percent = phase.start_percent + fraction * (phase.end_percent - phase.start_percent)
            return min(percent, MAX_RUNNING_PERCENT), phase.label
        remaining -= phase.duration_seconds
    return MAX_RUNNING_PERCENT, PROGRESS_PHASES[-1].label


@dataclass
class DiagnosticsStep:
    name: str
    result: AgentCommandResult

    @property
    def success(self) -> bool:
        return self.result.success


@dataclass
class DiagnosticsResult:
    """Outcome of a diagnostics collection run."""

    steps: list[DiagnosticsStep] = field(default_factory=list)
    archive_path: Path | None = None
    logs_collected: bool = False
    consent_given: bool = True

    @property
    def success(self) -> bool:
        return self.logs_collected and all(step.success for step in self.steps)

    @property
    def failed_steps(self) -> list[DiagnosticsStep]:
        return [step for step in self.steps if not step.success]


class DiagnosticsCollector:
    """Collect azcmagent diagnostics and the full log archive."""

    def __init__(
        self,
        agent: AzcmagentClient | None = None,
        settings: Settings | None = None,
        prompter: Prompter | None = None,
        progress_callback: Callable[[float, str], None] | None = None,
        poll_interval: float = 1.0,
    ):
        self.settings = settings or get_settings()
        self.agent = agent or AzcmagentClient(self.settings)
        self.prompter = prompter or Prompter(interactive=not self.settings.non_interactive)
        self.progress_callback = progress_callback
        self.poll_interval = poll_interval

    def archive_path(self, output_dir: str | Path, now: datetime | None = None) -> Path:
        now = now or datetime.now()
        return Path(output_dir) / f"AzureArcDiagnostics_{now.strftime('%Y%m%d_%H%M%S')}.zip"

    async def collect(
        self, location: str | None = None, output_dir: str | Path | None = None
    ) -> DiagnosticsResult:
        """Run the diagnostic sequence and archive the agent logs.

        Each step is recorded; a failing step does not stop the sequence.

        Args:
            location: Azure region for the connectivity check
            output_dir: Directory for the log archive

        Returns:
            DiagnosticsResult with every step and the archive path
        """
        location = location or self.settings.arc_location
        result = DiagnosticsResult()

        for name, command in (
            ("Connectivity check", lambda: self.agent.check(location)),
            ("Agent status", self.agent.show),
            ("Extension list", self.agent.extension_list),
        ):
            step_result = await command()
            result.steps.append(DiagnosticsStep(name=name, result=step_result))
            if step_result.success:
                log_success(logger, f"{name} completed")
            else:
                logger.error(f"{name} failed with exit code {step_result.exit_code}")

        if not self.prompter.confirm(
            "Collect the full agent log archive? It may contain machine configuration details",
            default=True,
        ):
            logger.info("Log archive collection declined")
            result.consent_given = False
            return result

        output = Path(output_dir or self.settings.diagnostics_output_dir)
        output.mkdir(parents=True, exist_ok=True)
        archive = self.archive_path(output)

        logs_result = await self._run_with_progress(self.agent.logs(archive))
        result.steps.append(DiagnosticsStep(name="Log archive", result=logs_result))
        if logs_result.success:
            result.archive_path = archive
            result.logs_collected = True
            log_success(logger, f"Diagnostic logs saved to {archive}")
        else:
            logger.error(f"Log collection failed with exit code {logs_result.exit_code}")

        return result

    async def _run_with_progress(self, coro) -> AgentCommandResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        task = asyncio.create_task(coro)

        while not task.done():
            if self.progress_callback:
                percent, label = estimate_progress(loop.time() - started)
                self.progress_callback(percent, label)
            await asyncio.wait({task}, timeout=self.poll_interval)

        if self.progress_callback:
            self.progress_callback(100.0, "Complete")
        return task.result()
