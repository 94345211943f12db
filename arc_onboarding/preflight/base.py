"""Abstract base class for device checks.

A check never raises: timeouts and exceptions become a single Error
result carrying the (redacted) error message.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Protocol

from arc_onboarding.core.config import Settings
from arc_onboarding.preflight.models import (
    CheckResult,
    CheckStatus,
    RunContext,
    ValidationDepth,
)
from arc_onboarding.services.remote import PowerShellOutput, RemoteExecutionError

logger = logging.getLogger(__name__)

SENSITIVE_PATTERN = re.compile(
    r"(password|secret|token|credential|connectionstring)\S*\s*[:=]\s*\S+",
    re.IGNORECASE,
)


class Executor(Protocol):
    """What checks need from a device executor."""

    def is_local(self, device: str) -> bool: ...

    async def probe(self, device: str, port: int, timeout: float) -> tuple[bool, str]: ...

    async def run_powershell(
        self,
        device: str,
        script: str,
        timeout: float | None = None,
        label: str = "script",
    ) -> PowerShellOutput: ...


def sanitize_error_message(error: Exception) -> str:
    """Error text with credential-looking fragments redacted."""
    return SENSITIVE_PATTERN.sub(r"\1=[REDACTED]", str(error)) or type(error).__name__


class BaseDeviceCheck(ABC):
    """Abstract base class for all device checks.

    Subclasses implement ``_execute_check`` and return one or more results.
    """

    #: Depths at which the check runs
    depths: frozenset[ValidationDepth] = frozenset(ValidationDepth)

    def __init__(
        self,
        name: str,
        executor: Executor,
        settings: Settings,
        description: str = "",
        timeout_seconds: float | None = None,
    ):
        """Initialize a device check.

        Args:
            name: Check name from the CheckName taxonomy
            executor: Executor used to reach the device
            settings: Toolkit settings (thresholds, endpoints)
            description: What this check verifies
            timeout_seconds: Timeout for check execution
        """
        self.name = name
        self.executor = executor
        self.settings = settings
        self.description = description
        self.timeout_seconds = timeout_seconds or settings.check_timeout_seconds

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.name})>"

    def applies_to(self, depth: ValidationDepth) -> bool:
        return depth in self.depths

    async def run(self, device: str, context: RunContext) -> list[CheckResult]:
        """Run the check against a device.

        Returns:
            Results of the check; an Error result if the check itself failed
        """
        start_time = datetime.utcnow()

        try:
            results = await asyncio.wait_for(
                self._execute_check(device, context),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            logger.warning(f"Check '{self.name}' timed out on {device} after {self.timeout_seconds}s")
            results = [
                self.result(
                    device,
                    CheckStatus.ERROR,
                    f"Check timed out after {self.timeout_seconds:.0f} seconds",
                    error_code="timeout",
                )
            ]
        except RemoteExecutionError as e:
            logger.warning(f"Check '{self.name}' could not run on {device}: {e.message}")
            results = [
                self.result(
                    device,
                    CheckStatus.ERROR,
                    f"Remote execution failed: {e.message}",
                    error_code=e.error_code,
                )
            ]
        except Exception as e:
            logger.error(f"Check '{self.name}' failed on {device} with exception: {e}")
            results = [
                self.result(
                    device,
                    CheckStatus.ERROR,
                    f"Check failed: {sanitize_error_message(e)}",
                    error_type=type(e).__name__,
                )
            ]

        duration_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
        for result in results:
            if not result.duration_ms:
                result.duration_ms = duration_ms

        logger.info(
            f"Check '{self.name}' on {device}: "
            + ", ".join(r.result.value for r in results)
        )
        return results

    @abstractmethod
    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        """Execute the actual check logic."""

    def result(
        self, device: str, status: CheckStatus, details: str, **data
    ) -> CheckResult:
        """Build a result for this check."""
        return CheckResult(
            device=device,
            check=self.name,
            result=status,
            details=details,
            data=data,
        )

    async def run_script(self, device: str, script: str) -> PowerShellOutput:
        """Run a PowerShell script for this check on the device.

        Raises:
            RemoteExecutionError: If the script exits with a non-zero code
        """
        output = await self.executor.run_powershell(
            device, script, timeout=self.timeout_seconds, label=self.name
        )
        if not output.success:
            raise RemoteExecutionError(
                output.std_err.strip() or f"exited with code {output.status_code}",
                device,
                error_code="script_failed",
            )
        return output
