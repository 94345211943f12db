"""Device check runner - runs the ordered check battery for one device.

The connectivity check runs first. An unreachable device yields exactly
one Error result and no further checks; after that, every check runs
regardless of how earlier checks ended.
"""

import logging

from arc_onboarding.core.config import Settings, get_settings
from arc_onboarding.preflight.base import BaseDeviceCheck, Executor
from arc_onboarding.preflight.checks import DeviceConnectivityCheck, get_checks_for_depth
from arc_onboarding.preflight.models import CheckResult, CheckStatus, RunContext

logger = logging.getLogger(__name__)


class DeviceCheckRunner:
    """Run prerequisite checks for a single device."""

    def __init__(
        self,
        executor: Executor,
        settings: Settings | None = None,
        checks: list[BaseDeviceCheck] | None = None,
    ):
        """Initialize the runner.

        Args:
            executor: Executor used by every check to reach devices
            settings: Toolkit settings
            checks: Override the post-connectivity checks (in order). When None,
                the standard battery for the run's validation depth is used.
        """
        self.executor = executor
        self.settings = settings or get_settings()
        self.connectivity_check = DeviceConnectivityCheck(executor, self.settings)
        self._checks = checks

    def get_checks(self, context: RunContext) -> list[BaseDeviceCheck]:
        """Checks to run after connectivity, in execution order."""
        if self._checks is not None:
            return [c for c in self._checks if c.applies_to(context.depth)]
        return get_checks_for_depth(self.executor, self.settings, context.depth)

    async def run_checks(self, device: str, context: RunContext) -> list[CheckResult]:
        """Run all applicable checks for a device.

        Args:
            device: Device name
            context: Shared run context (depth, OS version map)

        Returns:
            Results in check execution order
        """
        connectivity = await self.connectivity_check.run(device, context)
        if any(r.result == CheckStatus.ERROR for r in connectivity):
            logger.warning(f"{device} is unreachable, skipping remaining checks")
            return connectivity[:1]

        results = list(connectivity)
        for check in self.get_checks(context):
            results.extend(await check.run(device, context))

        errors = sum(1 for r in results if r.result == CheckStatus.ERROR)
        warnings = sum(1 for r in results if r.result == CheckStatus.WARNING)
        logger.info(
            f"Completed {len(results)} checks on {device}: "
            f"{errors} errors, {warnings} warnings"
        )
        return results
