"""Prerequisite orchestrator - one authentication, one provider pass, many devices.

Devices are independent: each is checked by the DeviceCheckRunner and its
results are stored under its own key, so processing order never affects
the consolidated report.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from arc_onboarding.core.auth import AuthSession
from arc_onboarding.core.config import Settings, get_settings
from arc_onboarding.preflight.device_list import DeviceListError, normalize_devices
from arc_onboarding.preflight.models import (
    AuthResult,
    CheckName,
    CheckResult,
    CheckStatus,
    DeviceResultSet,
    OrchestrationResult,
    ResourceProviderStatus,
    RunContext,
    RunOptions,
)
from arc_onboarding.preflight.runner import DeviceCheckRunner
from arc_onboarding.services.resource_providers import ResourceProviderRegistrar

logger = logging.getLogger(__name__)


class PrerequisiteOrchestrator:
    """Coordinate authentication, provider registration and device checks."""

    def __init__(
        self,
        auth_session: AuthSession,
        registrar: ResourceProviderRegistrar,
        runner: DeviceCheckRunner,
        settings: Settings | None = None,
    ):
        self.auth_session = auth_session
        self.registrar = registrar
        self.runner = runner
        self.settings = settings or get_settings()
        self._progress_callback: Callable[[int, int, str], None] | None = None

    def set_progress_callback(self, callback: Callable[[int, int, str], None]) -> None:
        """Set a callback for progress updates.

        Callback receives (completed: int, total: int, device: str).
        """
        self._progress_callback = callback

    async def run(
        self, devices: Iterable[str], options: RunOptions | None = None
    ) -> OrchestrationResult:
        """Run the full prerequisite validation.

        Args:
            devices: Device names (trimmed, de-duplicated, comments dropped)
            options: Run options; defaults come from settings

        Returns:
            OrchestrationResult with per-device results, auth and provider status

        Raises:
            DeviceListError: If no devices remain after normalization
        """
        device_list = normalize_devices(devices)
        if not device_list:
            raise DeviceListError("No devices specified")

        options = options or RunOptions(
            depth=self.settings.validation_depth,
            subscription_id=self.settings.subscription_id,
            non_interactive=self.settings.non_interactive,
            max_parallel=self.settings.max_parallel_devices,
        )
        started_at = datetime.utcnow()
        logger.info(
            f"Starting {options.depth.value} validation of {len(device_list)} device(s)"
        )

        auth = await self._authenticate(options.subscription_id)
        if auth.success:
            providers = await self.registrar.ensure_registered(
                self.settings.required_resource_providers
            )
        else:
            logger.warning("Skipping resource provider registration: authentication failed")
            providers = ResourceProviderStatus(checked=False)

        context = RunContext(depth=options.depth)
        results = DeviceResultSet()
        await self._check_devices(device_list, context, results, options)

        return OrchestrationResult(
            results=results,
            auth=auth,
            providers=providers,
            os_versions=dict(context.os_versions),
            depth=options.depth,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

    async def _authenticate(self, subscription_hint: str | None) -> AuthResult:
        try:
            return await self.auth_session.authenticate(subscription_hint)
        except Exception as e:
            logger.exception("Unexpected error during authentication")
            return AuthResult(success=False, message=f"Authentication error: {type(e).__name__}")

    async def _check_devices(
        self,
        devices: list[str],
        context: RunContext,
        results: DeviceResultSet,
        options: RunOptions,
    ) -> None:
        total = len(devices)
        completed = 0
        limit = options.max_parallel if options.parallel else 1
        semaphore = asyncio.Semaphore(limit)

        async def check_device(device: str) -> None:
            nonlocal completed
            async with semaphore:
                try:
                    device_results = await self.runner.run_checks(device, context)
                except Exception as e:
                    logger.exception(f"Check execution failed for {device}")
                    device_results = [
                        CheckResult(
                            device=device,
                            check=CheckName.DEVICE_CHECK_EXECUTION.value,
                            result=CheckStatus.ERROR,
                            details=f"Check execution failed: {e}",
                        )
                    ]
            results.add(device, device_results)
            completed += 1
            if self._progress_callback:
                self._progress_callback(completed, total, device)

        await asyncio.gather(*(check_device(d) for d in devices))
