"""Device prerequisite checks for Azure Arc onboarding.

Checks run per device in a fixed order; the consolidated reporter turns a
run's results into per-device summaries and an overall verdict:

   >>> from arc_onboarding.preflight import DeviceCheckRunner, RunContext
   >>> runner = DeviceCheckRunner(executor)
   >>> results = await runner.run_checks("srv01", RunContext())

Full runs (authentication, provider registration, all devices) go through
``arc_onboarding.preflight.orchestrator.PrerequisiteOrchestrator``.
"""

from arc_onboarding.preflight.base import BaseDeviceCheck
from arc_onboarding.preflight.device_list import (
    DeviceListError,
    load_device_list,
    parse_device_list,
)
from arc_onboarding.preflight.models import (
    AuthResult,
    CheckName,
    CheckResult,
    CheckStatus,
    DeviceResultSet,
    ResourceProviderStatus,
    RunContext,
    RunOptions,
    ValidationDepth,
)
from arc_onboarding.preflight.reports import (
    ConsolidatedReport,
    ConsolidatedReporter,
    Verdict,
    generate_report,
)
from arc_onboarding.preflight.runner import DeviceCheckRunner

__all__ = [
    # Base classes
    "BaseDeviceCheck",
    # Models
    "AuthResult",
    "CheckName",
    "CheckResult",
    "CheckStatus",
    "DeviceResultSet",
    "ResourceProviderStatus",
    "RunContext",
    "RunOptions",
    "ValidationDepth",
    # Device lists
    "DeviceListError",
    "load_device_list",
    "parse_device_list",
    # Execution and reporting
    "DeviceCheckRunner",
    "ConsolidatedReport",
    "ConsolidatedReporter",
    "Verdict",
    "generate_report",
]
