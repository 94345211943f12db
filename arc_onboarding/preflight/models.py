"""Pydantic models for prerequisite checks."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class CheckStatus(str, Enum):
    """Outcome of a single check. Severity order: Error > Warning > Info > OK."""

    OK = "OK"
    WARNING = "Warning"
    ERROR = "Error"
    INFO = "Info"

    @property
    def severity(self) -> int:
        """Rank used for sorting and worst-status selection."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    CheckStatus.OK: 0,
    CheckStatus.INFO: 1,
    CheckStatus.WARNING: 2,
    CheckStatus.ERROR: 3,
}

# Display order, most severe first
SEVERITY_ORDER = (CheckStatus.ERROR, CheckStatus.WARNING, CheckStatus.INFO, CheckStatus.OK)


class CheckName(str, Enum):
    """Known check names. Results may carry other names too."""

    DEVICE_CONNECTIVITY = "Device Connectivity"
    POWERSHELL_VERSION = "PowerShell Version"
    OS_VERSION = "OS Version"
    AZ_MODULE = "Az Module"
    AZURE_ARC_AGENT = "Azure Arc Agent"
    NETWORK_CONNECTIVITY = "Network Connectivity"
    TLS_VERSION = "TLS Version"
    EXECUTION_POLICY = "Execution Policy"
    MDE_SERVICE = "MDE Service"
    MDE_EXTENSION = "MDE Extension"
    DEVICE_CHECK_EXECUTION = "Device Check Execution"


class ValidationDepth(str, Enum):
    """How much of the check battery to run."""

    BASIC = "Basic"
    CRITICAL = "Critical"
    COMPREHENSIVE = "Comprehensive"

    @classmethod
    def parse(cls, value: "str | ValidationDepth") -> "ValidationDepth":
        """Parse a depth name case-insensitively."""
        if isinstance(value, cls):
            return value
        for depth in cls:
            if depth.value.lower() == str(value).strip().lower():
                return depth
        valid = ", ".join(d.value for d in cls)
        raise ValueError(f"Invalid validation depth '{value}'. Valid values: {valid}")


class CheckResult(BaseModel):
    """One outcome of one check on one device."""

    device: str = Field(..., min_length=1, description="Hostname, FQDN or IP address")
    check: str = Field(..., description="Check name, normally a CheckName value")
    result: CheckStatus = Field(..., description="Outcome of the check")
    details: str = Field("", description="Human-readable explanation")
    data: dict[str, Any] = Field(
        default_factory=dict, description="Technical details, e.g. the endpoint tested"
    )
    duration_ms: float = Field(0, description="Execution time in milliseconds")
    timestamp: datetime = Field(
        default_factory=datetime.utcnow, description="When this check was run"
    )

    model_config = {"from_attributes": True}

    def is_ok(self) -> bool:
        return self.result == CheckStatus.OK

    def is_warning(self) -> bool:
        return self.result == CheckStatus.WARNING

    def is_error(self) -> bool:
        return self.result == CheckStatus.ERROR

    def is_info(self) -> bool:
        return self.result == CheckStatus.INFO

    def is_issue(self) -> bool:
        """Check if the result needs attention (Warning or Error)."""
        return self.result in (CheckStatus.WARNING, CheckStatus.ERROR)


def worst_status(results: Iterable[CheckResult]) -> CheckStatus | None:
    """Return the most severe status among results, or None if empty."""
    statuses = [r.result for r in results]
    if not statuses:
        return None
    return max(statuses, key=lambda s: s.severity)


class AuthResult(BaseModel):
    """Outcome of authentication and subscription selection."""

    success: bool
    message: str
    subscription_id: str | None = None
    subscription_name: str | None = None

    model_config = {"frozen": True}


class ResourceProviderStatus(BaseModel):
    """Registration state of the required resource providers.

    ``unregistered`` holds every namespace whose last observed state was not
    "Registered", captured before any registration request was issued.
    """

    checked: bool = False
    registered_this_session: bool = False
    unregistered: set[str] = Field(default_factory=set)

    model_config = {"frozen": True}

    @property
    def fully_registered(self) -> bool:
        """All providers were queried and found registered."""
        return self.checked and not self.unregistered


class DeviceResultSet:
    """Check results keyed by device name, in check execution order.

    Each device key is written once. Once frozen for reporting, the set
    rejects further writes.
    """

    def __init__(self) -> None:
        self._results: dict[str, list[CheckResult]] = {}
        self._frozen = False

    def add(self, device: str, results: list[CheckResult]) -> None:
        """Store the results for one device.

        Raises:
            ValueError: If the device already has results or the set is frozen
        """
        if self._frozen:
            raise ValueError("Result set is read-only once reporting has started")
        if device in self._results:
            raise ValueError(f"Results for device '{device}' were already recorded")
        self._results[device] = list(results)

    def freeze(self) -> None:
        """Make the set read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def devices(self) -> list[str]:
        return list(self._results)

    def get(self, device: str) -> list[CheckResult]:
        return list(self._results.get(device, []))

    def items(self) -> Iterator[tuple[str, list[CheckResult]]]:
        for device, results in self._results.items():
            yield device, list(results)

    def all_results(self) -> list[CheckResult]:
        return [r for results in self._results.values() for r in results]

    def is_empty(self) -> bool:
        return not any(self._results.values())

    def __contains__(self, device: object) -> bool:
        return device in self._results

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def __repr__(self) -> str:
        return f"<DeviceResultSet(devices={len(self._results)})>"


@dataclass
class RunContext:
    """State shared by the checks of one orchestration run."""

    depth: ValidationDepth = ValidationDepth.BASIC
    os_versions: dict[str, str] = field(default_factory=dict)

    def os_label(self, device: str) -> str:
        """OS label recorded for a device, or "Unknown OS"."""
        return self.os_versions.get(device) or "Unknown OS"


class RunOptions(BaseModel):
    """Options for one orchestration run."""

    depth: ValidationDepth = Field(ValidationDepth.BASIC, description="Validation depth")
    subscription_id: str | None = Field(
        None, description="Subscription to use without prompting, if available"
    )
    non_interactive: bool = Field(False, description="Never prompt; take defaults")
    parallel: bool = Field(True, description="Check devices concurrently")
    max_parallel: int = Field(5, ge=1, description="Maximum devices checked at once")


@dataclass
class OrchestrationResult:
    """Everything the consolidated reporter needs from a run."""

    results: DeviceResultSet
    auth: AuthResult
    providers: ResourceProviderStatus
    os_versions: dict[str, str] = field(default_factory=dict)
    depth: ValidationDepth = ValidationDepth.BASIC
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
