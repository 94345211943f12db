"""Device check implementations.

Contains the concrete checks run against every device, in execution order:
connectivity, PowerShell, OS, Az module, Arc agent, network endpoints,
TLS, execution policy, MDE service and MDE extension.
"""

import logging
from typing import Any

from arc_onboarding.core.config import Settings
from arc_onboarding.preflight.base import BaseDeviceCheck, Executor
from arc_onboarding.preflight.models import (
    CheckName,
    CheckResult,
    CheckStatus,
    RunContext,
    ValidationDepth,
)
from arc_onboarding.services.remote import ps_array, ps_quote

logger = logging.getLogger(__name__)

CRITICAL_AND_UP = frozenset({ValidationDepth.CRITICAL, ValidationDepth.COMPREHENSIVE})
COMPREHENSIVE_ONLY = frozenset({ValidationDepth.COMPREHENSIVE})

ARC_AGENT_SERVICE = "himds"
MDE_SERVICE = "Sense"
MDE_EXTENSION_NAME = "MDE.Windows"
EXTENSION_OK_STATES = {"succeeded", "success", "enabled", "ready"}
RISKY_EXECUTION_POLICIES = {"Restricted", "AllSigned"}

# Seconds allowed per endpoint for Test-NetConnection
ENDPOINT_TEST_SECONDS = 10.0


def parse_version(text: Any) -> tuple[int, ...]:
    """Parse a dotted version string into a tuple of integers.

    Non-numeric parts end the version: "7.4.1-preview" -> (7, 4, 1).
    """
    parts = []
    for piece in str(text).strip().split("."):
        digits = ""
        for char in piece:
            if not char.isdigit():
                break
            digits += char
        if not digits:
            break
        parts.append(int(digits))
    return tuple(parts)


def _get_ci(data: dict[str, Any], *keys: str) -> Any:
    """Case-insensitive lookup of the first present key."""
    lowered = {str(k).lower(): v for k, v in data.items()}
    for key in keys:
        if key.lower() in lowered:
            return lowered[key.lower()]
    return None


class DeviceConnectivityCheck(BaseDeviceCheck):
    """Check the device answers on its remote management port."""

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.DEVICE_CONNECTIVITY.value,
            executor=executor,
            settings=settings,
            description="Verify the device is reachable for remote checks",
            timeout_seconds=settings.connectivity_timeout_seconds + 5,
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        if self.executor.is_local(device):
            return [self.result(device, CheckStatus.OK, "Local device, checks run in-process")]

        port = self.settings.connectivity_port
        reachable, message = await self.executor.probe(
            device, port, self.settings.connectivity_timeout_seconds
        )
        if reachable:
            return [self.result(device, CheckStatus.OK, message, port=port)]
        return [self.result(device, CheckStatus.ERROR, f"Device unreachable: {message}", port=port)]


class PowerShellVersionCheck(BaseDeviceCheck):
    """Check the Windows PowerShell version meets the minimum."""

    SCRIPT = "$PSVersionTable.PSVersion | Select-Object Major, Minor | ConvertTo-Json -Compress"

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.POWERSHELL_VERSION.value,
            executor=executor,
            settings=settings,
            description=f"Verify PowerShell {settings.min_powershell_version} or later",
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        output = await self.run_script(device, self.SCRIPT)
        if not isinstance(output.parsed, dict):
            return [self.result(
                device, CheckStatus.ERROR,
                f"Could not read PowerShell version: {output.std_err.strip() or 'no output'}",
            )]

        major = int(_get_ci(output.parsed, "Major") or 0)
        minor = int(_get_ci(output.parsed, "Minor") or 0)
        found = f"{major}.{minor}"
        minimum = parse_version(self.settings.min_powershell_version)

        if (major, minor) >= minimum[:2]:
            return [self.result(device, CheckStatus.OK, f"PowerShell {found} installed", version=found)]
        if minimum and major == minimum[0]:
            return [self.result(
                device, CheckStatus.WARNING,
                f"PowerShell {found} is below the recommended {self.settings.min_powershell_version}",
                version=found,
            )]
        return [self.result(
            device, CheckStatus.ERROR,
            f"PowerShell {found} is not supported; {self.settings.min_powershell_version} or later is required",
            version=found,
        )]


class OSVersionCheck(BaseDeviceCheck):
    """Check the operating system is supported for Azure Arc and MDE."""

    SCRIPT = (
        "Get-CimInstance -ClassName Win32_OperatingSystem | "
        "Select-Object Caption, Version, BuildNumber | ConvertTo-Json -Compress"
    )

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.OS_VERSION.value,
            executor=executor,
            settings=settings,
            description="Verify the operating system is on the supported list",
        )

    def classify(self, caption: str) -> CheckStatus:
        """Map an OS caption to a status using the configured lists."""
        lowered = caption.lower()
        if any(v.lower() in lowered for v in self.settings.supported_os_versions):
            return CheckStatus.OK
        if any(v.lower() in lowered for v in self.settings.limited_os_versions):
            return CheckStatus.WARNING
        if any(v.lower() in lowered for v in self.settings.unsupported_os_versions):
            return CheckStatus.ERROR
        return CheckStatus.WARNING

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        output = await self.run_script(device, self.SCRIPT)
        if not isinstance(output.parsed, dict) or not _get_ci(output.parsed, "Caption"):
            return [self.result(device, CheckStatus.ERROR, "Could not determine operating system version")]

        caption = str(_get_ci(output.parsed, "Caption")).strip()
        version = str(_get_ci(output.parsed, "Version") or "")
        context.os_versions[device] = caption

        status = self.classify(caption)
        messages = {
            CheckStatus.OK: f"{caption} is supported",
            CheckStatus.WARNING: f"{caption} has limited support; review Azure Arc requirements",
            CheckStatus.ERROR: f"{caption} is not supported for Azure Arc onboarding",
        }
        return [self.result(device, status, messages[status], caption=caption, version=version)]


class AzModuleCheck(BaseDeviceCheck):
    """Check the Az PowerShell module is installed."""

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.AZ_MODULE.value,
            executor=executor,
            settings=settings,
            description=f"Verify {settings.az_module_name} is installed",
        )

    @property
    def script(self) -> str:
        return (
            f"Get-Module -ListAvailable -Name {ps_quote(self.settings.az_module_name)} | "
            "Sort-Object Version -Descending | Select-Object -First 1 Name, "
            "@{Name='Version'; Expression={$_.Version.ToString()}} | ConvertTo-Json -Compress"
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        module = self.settings.az_module_name
        output = await self.run_script(device, self.script)

        if not isinstance(output.parsed, dict):
            return [self.result(
                device, CheckStatus.WARNING,
                f"{module} module not found; install it with 'Install-Module Az'",
            )]

        version = str(_get_ci(output.parsed, "Version") or "0")
        if parse_version(version) >= parse_version(self.settings.min_az_module_version):
            return [self.result(device, CheckStatus.OK, f"{module} {version} installed", version=version)]
        return [self.result(
            device, CheckStatus.WARNING,
            f"{module} {version} is older than {self.settings.min_az_module_version}",
            version=version,
        )]


class AzureArcAgentCheck(BaseDeviceCheck):
    """Check whether the Connected Machine agent is installed and running."""

    SCRIPT = (
        f"$svc = Get-Service -Name {ARC_AGENT_SERVICE} -ErrorAction SilentlyContinue\n"
        "$cmd = Get-Command azcmagent -ErrorAction SilentlyContinue\n"
        "[pscustomobject]@{\n"
        "    Installed = [bool]($svc -or $cmd)\n"
        "    ServiceStatus = if ($svc) { $svc.Status.ToString() } else { $null }\n"
        "} | ConvertTo-Json -Compress"
    )

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.AZURE_ARC_AGENT.value,
            executor=executor,
            settings=settings,
            description="Verify the Azure Connected Machine agent",
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        output = await self.run_script(device, self.SCRIPT)
        parsed = output.parsed if isinstance(output.parsed, dict) else {}

        installed = bool(_get_ci(parsed, "Installed"))
        service_status = _get_ci(parsed, "ServiceStatus")

        if installed and service_status == "Running":
            return [self.result(device, CheckStatus.OK, "Azure Arc agent installed and running")]
        if installed:
            return [self.result(
                device, CheckStatus.WARNING,
                f"Azure Arc agent installed but service is {service_status or 'missing'}",
                service_status=service_status,
            )]

        # Absence is expected before onboarding, fatal when MDE integration is validated
        if context.depth == ValidationDepth.BASIC:
            return [self.result(
                device, CheckStatus.WARNING,
                "Azure Arc agent not installed; it will be installed during onboarding",
            )]
        return [self.result(
            device, CheckStatus.ERROR,
            f"Azure Arc agent not installed; required for {context.depth.value} validation",
        )]


class NetworkConnectivityCheck(BaseDeviceCheck):
    """Check the device can reach the Azure Arc and MDE endpoints.

    Produces one result per endpoint. Unreachable required endpoints are
    errors; unreachable optional endpoints (Comprehensive only) are warnings.
    """

    def __init__(self, executor: Executor, settings: Settings):
        endpoint_count = len(settings.required_endpoints) + len(settings.optional_endpoints)
        super().__init__(
            name=CheckName.NETWORK_CONNECTIVITY.value,
            executor=executor,
            settings=settings,
            description="Verify outbound HTTPS to required Azure endpoints",
            timeout_seconds=max(
                settings.check_timeout_seconds, endpoint_count * ENDPOINT_TEST_SECONDS
            ),
        )

    def build_script(self, endpoints: list[str]) -> str:
        return (
            f"$endpoints = {ps_array(endpoints)}\n"
            "$results = foreach ($endpoint in $endpoints) {\n"
            f"    $ok = Test-NetConnection -ComputerName $endpoint -Port {self.settings.endpoint_port} "
            "-InformationLevel Quiet -WarningAction SilentlyContinue\n"
            "    [pscustomobject]@{ Endpoint = $endpoint; Reachable = [bool]$ok }\n"
            "}\n"
            "ConvertTo-Json -InputObject @($results) -Compress"
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        required = list(self.settings.required_endpoints)
        optional = (
            list(self.settings.optional_endpoints)
            if context.depth == ValidationDepth.COMPREHENSIVE
            else []
        )

        output = await self.run_script(device, self.build_script(required + optional))
        parsed = output.parsed
        if isinstance(parsed, dict):
            parsed = [parsed]
        if not isinstance(parsed, list):
            return [self.result(
                device, CheckStatus.ERROR,
                f"Endpoint test returned no results: {output.std_err.strip() or 'no output'}",
            )]

        reachability = {
            str(_get_ci(item, "Endpoint")).lower(): bool(_get_ci(item, "Reachable"))
            for item in parsed
            if isinstance(item, dict)
        }

        results = []
        for endpoint in required + optional:
            is_required = endpoint in required
            reachable = reachability.get(endpoint.lower())
            port = self.settings.endpoint_port

            if reachable:
                results.append(self.result(
                    device, CheckStatus.OK, f"{endpoint}:{port} reachable",
                    endpoint=endpoint, required=is_required,
                ))
            elif reachable is None:
                results.append(self.result(
                    device, CheckStatus.ERROR if is_required else CheckStatus.WARNING,
                    f"{endpoint}:{port} was not tested",
                    endpoint=endpoint, required=is_required,
                ))
            else:
                results.append(self.result(
                    device, CheckStatus.ERROR if is_required else CheckStatus.WARNING,
                    f"{endpoint}:{port} unreachable"
                    + ("" if is_required else " (optional endpoint)"),
                    endpoint=endpoint, required=is_required,
                ))
        return results


class TLSVersionCheck(BaseDeviceCheck):
    """Check TLS 1.2 is not disabled for outbound connections."""

    depths = COMPREHENSIVE_ONLY

    SCRIPT = (
        "$key = 'HKLM:\\SYSTEM\\CurrentControlSet\\Control\\SecurityProviders\\SCHANNEL\\Protocols\\TLS 1.2\\Client'\n"
        "$props = Get-ItemProperty -Path $key -ErrorAction SilentlyContinue\n"
        "[pscustomobject]@{\n"
        "    Enabled = if ($props -and $null -ne $props.Enabled) { [int]$props.Enabled } else { $null }\n"
        "    DisabledByDefault = if ($props -and $null -ne $props.DisabledByDefault) { [int]$props.DisabledByDefault } else { $null }\n"
        "} | ConvertTo-Json -Compress"
    )

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.TLS_VERSION.value,
            executor=executor,
            settings=settings,
            description="Verify TLS 1.2 is available for client connections",
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        output = await self.run_script(device, self.SCRIPT)
        parsed = output.parsed if isinstance(output.parsed, dict) else {}
        enabled = _get_ci(parsed, "Enabled")
        disabled_by_default = _get_ci(parsed, "DisabledByDefault")

        if enabled == 0 or disabled_by_default == 1:
            return [self.result(device, CheckStatus.ERROR, "TLS 1.2 client protocol is disabled in SCHANNEL")]
        if enabled == 1:
            return [self.result(device, CheckStatus.OK, "TLS 1.2 client protocol explicitly enabled")]
        return [self.result(device, CheckStatus.OK, "TLS 1.2 client protocol uses the OS default (enabled)")]


class ExecutionPolicyCheck(BaseDeviceCheck):
    """Check the execution policy allows the onboarding script to run."""

    SCRIPT = "(Get-ExecutionPolicy).ToString() | ConvertTo-Json -Compress"

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.EXECUTION_POLICY.value,
            executor=executor,
            settings=settings,
            description="Verify the PowerShell execution policy",
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        output = await self.run_script(device, self.SCRIPT)
        policy = output.parsed if isinstance(output.parsed, str) else output.std_out.strip()

        if not policy:
            return [self.result(device, CheckStatus.WARNING, "Could not read the execution policy")]
        if policy in RISKY_EXECUTION_POLICIES:
            return [self.result(
                device, CheckStatus.WARNING,
                f"Execution policy '{policy}' may block the onboarding script",
                policy=policy,
            )]
        return [self.result(device, CheckStatus.OK, f"Execution policy '{policy}' is compatible", policy=policy)]


class MDEServiceCheck(BaseDeviceCheck):
    """Check the Defender for Endpoint sensor service."""

    depths = CRITICAL_AND_UP

    SCRIPT = (
        f"$svc = Get-Service -Name {MDE_SERVICE} -ErrorAction SilentlyContinue\n"
        "[pscustomobject]@{\n"
        "    Installed = [bool]$svc\n"
        "    Status = if ($svc) { $svc.Status.ToString() } else { $null }\n"
        "} | ConvertTo-Json -Compress"
    )

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.MDE_SERVICE.value,
            executor=executor,
            settings=settings,
            description="Verify the MDE Sense service",
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        output = await self.run_script(device, self.SCRIPT)
        parsed = output.parsed if isinstance(output.parsed, dict) else {}
        status = _get_ci(parsed, "Status")

        if not _get_ci(parsed, "Installed"):
            return [self.result(device, CheckStatus.ERROR, f"MDE service '{MDE_SERVICE}' not found")]
        if status == "Running":
            return [self.result(device, CheckStatus.OK, f"MDE service '{MDE_SERVICE}' is running")]
        return [self.result(
            device, CheckStatus.WARNING,
            f"MDE service '{MDE_SERVICE}' is {status}; the device may not be onboarded",
            service_status=status,
        )]


class MDEExtensionCheck(BaseDeviceCheck):
    """Check the MDE.Windows extension reported by the Arc agent."""

    depths = COMPREHENSIVE_ONLY

    SCRIPT = (
        "$cmd = Get-Command azcmagent -ErrorAction SilentlyContinue\n"
        "if (-not $cmd) {\n"
        "    [pscustomobject]@{ AgentInstalled = $false; ExitCode = $null; Extensions = @() } | ConvertTo-Json -Compress\n"
        "    return\n"
        "}\n"
        "$raw = & azcmagent extension list --json 2>$null\n"
        "$code = $LASTEXITCODE\n"
        "$ext = @()\n"
        "if ($code -eq 0 -and $raw) { $ext = @(($raw | Out-String) | ConvertFrom-Json) }\n"
        "[pscustomobject]@{ AgentInstalled = $true; ExitCode = $code; Extensions = $ext } | "
        "ConvertTo-Json -Depth 5 -Compress"
    )

    def __init__(self, executor: Executor, settings: Settings):
        super().__init__(
            name=CheckName.MDE_EXTENSION.value,
            executor=executor,
            settings=settings,
            description=f"Verify the {MDE_EXTENSION_NAME} Arc extension",
        )

    async def _execute_check(self, device: str, context: RunContext) -> list[CheckResult]:
        output = await self.run_script(device, self.SCRIPT)
        parsed = output.parsed if isinstance(output.parsed, dict) else {}

        if not _get_ci(parsed, "AgentInstalled"):
            return [self.result(
                device, CheckStatus.INFO,
                "Azure Arc agent not installed; extension status unavailable",
            )]

        exit_code = _get_ci(parsed, "ExitCode")
        if exit_code not in (0, None):
            return [self.result(
                device, CheckStatus.WARNING,
                f"'azcmagent extension list' failed with exit code {exit_code}",
                exit_code=exit_code,
            )]

        extensions = _get_ci(parsed, "Extensions") or []
        if isinstance(extensions, dict):
            extensions = [extensions]

        for extension in extensions:
            if not isinstance(extension, dict):
                continue
            name = str(_get_ci(extension, "name", "type") or "")
            if MDE_EXTENSION_NAME.lower() not in name.lower():
                continue
            state = str(_get_ci(extension, "provisioningState", "status", "state") or "Unknown")
            if state.lower() in EXTENSION_OK_STATES:
                return [self.result(device, CheckStatus.OK, f"{MDE_EXTENSION_NAME} extension {state}", state=state)]
            return [self.result(
                device, CheckStatus.WARNING,
                f"{MDE_EXTENSION_NAME} extension is in state '{state}'",
                state=state,
            )]

        return [self.result(
            device, CheckStatus.INFO,
            f"{MDE_EXTENSION_NAME} extension not deployed yet",
        )]


def get_device_checks(executor: Executor, settings: Settings) -> list[BaseDeviceCheck]:
    """All checks that follow the connectivity check, in execution order."""
    return [
        PowerShellVersionCheck(executor, settings),
        OSVersionCheck(executor, settings),
        AzModuleCheck(executor, settings),
        AzureArcAgentCheck(executor, settings),
        NetworkConnectivityCheck(executor, settings),
        TLSVersionCheck(executor, settings),
        ExecutionPolicyCheck(executor, settings),
        MDEServiceCheck(executor, settings),
        MDEExtensionCheck(executor, settings),
    ]


def get_checks_for_depth(
    executor: Executor, settings: Settings, depth: ValidationDepth
) -> list[BaseDeviceCheck]:
    """Checks that apply at a validation depth, in execution order."""
    return [c for c in get_device_checks(executor, settings) if c.applies_to(depth)]
