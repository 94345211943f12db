"""Tests for device check implementations."""

import asyncio

import pytest

from arc_onboarding.preflight.base import BaseDeviceCheck, sanitize_error_message
from arc_onboarding.preflight.checks import (
    AzModuleCheck,
    AzureArcAgentCheck,
    DeviceConnectivityCheck,
    ExecutionPolicyCheck,
    MDEExtensionCheck,
    MDEServiceCheck,
    NetworkConnectivityCheck,
    OSVersionCheck,
    PowerShellVersionCheck,
    TLSVersionCheck,
    get_checks_for_depth,
    parse_version,
)
from arc_onboarding.preflight.models import CheckName, CheckStatus, RunContext, ValidationDepth
from arc_onboarding.services.remote import PowerShellOutput, RemoteExecutionError
from conftest import FakeExecutor, ps_json


def executor_for(check_name: CheckName, output) -> FakeExecutor:
    return FakeExecutor({check_name.value: output})


class TestParseVersion:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("5.1", (5, 1)),
            ("2.13.2", (2, 13, 2)),
            ("7.4.1-preview", (7, 4, 1)),
            ("", ()),
        ],
    )
    def test_parse(self, text, expected):
        assert parse_version(text) == expected


class TestBaseDeviceCheck:
    @pytest.mark.asyncio
    async def test_exception_becomes_error_result(self, settings):
        class Broken(BaseDeviceCheck):
            async def _execute_check(self, device, context):
                raise RuntimeError("password=hunter2 rejected")

        results = await Broken("Broken", FakeExecutor(), settings).run("srv01", RunContext())

        assert len(results) == 1
        assert results[0].result == CheckStatus.ERROR
        assert "hunter2" not in results[0].details
        assert "[REDACTED]" in results[0].details

    @pytest.mark.asyncio
    async def test_timeout_becomes_error_result(self, settings):
        class Slow(BaseDeviceCheck):
            async def _execute_check(self, device, context):
                await asyncio.sleep(5)
                return []

        check = Slow("Slow", FakeExecutor(), settings, timeout_seconds=0.01)
        results = await check.run("srv01", RunContext())

        assert results[0].result == CheckStatus.ERROR
        assert "timed out" in results[0].details
        assert results[0].data["error_code"] == "timeout"

    @pytest.mark.asyncio
    async def test_remote_failure_message_in_details(self, settings):
        executor = executor_for(
            CheckName.POWERSHELL_VERSION,
            RemoteExecutionError("WinRM access denied", "srv01"),
        )
        results = await PowerShellVersionCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.ERROR
        assert "WinRM access denied" in results[0].details

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "check_cls",
        [
            PowerShellVersionCheck,
            OSVersionCheck,
            AzModuleCheck,
            AzureArcAgentCheck,
            NetworkConnectivityCheck,
            TLSVersionCheck,
            ExecutionPolicyCheck,
            MDEServiceCheck,
            MDEExtensionCheck,
        ],
    )
    async def test_failed_script_is_error_with_stderr(self, settings, check_cls):
        executor = FakeExecutor()
        check = check_cls(executor, settings)
        executor.responses[check.name] = PowerShellOutput(status_code=1, std_err="Access is denied.\r\n")

        results = await check.run("srv01", RunContext(depth=ValidationDepth.COMPREHENSIVE))

        assert len(results) == 1
        assert results[0].result == CheckStatus.ERROR
        assert "Access is denied." in results[0].details
        assert results[0].data["error_code"] == "script_failed"

    @pytest.mark.asyncio
    async def test_failed_script_without_stderr_reports_exit_code(self, settings):
        executor = executor_for(CheckName.TLS_VERSION, PowerShellOutput(status_code=5))
        results = await TLSVersionCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.ERROR
        assert "exited with code 5" in results[0].details

    def test_sanitize_keeps_plain_messages(self):
        assert sanitize_error_message(ValueError("bad value")) == "bad value"


class TestDeviceConnectivityCheck:
    @pytest.mark.asyncio
    async def test_local_device_is_ok_without_probe(self, settings):
        executor = FakeExecutor(local={"localhost"})
        results = await DeviceConnectivityCheck(executor, settings).run("localhost", RunContext())

        assert results[0].result == CheckStatus.OK
        assert executor.probes == []

    @pytest.mark.asyncio
    async def test_unreachable_device(self, settings):
        executor = FakeExecutor(unreachable={"srv01"})
        results = await DeviceConnectivityCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.ERROR
        assert results[0].details.startswith("Device unreachable")


class TestPowerShellVersionCheck:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "major,minor,expected",
        [
            (5, 1, CheckStatus.OK),
            (7, 4, CheckStatus.OK),
            (5, 0, CheckStatus.WARNING),
            (4, 0, CheckStatus.ERROR),
        ],
    )
    async def test_versions(self, settings, major, minor, expected):
        executor = executor_for(CheckName.POWERSHELL_VERSION, ps_json({"Major": major, "Minor": minor}))
        results = await PowerShellVersionCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == expected

    @pytest.mark.asyncio
    async def test_unreadable_output(self, settings):
        executor = executor_for(
            CheckName.POWERSHELL_VERSION,
            PowerShellOutput(status_code=1, std_err="The term is not recognized"),
        )
        results = await PowerShellVersionCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.ERROR
        assert "not recognized" in results[0].details


class TestOSVersionCheck:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "caption,expected",
        [
            ("Microsoft Windows Server 2019 Standard", CheckStatus.OK),
            ("Microsoft Windows Server 2012 R2 Standard", CheckStatus.WARNING),
            ("Microsoft Windows Server 2012 Standard", CheckStatus.ERROR),
            ("Microsoft Windows Server 2008 R2 Enterprise", CheckStatus.ERROR),
            ("Microsoft Windows 11 Enterprise", CheckStatus.WARNING),
        ],
    )
    async def test_classification(self, settings, caption, expected):
        executor = executor_for(CheckName.OS_VERSION, ps_json({"Caption": caption, "Version": "10.0"}))
        results = await OSVersionCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == expected

    @pytest.mark.asyncio
    async def test_records_os_version(self, settings):
        executor = executor_for(
            CheckName.OS_VERSION, ps_json({"Caption": "Microsoft Windows Server 2022 Datacenter"})
        )
        context = RunContext()
        await OSVersionCheck(executor, settings).run("srv01", context)

        assert context.os_versions["srv01"] == "Microsoft Windows Server 2022 Datacenter"


class TestAzModuleCheck:
    @pytest.mark.asyncio
    async def test_installed(self, settings):
        executor = executor_for(CheckName.AZ_MODULE, ps_json({"Name": "Az.Accounts", "Version": "2.13.2"}))
        results = await AzModuleCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.OK

    @pytest.mark.asyncio
    async def test_missing_is_warning(self, settings):
        executor = executor_for(CheckName.AZ_MODULE, PowerShellOutput(status_code=0))
        results = await AzModuleCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.WARNING

    @pytest.mark.asyncio
    async def test_old_version_is_warning(self, settings):
        executor = executor_for(CheckName.AZ_MODULE, ps_json({"Name": "Az.Accounts", "Version": "1.9.5"}))
        results = await AzModuleCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.WARNING


class TestAzureArcAgentCheck:
    @pytest.mark.asyncio
    async def test_running(self, settings):
        executor = executor_for(CheckName.AZURE_ARC_AGENT, ps_json({"Installed": True, "ServiceStatus": "Running"}))
        results = await AzureArcAgentCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.OK

    @pytest.mark.asyncio
    async def test_stopped(self, settings):
        executor = executor_for(CheckName.AZURE_ARC_AGENT, ps_json({"Installed": True, "ServiceStatus": "Stopped"}))
        results = await AzureArcAgentCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.WARNING

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "depth,expected",
        [
            (ValidationDepth.BASIC, CheckStatus.WARNING),
            (ValidationDepth.CRITICAL, CheckStatus.ERROR),
            (ValidationDepth.COMPREHENSIVE, CheckStatus.ERROR),
        ],
    )
    async def test_absent_depends_on_depth(self, settings, depth, expected):
        executor = executor_for(CheckName.AZURE_ARC_AGENT, ps_json({"Installed": False, "ServiceStatus": None}))
        results = await AzureArcAgentCheck(executor, settings).run("srv01", RunContext(depth=depth))

        assert results[0].result == expected


class TestNetworkConnectivityCheck:
    @pytest.mark.asyncio
    async def test_one_result_per_required_endpoint(self, settings):
        executor = executor_for(
            CheckName.NETWORK_CONNECTIVITY,
            ps_json([
                {"Endpoint": "management.azure.com", "Reachable": True},
                {"Endpoint": "login.microsoftonline.com", "Reachable": False},
            ]),
        )
        results = await NetworkConnectivityCheck(executor, settings).run("srv01", RunContext())

        assert [r.data["endpoint"] for r in results] == settings.required_endpoints
        assert [r.result for r in results] == [CheckStatus.OK, CheckStatus.ERROR]

    @pytest.mark.asyncio
    async def test_optional_endpoints_at_comprehensive(self, settings):
        executor = executor_for(
            CheckName.NETWORK_CONNECTIVITY,
            ps_json([
                {"Endpoint": "management.azure.com", "Reachable": True},
                {"Endpoint": "login.microsoftonline.com", "Reachable": True},
                {"Endpoint": "go.microsoft.com", "Reachable": False},
            ]),
        )
        context = RunContext(depth=ValidationDepth.COMPREHENSIVE)
        results = await NetworkConnectivityCheck(executor, settings).run("srv01", context)

        assert len(results) == 3
        assert results[-1].result == CheckStatus.WARNING
        assert results[-1].data["required"] is False

    @pytest.mark.asyncio
    async def test_single_object_output(self, settings):
        executor = executor_for(
            CheckName.NETWORK_CONNECTIVITY,
            ps_json({"Endpoint": "management.azure.com", "Reachable": True}),
        )
        results = await NetworkConnectivityCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == CheckStatus.OK
        assert results[1].result == CheckStatus.ERROR
        assert "not tested" in results[1].details

    @pytest.mark.asyncio
    async def test_no_output(self, settings):
        executor = executor_for(CheckName.NETWORK_CONNECTIVITY, PowerShellOutput(status_code=1))
        results = await NetworkConnectivityCheck(executor, settings).run("srv01", RunContext())

        assert len(results) == 1
        assert results[0].result == CheckStatus.ERROR


class TestTLSVersionCheck:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "values,expected",
        [
            ({"Enabled": 1, "DisabledByDefault": 0}, CheckStatus.OK),
            ({"Enabled": None, "DisabledByDefault": None}, CheckStatus.OK),
            ({"Enabled": 0, "DisabledByDefault": None}, CheckStatus.ERROR),
            ({"Enabled": None, "DisabledByDefault": 1}, CheckStatus.ERROR),
        ],
    )
    async def test_registry_values(self, settings, values, expected):
        executor = executor_for(CheckName.TLS_VERSION, ps_json(values))
        results = await TLSVersionCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == expected


class TestExecutionPolicyCheck:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "policy,expected",
        [
            ("RemoteSigned", CheckStatus.OK),
            ("Unrestricted", CheckStatus.OK),
            ("Restricted", CheckStatus.WARNING),
            ("AllSigned", CheckStatus.WARNING),
        ],
    )
    async def test_policies(self, settings, policy, expected):
        executor = executor_for(CheckName.EXECUTION_POLICY, ps_json(policy))
        results = await ExecutionPolicyCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == expected


class TestMDEChecks:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "values,expected",
        [
            ({"Installed": True, "Status": "Running"}, CheckStatus.OK),
            ({"Installed": True, "Status": "Stopped"}, CheckStatus.WARNING),
            ({"Installed": False, "Status": None}, CheckStatus.ERROR),
        ],
    )
    async def test_service(self, settings, values, expected):
        executor = executor_for(CheckName.MDE_SERVICE, ps_json(values))
        results = await MDEServiceCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "values,expected",
        [
            (
                {"AgentInstalled": True, "ExitCode": 0,
                 "Extensions": [{"name": "MDE.Windows", "provisioningState": "Succeeded"}]},
                CheckStatus.OK,
            ),
            (
                {"AgentInstalled": True, "ExitCode": 0,
                 "Extensions": [{"name": "MDE.Windows", "provisioningState": "Failed"}]},
                CheckStatus.WARNING,
            ),
            ({"AgentInstalled": True, "ExitCode": 0, "Extensions": []}, CheckStatus.INFO),
            ({"AgentInstalled": True, "ExitCode": 23, "Extensions": []}, CheckStatus.WARNING),
            ({"AgentInstalled": False, "ExitCode": None, "Extensions": []}, CheckStatus.INFO),
        ],
    )
    async def test_extension(self, settings, values, expected):
        executor = executor_for(CheckName.MDE_EXTENSION, ps_json(values))
        results = await MDEExtensionCheck(executor, settings).run("srv01", RunContext())

        assert results[0].result == expected


class TestChecksForDepth:
    def names(self, settings, depth):
        return [c.name for c in get_checks_for_depth(FakeExecutor(), settings, depth)]

    def test_basic(self, settings):
        assert self.names(settings, ValidationDepth.BASIC) == [
            "PowerShell Version",
            "OS Version",
            "Az Module",
            "Azure Arc Agent",
            "Network Connectivity",
            "Execution Policy",
        ]

    def test_critical_adds_mde_service(self, settings):
        names = self.names(settings, ValidationDepth.CRITICAL)
        assert names[-1] == "MDE Service"
        assert "TLS Version" not in names

    def test_comprehensive_runs_everything(self, settings):
        assert self.names(settings, ValidationDepth.COMPREHENSIVE) == [
            "PowerShell Version",
            "OS Version",
            "Az Module",
            "Azure Arc Agent",
            "Network Connectivity",
            "TLS Version",
            "Execution Policy",
            "MDE Service",
            "MDE Extension",
        ]
