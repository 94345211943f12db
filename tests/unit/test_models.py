"""Tests for check result models."""

import pytest
from pydantic import ValidationError

from arc_onboarding.preflight.models import (
    CheckName,
    CheckResult,
    CheckStatus,
    DeviceResultSet,
    ResourceProviderStatus,
    RunContext,
    RunOptions,
    ValidationDepth,
    worst_status,
)


def make_result(device="srv01", check="OS Version", status=CheckStatus.OK):
    return CheckResult(device=device, check=check, result=status, details="")


class TestCheckStatus:
    def test_status_values(self):
        assert CheckStatus.OK.value == "OK"
        assert CheckStatus.WARNING.value == "Warning"
        assert CheckStatus.ERROR.value == "Error"
        assert CheckStatus.INFO.value == "Info"

    def test_severity_order(self):
        """Error > Warning > Info > OK."""
        assert CheckStatus.ERROR.severity > CheckStatus.WARNING.severity
        assert CheckStatus.WARNING.severity > CheckStatus.INFO.severity
        assert CheckStatus.INFO.severity > CheckStatus.OK.severity

    def test_worst_status(self):
        results = [
            make_result(status=CheckStatus.OK),
            make_result(status=CheckStatus.INFO),
            make_result(status=CheckStatus.WARNING),
        ]
        assert worst_status(results) == CheckStatus.WARNING
        assert worst_status([]) is None


class TestValidationDepth:
    def test_parse_is_case_insensitive(self):
        assert ValidationDepth.parse("critical") == ValidationDepth.CRITICAL
        assert ValidationDepth.parse(" COMPREHENSIVE ") == ValidationDepth.COMPREHENSIVE
        assert ValidationDepth.parse(ValidationDepth.BASIC) == ValidationDepth.BASIC

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError, match="Invalid validation depth"):
            ValidationDepth.parse("Deep")


class TestCheckResult:
    def test_requires_device(self):
        with pytest.raises(ValidationError):
            CheckResult(device="", check="OS Version", result=CheckStatus.OK)

    def test_status_helpers(self):
        error = make_result(status=CheckStatus.ERROR)
        warning = make_result(status=CheckStatus.WARNING)
        info = make_result(status=CheckStatus.INFO)

        assert error.is_error() and error.is_issue()
        assert warning.is_warning() and warning.is_issue()
        assert info.is_info() and not info.is_issue()
        assert make_result().is_ok()

    def test_accepts_unknown_check_names(self):
        result = make_result(check="Custom Firewall Check")
        assert result.check == "Custom Firewall Check"

    def test_status_from_string(self):
        result = CheckResult(device="srv01", check=CheckName.OS_VERSION.value, result="Warning")
        assert result.result == CheckStatus.WARNING


class TestDeviceResultSet:
    def test_add_and_get(self):
        results = DeviceResultSet()
        results.add("srv01", [make_result()])

        assert "srv01" in results
        assert len(results) == 1
        assert results.get("srv01")[0].check == "OS Version"
        assert results.get("missing") == []

    def test_rejects_duplicate_device(self):
        results = DeviceResultSet()
        results.add("srv01", [make_result()])

        with pytest.raises(ValueError, match="already recorded"):
            results.add("srv01", [make_result()])

    def test_frozen_set_rejects_writes(self):
        results = DeviceResultSet()
        results.freeze()

        assert results.frozen
        with pytest.raises(ValueError, match="read-only"):
            results.add("srv01", [make_result()])

    def test_get_returns_copy(self):
        results = DeviceResultSet()
        results.add("srv01", [make_result()])

        results.get("srv01").append(make_result(check="Extra"))
        assert len(results.get("srv01")) == 1

    def test_is_empty(self):
        results = DeviceResultSet()
        assert results.is_empty()

        results.add("srv01", [make_result(), make_result(check="Az Module")])
        assert not results.is_empty()
        assert len(results.all_results()) == 2


class TestResourceProviderStatus:
    def test_fully_registered(self):
        assert ResourceProviderStatus(checked=True).fully_registered
        assert not ResourceProviderStatus(checked=False).fully_registered
        assert not ResourceProviderStatus(
            checked=True, unregistered={"Microsoft.HybridCompute"}
        ).fully_registered


class TestRunContext:
    def test_os_label_defaults_to_unknown(self):
        context = RunContext(os_versions={"srv01": "Windows Server 2022"})
        assert context.os_label("srv01") == "Windows Server 2022"
        assert context.os_label("srv02") == "Unknown OS"


class TestRunOptions:
    def test_defaults(self):
        options = RunOptions()
        assert options.depth == ValidationDepth.BASIC
        assert options.parallel is True
        assert options.max_parallel == 5

    def test_rejects_zero_parallelism(self):
        with pytest.raises(ValidationError):
            RunOptions(max_parallel=0)
