"""Consolidated report generation for device prerequisite checks.

Builds a fixed-schema report from a run (counts, per-device summary,
issues with remediation, cross-device groups and the overall verdict)
and renders it as console text, JSON or Markdown.

SECURITY: Reports carry the subscription name only. Subscription IDs and
tenant IDs never appear in any rendering.
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from arc_onboarding.preflight.models import (
    AuthResult,
    CheckName,
    CheckResult,
    CheckStatus,
    DeviceResultSet,
    OrchestrationResult,
    ResourceProviderStatus,
    ValidationDepth,
)
from arc_onboarding.preflight.remediation import RemediationHint, get_remediation

logger = logging.getLogger(__name__)

# Warning checks that are grouped across devices alongside errors
HIGH_PRIORITY_WARNING_CHECKS = (
    CheckName.AZURE_ARC_AGENT.value,
    CheckName.NETWORK_CONNECTIVITY.value,
    CheckName.POWERSHELL_VERSION.value,
)


class Verdict(str, Enum):
    """Overall readiness verdict."""

    READY = "ready"
    READY_WITH_MINOR_ITEMS = "ready with minor items"
    PARTIALLY_READY = "partially ready"
    NOT_READY = "not ready"
    NO_RESULTS = "no results collected"


class DeviceStatus(str, Enum):
    READY = "Ready"
    WARNINGS = "Warnings"
    ERRORS = "Errors"


class SeverityCounts(BaseModel):
    """Number of results per severity."""

    total: int = 0
    ok: int = 0
    warning: int = 0
    error: int = 0
    info: int = 0

    def add(self, status: CheckStatus) -> None:
        self.total += 1
        if status == CheckStatus.OK:
            self.ok += 1
        elif status == CheckStatus.WARNING:
            self.warning += 1
        elif status == CheckStatus.ERROR:
            self.error += 1
        elif status == CheckStatus.INFO:
            self.info += 1

    @classmethod
    def from_results(cls, results: list[CheckResult]) -> "SeverityCounts":
        counts = cls()
        for result in results:
            counts.add(result.result)
        return counts


class DeviceSummary(BaseModel):
    device: str
    os_label: str
    counts: SeverityCounts
    status: DeviceStatus


class IssueItem(BaseModel):
    check: str
    result: CheckStatus
    details: str
    remediation: RemediationHint


class DeviceIssues(BaseModel):
    device: str
    issues: list[IssueItem] = Field(default_factory=list)


class IssueGroup(BaseModel):
    """One check name and the devices where it reported a given severity."""

    check: str
    severity: CheckStatus
    devices: list[str] = Field(default_factory=list)


class ConsolidatedReport(BaseModel):
    """Aggregated multi-device view of a run."""

    generated_at: datetime = Field(default_factory=datetime.utcnow)
    depth: ValidationDepth = ValidationDepth.BASIC
    verdict: Verdict
    verdict_message: str
    counts: SeverityCounts = Field(default_factory=SeverityCounts)
    devices: list[DeviceSummary] = Field(default_factory=list)
    issues: list[DeviceIssues] = Field(default_factory=list)
    error_groups: list[IssueGroup] = Field(default_factory=list)
    warning_groups: list[IssueGroup] = Field(default_factory=list)
    auth_success: bool = False
    auth_message: str = ""
    subscription_name: str | None = None
    providers_checked: bool = False
    providers_fully_registered: bool = False
    providers_registered_this_session: bool = False
    unregistered_providers: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.counts.total == 0

    def get_device(self, device: str) -> DeviceSummary | None:
        for summary in self.devices:
            if summary.device == device:
                return summary
        return None


VERDICT_MESSAGES = {
    Verdict.READY: "All devices are ready for Azure Arc onboarding.",
    Verdict.READY_WITH_MINOR_ITEMS: "Devices are ready; review the warnings before onboarding.",
    Verdict.PARTIALLY_READY: (
        "Device checks passed, but required resource providers are not fully registered."
    ),
    Verdict.NOT_READY: "Resolve the errors below before onboarding.",
    Verdict.NO_RESULTS: "No results collected.",
}


def determine_verdict(
    counts: SeverityCounts, auth_success: bool, providers_fully_registered: bool
) -> Verdict:
    """Overall verdict, in priority order.

    Any error or a failed authentication is "not ready"; incomplete provider
    registration is "partially ready"; warnings alone are "ready with minor
    items".
    """
    if counts.total == 0:
        return Verdict.NO_RESULTS
    if counts.error or not auth_success:
        return Verdict.NOT_READY
    if not providers_fully_registered:
        return Verdict.PARTIALLY_READY
    if counts.warning:
        return Verdict.READY_WITH_MINOR_ITEMS
    return Verdict.READY


def device_status(counts: SeverityCounts) -> DeviceStatus:
    if counts.error:
        return DeviceStatus.ERRORS
    if counts.warning:
        return DeviceStatus.WARNINGS
    return DeviceStatus.READY


def _sort_key(name: str) -> tuple[str, str]:
    return (name.lower(), name)


class ConsolidatedReporter:
    """Build a ConsolidatedReport from a run's results."""

    def build(self, result: OrchestrationResult) -> ConsolidatedReport:
        """Build the report for an orchestration result."""
        return self.render(
            result.results,
            result.auth,
            result.providers,
            os_versions=result.os_versions,
            depth=result.depth,
        )

    def render(
        self,
        results: DeviceResultSet,
        auth: AuthResult,
        providers: ResourceProviderStatus,
        os_versions: dict[str, str] | None = None,
        depth: ValidationDepth = ValidationDepth.BASIC,
    ) -> ConsolidatedReport:
        """Aggregate results into a report.

        The result set is frozen first; no further writes are accepted.
        Output ordering depends only on device and check names, never on the
        order devices finished in.
        """
        results.freeze()
        os_versions = os_versions or {}

        counts = SeverityCounts()
        summaries: list[DeviceSummary] = []
        issues: list[DeviceIssues] = []
        error_groups: dict[str, set[str]] = {}
        warning_groups: dict[str, set[str]] = {}

        for device in sorted(results.devices, key=_sort_key):
            device_results = results.get(device)
            device_counts = SeverityCounts.from_results(device_results)
            for r in device_results:
                counts.add(r.result)

            summaries.append(DeviceSummary(
                device=device,
                os_label=os_versions.get(device) or "Unknown OS",
                counts=device_counts,
                status=device_status(device_counts),
            ))

            device_issues = [
                IssueItem(
                    check=r.check,
                    result=r.result,
                    details=r.details,
                    remediation=get_remediation(r.check),
                )
                for r in device_results
                if r.is_issue()
            ]
            if device_issues:
                issues.append(DeviceIssues(device=device, issues=device_issues))

            for r in device_results:
                if r.is_error():
                    error_groups.setdefault(r.check, set()).add(device)
                elif r.is_warning() and r.check in HIGH_PRIORITY_WARNING_CHECKS:
                    warning_groups.setdefault(r.check, set()).add(device)

        verdict = determine_verdict(counts, auth.success, providers.fully_registered)
        if verdict == Verdict.NO_RESULTS:
            logger.warning("Consolidated report has no results")

        return ConsolidatedReport(
            depth=depth,
            verdict=verdict,
            verdict_message=VERDICT_MESSAGES[verdict],
            counts=counts,
            devices=summaries,
            issues=issues,
            error_groups=self._groups(error_groups, CheckStatus.ERROR),
            warning_groups=self._groups(warning_groups, CheckStatus.WARNING),
            auth_success=auth.success,
            auth_message=auth.message,
            subscription_name=auth.subscription_name if auth.success else None,
            providers_checked=providers.checked,
            providers_fully_registered=providers.fully_registered,
            providers_registered_this_session=providers.registered_this_session,
            unregistered_providers=sorted(providers.unregistered),
        )

    @staticmethod
    def _groups(groups: dict[str, set[str]], severity: CheckStatus) -> list[IssueGroup]:
        return [
            IssueGroup(check=check, severity=severity, devices=sorted(devices, key=_sort_key))
            for check, devices in sorted(groups.items())
        ]


class ReportGenerator:
    """Render a ConsolidatedReport."""

    def __init__(self, report: ConsolidatedReport):
        """Initialize the report generator.

        Args:
            report: The consolidated report to render
        """
        self.report = report

    def to_dict(self) -> dict[str, Any]:
        return self.report.model_dump(mode="json")

    def to_json(self, pretty: bool = True) -> str:
        """Generate JSON report.

        Args:
            pretty: Whether to pretty-print the JSON

        Returns:
            JSON string representation of the report
        """
        if pretty:
            return json.dumps(self.to_dict(), indent=2)
        return json.dumps(self.to_dict())

    def _azure_lines(self) -> list[str]:
        report = self.report
        if report.auth_success:
            auth = f"Authenticated (subscription: {report.subscription_name})"
        else:
            auth = f"FAILED - {report.auth_message}"

        if not report.auth_success:
            providers = "Not checked (authentication failed)"
        elif report.providers_fully_registered:
            providers = "All required providers registered"
        else:
            pending = ", ".join(report.unregistered_providers) or "state unknown"
            providers = f"Not fully registered: {pending}"
            if report.providers_registered_this_session:
                providers += " (registration requested this run)"
        return [f"Azure authentication: {auth}", f"Resource providers:   {providers}"]

    def to_text(self) -> str:
        """Generate the console report."""
        report = self.report
        lines = [
            "=" * 72,
            "AZURE ARC PREREQUISITES - CONSOLIDATED REPORT",
            "=" * 72,
            f"Generated:        {report.generated_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
            f"Validation depth: {report.depth.value}",
            *self._azure_lines(),
            "",
        ]

        if report.is_empty:
            lines.extend([f"Overall verdict: {report.verdict.value.upper()}", report.verdict_message])
            return "\n".join(lines)

        counts = report.counts
        lines.extend([
            f"Checks: {counts.total} total | {counts.ok} OK | {counts.warning} Warning | "
            f"{counts.error} Error | {counts.info} Info",
            "",
            "DEVICE SUMMARY",
            f"{'Device':<24} {'OS':<36} {'OK':>4} {'Warn':>5} {'Err':>4} {'Info':>5}  Status",
            "-" * 92,
        ])
        for summary in report.devices:
            c = summary.counts
            lines.append(
                f"{summary.device[:24]:<24} {summary.os_label[:36]:<36} "
                f"{c.ok:>4} {c.warning:>5} {c.error:>4} {c.info:>5}  {summary.status.value}"
            )

        if report.issues:
            lines.extend(["", "DETAILED ISSUES"])
            for device_issues in report.issues:
                lines.append(f"{device_issues.device}:")
                for issue in device_issues.issues:
                    lines.append(f"  [{issue.result.value.upper()}] {issue.check}: {issue.details}")
                    lines.append(f"      Fix: {issue.remediation.title}")
                    for action in issue.remediation.actions:
                        lines.append(f"        - {action}")

        if report.error_groups or report.warning_groups:
            lines.extend(["", "COMMON ISSUES ACROSS DEVICES"])
            for group in report.error_groups + report.warning_groups:
                lines.append(
                    f"  [{group.severity.value.upper()}] {group.check} "
                    f"({len(group.devices)} device(s)): {', '.join(group.devices)}"
                )

        lines.extend([
            "",
            f"Overall verdict: {report.verdict.value.upper()}",
            report.verdict_message,
        ])
        return "\n".join(lines)

    def to_markdown(self) -> str:
        """Generate Markdown report.

        Returns:
            Markdown string representation of the report
        """
        report = self.report
        lines = [
            "# Azure Arc Prerequisites Report",
            "",
            f"**Generated:** {report.generated_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
            f"**Validation depth:** {report.depth.value}",
            "",
            "## Azure",
            "",
        ]
        lines.extend(f"- {line}" for line in self._azure_lines())
        lines.extend(["", f"## Overall Verdict: **{report.verdict.value}**", "", report.verdict_message, ""])

        if report.is_empty:
            return "\n".join(lines)

        counts = report.counts
        lines.extend([
            "## Summary",
            "",
            f"- **Total checks:** {counts.total}",
            f"- **OK:** {counts.ok}",
            f"- **Warnings:** {counts.warning}",
            f"- **Errors:** {counts.error}",
            f"- **Info:** {counts.info}",
            "",
            "## Devices",
            "",
            "| Device | OS | OK | Warning | Error | Info | Status |",
            "|---|---|---|---|---|---|---|",
        ])
        for summary in report.devices:
            c = summary.counts
            lines.append(
                f"| {summary.device} | {summary.os_label} | {c.ok} | {c.warning} | "
                f"{c.error} | {c.info} | {summary.status.value} |"
            )
        lines.append("")

        if report.issues:
            lines.extend(["## Issues", ""])
            for device_issues in report.issues:
                lines.extend([f"### {device_issues.device}", ""])
                for issue in device_issues.issues:
                    lines.append(f"- **{issue.result.value}** {issue.check}: {issue.details}")
                    lines.append(f"  - Remediation: {issue.remediation.title}")
                    for action in issue.remediation.actions:
                        lines.append(f"    - {action}")
                lines.append("")

        groups = report.error_groups + report.warning_groups
        if groups:
            lines.extend(["## Common Issues", ""])
            for group in groups:
                lines.append(
                    f"- **{group.severity.value}** {group.check}: {', '.join(group.devices)}"
                )
            lines.append("")

        return "\n".join(lines)


def generate_report(report: ConsolidatedReport, format: str = "text") -> str:
    """Generate a report in the specified format.

    Args:
        report: The consolidated report to render
        format: Output format ('text', 'json', 'markdown' or 'md')

    Returns:
        Formatted report string

    Raises:
        ValueError: If an unsupported format is specified
    """
    generator = ReportGenerator(report)

    format_mapping = {
        "text": generator.to_text,
        "json": generator.to_json,
        "markdown": generator.to_markdown,
        "md": generator.to_markdown,
    }

    if format not in format_mapping:
        raise ValueError(
            f"Unsupported format: {format}. "
            f"Supported formats: {', '.join(format_mapping.keys())}"
        )

    return format_mapping[format]()
