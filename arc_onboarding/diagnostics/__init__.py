"""Azure Arc agent diagnostics."""

from arc_onboarding.diagnostics.collector import (
    DiagnosticsCollector,
    DiagnosticsResult,
    estimate_progress,
)

__all__ = ["DiagnosticsCollector", "DiagnosticsResult", "estimate_progress"]
