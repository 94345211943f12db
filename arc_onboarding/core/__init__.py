"""Core module initialization."""

from arc_onboarding.core.config import Settings, get_settings
from arc_onboarding.core.logfile import (
    SUCCESS,
    ConsolidatedLogFile,
    LogFileError,
    configure_logging,
    log_success,
)
from arc_onboarding.core.prompts import Prompter

__all__ = [
    "Settings",
    "get_settings",
    "SUCCESS",
    "ConsolidatedLogFile",
    "LogFileError",
    "configure_logging",
    "log_success",
    "Prompter",
]
