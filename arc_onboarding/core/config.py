"""Core configuration settings.

Centralized configuration using Pydantic Settings for environment
variable management with sensible defaults.
"""

import logging
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

# List settings accept comma-separated environment values
StrList = Annotated[list[str], NoDecode]


class Settings(BaseSettings):
    """Toolkit settings loaded from environment variables or a .env file.

    Every interactive prompt has a default so that ``non_interactive``
    runs (scheduled tasks, pipelines) never block on input.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Azure Arc Onboarding Toolkit"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # =========================================================================
    # Azure identity
    # =========================================================================

    # Service principal for unattended runs. When unset, an existing Azure
    # CLI login is reused or an interactive login is started.
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None
    use_device_code: bool = Field(default=False, alias="USE_DEVICE_CODE")
    subscription_id: str | None = Field(default=None, alias="SUBSCRIPTION_ID")

    # Onboarding target
    arc_location: str = Field(default="eastus", alias="ARC_LOCATION")
    resource_group: str | None = Field(default=None, alias="ARC_RESOURCE_GROUP")

    required_resource_providers: StrList = Field(
        default_factory=lambda: [
            "Microsoft.HybridCompute",
            "Microsoft.GuestConfiguration",
            "Microsoft.HybridConnectivity",
            "Microsoft.AzureArcData",
        ]
    )

    # =========================================================================
    # Prerequisite thresholds
    # =========================================================================

    required_endpoints: StrList = Field(
        default_factory=lambda: [
            "management.azure.com",
            "login.microsoftonline.com",
            "login.windows.net",
            "gbl.his.arc.azure.com",
            "agentserviceapi.guestconfiguration.azure.com",
            "guestnotificationservice.azure.com",
            "pas.windows.net",
            "download.microsoft.com",
        ]
    )
    optional_endpoints: StrList = Field(
        default_factory=lambda: [
            "winatp-gw-eus.microsoft.com",
            "us-v20.events.data.microsoft.com",
            "go.microsoft.com",
            "dc.services.visualstudio.com",
        ]
    )
    endpoint_port: int = 443

    min_powershell_version: str = "5.1"
    az_module_name: str = "Az.Accounts"
    min_az_module_version: str = "2.0.0"

    # Matched as substrings of the Win32_OperatingSystem caption, in this order
    supported_os_versions: StrList = Field(
        default_factory=lambda: [
            "Windows Server 2016",
            "Windows Server 2019",
            "Windows Server 2022",
            "Windows Server 2025",
        ]
    )
    limited_os_versions: StrList = Field(
        default_factory=lambda: ["Windows Server 2012 R2"]
    )
    unsupported_os_versions: StrList = Field(
        default_factory=lambda: ["Windows Server 2008", "Windows Server 2012"]
    )

    # =========================================================================
    # Execution
    # =========================================================================

    validation_depth: Literal["Basic", "Critical", "Comprehensive"] = Field(
        default="Basic", alias="VALIDATION_DEPTH"
    )
    max_parallel_devices: int = Field(default=5, alias="MAX_PARALLEL_DEVICES")
    check_timeout_seconds: float = Field(default=60.0, alias="CHECK_TIMEOUT_SECONDS")
    connectivity_timeout_seconds: float = 5.0
    connectivity_port: int = 5985
    powershell_executable: str = "powershell.exe"

    # WinRM (remote devices)
    winrm_username: str | None = Field(default=None, alias="WINRM_USERNAME")
    winrm_password: str | None = Field(default=None, alias="WINRM_PASSWORD")
    winrm_transport: str = Field(default="ntlm", alias="WINRM_TRANSPORT")
    winrm_use_ssl: bool = Field(default=False, alias="WINRM_USE_SSL")
    winrm_verify_ssl: bool = True
    # Per-request bounds; read must exceed operation
    winrm_operation_timeout_seconds: int = 20
    winrm_read_timeout_seconds: int = 30

    # Force mode: every prompt takes its default answer
    non_interactive: bool = Field(default=False, alias="NON_INTERACTIVE")

    # Consolidated log file
    log_directory: str = "."
    log_file_prefix: str = "ArcPrereqCheck"

    # Diagnostics
    azcmagent_path: str = Field(default="azcmagent", alias="AZCMAGENT_PATH")
    diagnostics_output_dir: str = "."
    diagnostics_timeout_seconds: float = 600.0

    # Provisioning
    agent_download_url: str = "https://aka.ms/AzureConnectedMachineAgent"
    agent_install_timeout_seconds: float = 900.0
    gpo_name: str = "Azure Arc Onboarding"
    gpo_target_ou: str | None = Field(default=None, alias="GPO_TARGET_OU")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator(
        "required_resource_providers",
        "required_endpoints",
        "optional_endpoints",
        "supported_os_versions",
        "limited_os_versions",
        "unsupported_os_versions",
        mode="before",
    )
    @classmethod
    def parse_comma_list(cls, v: str | list[str]) -> list[str]:
        """Parse a list setting from a comma-separated string or list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("validation_depth", mode="before")
    @classmethod
    def normalize_depth(cls, v: str) -> str:
        """Accept validation depth in any letter case."""
        if isinstance(v, str):
            return v.strip().capitalize()
        return v

    @model_validator(mode="after")
    def validate_execution_limits(self):
        """Reject settings that would make a run impossible."""
        if self.max_parallel_devices < 1:
            raise ValueError("MAX_PARALLEL_DEVICES must be at least 1")

        if not self.required_endpoints:
            raise ValueError("At least one required endpoint must be configured")

        if self.winrm_read_timeout_seconds <= self.winrm_operation_timeout_seconds:
            raise ValueError("WinRM read timeout must be greater than the operation timeout")

        if self.debug and self.non_interactive:
            logger.warning(
                "DEBUG enabled for a non-interactive run; "
                "console output may include verbose Azure SDK logging."
            )

        return self

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def has_service_principal(self) -> bool:
        """Check if a service principal is fully configured."""
        return all([
            self.azure_tenant_id,
            self.azure_client_id,
            self.azure_client_secret,
        ])


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
