"""Remediation hints for failed or warning checks, keyed by check name."""

from pydantic import BaseModel, Field

from arc_onboarding.preflight.models import CheckName


class RemediationHint(BaseModel):
    """Actionable guidance for one check."""

    title: str
    actions: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


REMEDIATION_HINTS: dict[str, RemediationHint] = {
    CheckName.DEVICE_CONNECTIVITY.value: RemediationHint(
        title="Restore remote connectivity",
        actions=[
            "Verify the device is powered on and resolvable in DNS",
            "Enable WinRM with 'Enable-PSRemoting -Force'",
            "Allow TCP 5985/5986 through the host and network firewalls",
        ],
    ),
    CheckName.POWERSHELL_VERSION.value: RemediationHint(
        title="Upgrade Windows PowerShell",
        actions=[
            "Install Windows Management Framework 5.1",
            "Restart the device after installation",
        ],
    ),
    CheckName.OS_VERSION.value: RemediationHint(
        title="Move to a supported operating system",
        actions=[
            "Upgrade to Windows Server 2016 or later",
            "Review the Azure Arc supported operating systems list for limited-support versions",
        ],
    ),
    CheckName.AZ_MODULE.value: RemediationHint(
        title="Install the Az PowerShell module",
        actions=[
            "Run 'Install-Module Az -Scope AllUsers -Repository PSGallery'",
            "Or update an existing installation with 'Update-Module Az'",
        ],
    ),
    CheckName.AZURE_ARC_AGENT.value: RemediationHint(
        title="Install or start the Azure Connected Machine agent",
        actions=[
            "Install the agent with 'arc-onboarding install --device <name>'",
            "If installed, start the service with 'Start-Service himds'",
            "Run 'azcmagent show' to confirm the agent state",
        ],
    ),
    CheckName.NETWORK_CONNECTIVITY.value: RemediationHint(
        title="Open outbound access to Azure endpoints",
        actions=[
            "Allow outbound HTTPS (TCP 443) to the listed endpoints",
            "Configure the agent proxy with 'azcmagent config set proxy.url <url>' if a proxy is required",
            "Run 'azcmagent check --location <region>' to verify",
        ],
    ),
    CheckName.TLS_VERSION.value: RemediationHint(
        title="Enable TLS 1.2",
        actions=[
            "Set SCHANNEL\\Protocols\\TLS 1.2\\Client Enabled=1 and DisabledByDefault=0",
            "Restart the device to apply SCHANNEL changes",
        ],
    ),
    CheckName.EXECUTION_POLICY.value: RemediationHint(
        title="Relax the PowerShell execution policy",
        actions=[
            "Run 'Set-ExecutionPolicy RemoteSigned -Scope LocalMachine'",
            "Or sign the onboarding script when AllSigned is enforced by policy",
        ],
    ),
    CheckName.MDE_SERVICE.value: RemediationHint(
        title="Onboard the device to Defender for Endpoint",
        actions=[
            "Run the MDE onboarding package for this device",
            "Start the sensor with 'Start-Service Sense'",
        ],
    ),
    CheckName.MDE_EXTENSION.value: RemediationHint(
        title="Deploy the MDE.Windows extension",
        actions=[
            "Enable Defender for Servers on the subscription",
            "Check the extension with 'azcmagent extension list'",
            "Collect diagnostics with 'arc-onboarding diagnostics' if provisioning fails",
        ],
    ),
    CheckName.DEVICE_CHECK_EXECUTION.value: RemediationHint(
        title="Investigate the check failure",
        actions=[
            "Review the consolidated log file for the exception",
            "Re-run the checks for this device with --verbose",
        ],
    ),
}

DEFAULT_REMEDIATION = RemediationHint(
    title="Review logs",
    actions=["Review the consolidated log file for details and re-run the checks"],
)


def get_remediation(check: str) -> RemediationHint:
    """Remediation hint for a check name; unknown names get the generic hint."""
    return REMEDIATION_HINTS.get(check, DEFAULT_REMEDIATION)
