"""Azure Connected Machine agent installation.

Local installs download the MSI with httpx and run msiexec; remote installs
send a download-and-install script through the device executor. Exit codes
0 and 3010 (reboot required) are success.
"""

import asyncio
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from arc_onboarding.core.config import Settings, get_settings
from arc_onboarding.core.logfile import log_success
from arc_onboarding.preflight.base import Executor
from arc_onboarding.preflight.checks import ARC_AGENT_SERVICE
from arc_onboarding.services.remote import DeviceExecutor, RemoteExecutionError, ps_quote

logger = logging.getLogger(__name__)

MSI_FILENAME = "AzureConnectedMachineAgent.msi"
EXIT_SUCCESS = 0
EXIT_REBOOT_REQUIRED = 3010
SUCCESS_EXIT_CODES = {EXIT_SUCCESS, EXIT_REBOOT_REQUIRED}

PRESENCE_SCRIPT = (
    f"[pscustomobject]@{{ Installed = [bool](Get-Service -Name {ARC_AGENT_SERVICE} "
    "-ErrorAction SilentlyContinue) } | ConvertTo-Json -Compress"
)


@dataclass
class InstallResult:
    device: str
    success: bool
    message: str
    already_installed: bool = False
    exit_code: int | None = None

    @property
    def reboot_required(self) -> bool:
        return self.exit_code == EXIT_REBOOT_REQUIRED


class AgentInstaller:
    """Install the Connected Machine agent on local or remote devices."""

    def __init__(self, executor: Executor | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.executor = executor or DeviceExecutor(self.settings)

    async def download(self, dest_dir: str | Path) -> Path:
        """Download the agent MSI.

        Raises:
            httpx.HTTPError: If the download fails
        """
        destination = Path(dest_dir) / MSI_FILENAME
        destination.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading agent package from {self.settings.agent_download_url}")

        async with httpx.AsyncClient(follow_redirects=True, timeout=120.0) as client:
            async with client.stream("GET", self.settings.agent_download_url) as response:
                response.raise_for_status()
                with destination.open("wb") as handle:
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)

        logger.info(f"Agent package saved to {destination} ({destination.stat().st_size} bytes)")
        return destination

    async def is_installed(self, device: str) -> bool:
        output = await self.executor.run_powershell(device, PRESENCE_SCRIPT, label="Agent Presence")
        return isinstance(output.parsed, dict) and bool(output.parsed.get("Installed"))

    async def install(self, device: str) -> InstallResult:
        """Install the agent on a device unless it is already present.

        Never raises; failures are reported in the result.
        """
        try:
            if await self.is_installed(device):
                logger.info(f"Azure Arc agent already installed on {device}")
                return InstallResult(
                    device=device,
                    success=True,
                    already_installed=True,
                    message="Azure Arc agent already installed",
                )

            if self.executor.is_local(device):
                exit_code = await self._install_local()
            else:
                exit_code = await self._install_remote(device)
        except RemoteExecutionError as e:
            logger.error(f"Agent installation on {device} failed: {e.message}")
            return InstallResult(device=device, success=False, message=e.message)
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"Agent installation on {device} failed: {e}")
            return InstallResult(device=device, success=False, message=str(e))

        if exit_code in SUCCESS_EXIT_CODES:
            message = "Azure Arc agent installed"
            if exit_code == EXIT_REBOOT_REQUIRED:
                message += "; reboot required"
            log_success(logger, f"{message} on {device}")
            return InstallResult(device=device, success=True, message=message, exit_code=exit_code)

        logger.error(f"Agent installer on {device} exited with code {exit_code}")
        return InstallResult(
            device=device,
            success=False,
            message=f"Installer exited with code {exit_code}",
            exit_code=exit_code,
        )

    async def _install_local(self) -> int:
        with tempfile.TemporaryDirectory(prefix="arc-agent-") as workdir:
            msi = await self.download(workdir)
            return await self._run_msiexec(msi, Path(workdir) / "install.log")

    async def _run_msiexec(self, msi: Path, log_path: Path) -> int:
        process = await asyncio.create_subprocess_exec(
            "msiexec.exe", "/i", str(msi), "/qn", "/l*v", str(log_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            await asyncio.wait_for(
                process.communicate(), timeout=self.settings.agent_install_timeout_seconds
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            raise RemoteExecutionError(
                "Agent installer timed out", device="localhost", error_code="timeout"
            )
        return process.returncode if process.returncode is not None else -1

    def remote_install_script(self) -> str:
        return (
            "$ProgressPreference = 'SilentlyContinue'\n"
            f"$msi = Join-Path $env:TEMP {ps_quote(MSI_FILENAME)}\n"
            "$log = Join-Path $env:TEMP 'AzureConnectedMachineAgent-install.log'\n"
            "[Net.ServicePointManager]::SecurityProtocol = [Net.SecurityProtocolType]::Tls12\n"
            f"Invoke-WebRequest -UseBasicParsing -Uri {ps_quote(self.settings.agent_download_url)} -OutFile $msi\n"
            "$p = Start-Process msiexec.exe -ArgumentList @('/i', $msi, '/qn', '/l*v', $log) -Wait -PassThru\n"
            "[pscustomobject]@{ ExitCode = $p.ExitCode } | ConvertTo-Json -Compress"
        )

    async def _install_remote(self, device: str) -> int:
        output = await self.executor.run_powershell(
            device,
            self.remote_install_script(),
            timeout=self.settings.agent_install_timeout_seconds,
            label="Agent Install",
        )
        if isinstance(output.parsed, dict) and output.parsed.get("ExitCode") is not None:
            return int(output.parsed["ExitCode"])
        raise RemoteExecutionError(
            f"Installer returned no exit code: {output.std_err.strip() or 'no output'}",
            device=device,
        )
