"""PowerShell execution on local and remote Windows devices.

Local devices run the script through a PowerShell subprocess. Remote
devices run it over WinRM using pywinrm. Scripts are expected to write
JSON (``ConvertTo-Json``) to stdout; the decoded value is returned as
``PowerShellOutput.parsed``.
"""

import asyncio
import json
import logging
import socket
from dataclasses import dataclass
from typing import Any

import winrm

from arc_onboarding.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

LOCAL_DEVICE_NAMES = {"localhost", ".", "127.0.0.1", "::1"}


class RemoteExecutionError(Exception):
    """Raised when a script cannot be delivered to or run on a device."""

    def __init__(self, message: str, device: str, error_code: str = "execution_failed"):
        super().__init__(message)
        self.message = message
        self.device = device
        self.error_code = error_code


@dataclass
class PowerShellOutput:
    """Result of a PowerShell script run."""

    status_code: int
    std_out: str = ""
    std_err: str = ""
    parsed: Any = None

    @property
    def success(self) -> bool:
        return self.status_code == 0


def ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def ps_array(values: list[str]) -> str:
    """Render values as a PowerShell array literal."""
    return "@(" + ", ".join(ps_quote(v) for v in values) + ")"


def is_local_device(device: str) -> bool:
    """Check if a device name refers to the machine running the toolkit."""
    name = device.strip().lower()
    if name in LOCAL_DEVICE_NAMES:
        return True

    hostname = socket.gethostname().lower()
    if name in (hostname, hostname.split(".")[0]):
        return True
    return name == socket.getfqdn().lower()


def _decode_json(text: str) -> Any:
    text = text.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class DeviceExecutor:
    """Run PowerShell scripts on devices, locally or over WinRM."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._session_cache: dict[str, winrm.Session] = {}

    def is_local(self, device: str) -> bool:
        return is_local_device(device)

    async def probe(self, device: str, port: int, timeout: float) -> tuple[bool, str]:
        """Open and close a TCP connection to a device.

        Returns:
            Tuple of (reachable, detail message)
        """
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(device, port), timeout=timeout
            )
        except TimeoutError:
            return False, f"Connection to {device}:{port} timed out after {timeout:.0f}s"
        except OSError as e:
            return False, f"Connection to {device}:{port} failed: {e}"

        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing probe connection to {device}: {e}")
        return True, f"{device}:{port} is reachable"

    async def run_powershell(
        self,
        device: str,
        script: str,
        timeout: float | None = None,
        label: str = "script",
    ) -> PowerShellOutput:
        """Run a script on a device.

        Args:
            device: Target device name
            script: PowerShell script text
            timeout: Seconds before the run is abandoned
            label: Short description used in logs and error messages

        Returns:
            PowerShellOutput with the exit status and decoded JSON output

        Raises:
            RemoteExecutionError: On timeout or transport failure
        """
        timeout = timeout or self._settings.check_timeout_seconds
        logger.debug(f"Running '{label}' on {device}")

        if is_local_device(device):
            return await self._run_local(device, script, timeout, label)
        return await self._run_remote(device, script, timeout, label)

    async def _run_local(
        self, device: str, script: str, timeout: float, label: str
    ) -> PowerShellOutput:
        try:
            process = await asyncio.create_subprocess_exec(
                self._settings.powershell_executable,
                "-NoProfile",
                "-NonInteractive",
                "-ExecutionPolicy",
                "Bypass",
                "-Command",
                script,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise RemoteExecutionError(
                f"PowerShell executable '{self._settings.powershell_executable}' not found",
                device,
                error_code="powershell_not_found",
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            raise RemoteExecutionError(
                f"'{label}' timed out after {timeout:.0f}s", device, error_code="timeout"
            )

        std_out = stdout.decode("utf-8", errors="replace")
        return PowerShellOutput(
            status_code=process.returncode,
            std_out=std_out,
            std_err=stderr.decode("utf-8", errors="replace"),
            parsed=_decode_json(std_out),
        )

    def _get_session(self, device: str) -> winrm.Session:
        """Get or create a WinRM session for a device."""
        if device not in self._session_cache:
            settings = self._settings
            protocol = "https" if settings.winrm_use_ssl else "http"
            port = 5986 if settings.winrm_use_ssl else settings.connectivity_port
            endpoint = f"{protocol}://{device}:{port}/wsman"

            self._session_cache[device] = winrm.Session(
                endpoint,
                auth=(settings.winrm_username or "", settings.winrm_password or ""),
                transport=settings.winrm_transport,
                server_cert_validation="validate" if settings.winrm_verify_ssl else "ignore",
                operation_timeout_sec=settings.winrm_operation_timeout_seconds,
                read_timeout_sec=settings.winrm_read_timeout_seconds,
            )
        return self._session_cache[device]

    def _execute_sync(self, device: str, script: str) -> PowerShellOutput:
        """Synchronous WinRM execution (runs in a worker thread)."""
        session = self._get_session(device)
        result = session.run_ps(script)

        std_out = result.std_out.decode("utf-8", errors="replace") if result.std_out else ""
        std_err = result.std_err.decode("utf-8", errors="replace") if result.std_err else ""
        return PowerShellOutput(
            status_code=result.status_code,
            std_out=std_out,
            std_err=std_err,
            parsed=_decode_json(std_out),
        )

    async def _run_remote(
        self, device: str, script: str, timeout: float, label: str
    ) -> PowerShellOutput:
        """Run a script over WinRM in a worker thread.

        The worker thread cannot be cancelled: after a timeout it keeps
        running until pywinrm returns. Each WinRM request is bounded by the
        session's read timeout, so a host that stops responding releases
        the thread, but a script that keeps running holds it until it exits.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._execute_sync, device, script),
                timeout=timeout,
            )
        except TimeoutError:
            raise RemoteExecutionError(
                f"'{label}' timed out after {timeout:.0f}s", device, error_code="timeout"
            )
        except RemoteExecutionError:
            raise
        except Exception as e:
            logger.warning(f"WinRM execution of '{label}' failed on {device}: {e}")
            raise RemoteExecutionError(
                f"WinRM {type(e).__name__}: {e}", device
            ) from e
