"""Group Policy deployment for Azure Arc onboarding.

Ensures the onboarding GPO exists, the target OU exists (created only
when allowed) and the GPO is linked to the OU. A failed deployment removes
the GPO and OU it created during the same run. Runs the GroupPolicy and
ActiveDirectory cmdlets on a domain-joined management host.
"""

import logging
from dataclasses import dataclass, field

from arc_onboarding.core.config import Settings, get_settings
from arc_onboarding.core.logfile import log_success
from arc_onboarding.preflight.base import Executor
from arc_onboarding.services.remote import DeviceExecutor, RemoteExecutionError, ps_quote

logger = logging.getLogger(__name__)


class GPODeploymentError(Exception):
    """Raised when a Group Policy step fails."""

    def __init__(self, message: str, step: str):
        super().__init__(message)
        self.message = message
        self.step = step


@dataclass
class GPODeploymentResult:
    gpo_name: str
    target_ou: str
    success: bool = False
    created: list[str] = field(default_factory=list)
    rolled_back: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def gpo_created(self) -> bool:
        return "gpo" in self.created

    @property
    def ou_created(self) -> bool:
        return "ou" in self.created

    @property
    def link_created(self) -> bool:
        return "link" in self.created


def _parent_and_name(distinguished_name: str) -> tuple[str, str]:
    """Split "OU=Servers,DC=contoso,DC=com" into ("DC=contoso,DC=com", "Servers")."""
    first, _, parent = distinguished_name.partition(",")
    _, _, name = first.partition("=")
    return parent.strip(), name.strip()


class GPODeployer:
    """Create and link the onboarding GPO."""

    def __init__(
        self,
        executor: Executor | None = None,
        settings: Settings | None = None,
        management_host: str = "localhost",
    ):
        self.settings = settings or get_settings()
        self.executor = executor or DeviceExecutor(self.settings)
        self.management_host = management_host

    async def _query(self, step: str, script: str):
        output = await self.executor.run_powershell(self.management_host, script, label=step)
        if not output.success:
            raise GPODeploymentError(
                output.std_err.strip() or f"{step} exited with code {output.status_code}", step
            )
        return output.parsed

    async def ensure_gpo(self, gpo_name: str) -> bool:
        """Create the GPO if missing. Returns True when created."""
        name = ps_quote(gpo_name)
        exists = await self._query(
            "Get-GPO",
            f"Import-Module GroupPolicy\n"
            f"[bool](Get-GPO -Name {name} -ErrorAction SilentlyContinue) | ConvertTo-Json -Compress",
        )
        if exists:
            logger.info(f"GPO '{gpo_name}' already exists")
            return False

        await self._query(
            "New-GPO",
            f"Import-Module GroupPolicy\n"
            f"New-GPO -Name {name} -Comment 'Azure Arc onboarding' | Out-Null\n"
            "$true | ConvertTo-Json -Compress",
        )
        log_success(logger, f"Created GPO '{gpo_name}'")
        return True

    async def ensure_ou(self, target_ou: str, create: bool) -> bool:
        """Make sure the OU exists. Returns True when created.

        Raises:
            GPODeploymentError: If the OU is missing and creation is not allowed
        """
        exists = await self._query(
            "Get-ADOrganizationalUnit",
            "Import-Module ActiveDirectory\n"
            f"[bool](Get-ADOrganizationalUnit -Identity {ps_quote(target_ou)} "
            "-ErrorAction SilentlyContinue) | ConvertTo-Json -Compress",
        )
        if exists:
            return False
        if not create:
            raise GPODeploymentError(f"OU '{target_ou}' does not exist", "Get-ADOrganizationalUnit")

        parent, name = _parent_and_name(target_ou)
        await self._query(
            "New-ADOrganizationalUnit",
            "Import-Module ActiveDirectory\n"
            f"New-ADOrganizationalUnit -Name {ps_quote(name)} -Path {ps_quote(parent)}\n"
            "$true | ConvertTo-Json -Compress",
        )
        log_success(logger, f"Created OU '{name}'")
        return True

    async def ensure_link(self, gpo_name: str, target_ou: str) -> bool:
        """Link the GPO to the OU if not linked. Returns True when linked now."""
        linked = await self._query(
            "Get-GPInheritance",
            "Import-Module GroupPolicy\n"
            f"$links = (Get-GPInheritance -Target {ps_quote(target_ou)}).GpoLinks\n"
            f"[bool]($links | Where-Object {{ $_.DisplayName -eq {ps_quote(gpo_name)} }}) "
            "| ConvertTo-Json -Compress",
        )
        if linked:
            logger.info(f"GPO '{gpo_name}' is already linked")
            return False

        await self._query(
            "New-GPLink",
            "Import-Module GroupPolicy\n"
            f"New-GPLink -Name {ps_quote(gpo_name)} -Target {ps_quote(target_ou)} "
            "-LinkEnabled Yes | Out-Null\n"
            "$true | ConvertTo-Json -Compress",
        )
        log_success(logger, f"Linked GPO '{gpo_name}'")
        return True

    async def rollback(self, result: GPODeploymentResult) -> None:
        """Remove objects created by a deployment that did not complete.

        Objects are removed in reverse creation order. A removal that fails
        is logged and the object stays listed in ``result.created``.
        """
        scripts = {
            "ou": (
                "Remove-ADOrganizationalUnit",
                "Import-Module ActiveDirectory\n"
                f"$ou = {ps_quote(result.target_ou)}\n"
                "Set-ADOrganizationalUnit -Identity $ou -ProtectedFromAccidentalDeletion $false\n"
                "Remove-ADOrganizationalUnit -Identity $ou -Confirm:$false\n"
                "$true | ConvertTo-Json -Compress",
            ),
            "gpo": (
                "Remove-GPO",
                "Import-Module GroupPolicy\n"
                f"Remove-GPO -Name {ps_quote(result.gpo_name)} -Confirm:$false\n"
                "$true | ConvertTo-Json -Compress",
            ),
        }

        for item in reversed(list(result.created)):
            if item not in scripts:
                continue
            step, script = scripts[item]
            try:
                await self._query(step, script)
            except (GPODeploymentError, RemoteExecutionError) as e:
                logger.warning(f"Rollback: {step} failed: {e.message}")
                continue
            logger.info(f"Rollback: {step} completed")
            result.created.remove(item)
            result.rolled_back.append(item)

    async def deploy(
        self,
        gpo_name: str | None = None,
        target_ou: str | None = None,
        create_ou: bool = False,
    ) -> GPODeploymentResult:
        """Ensure the GPO, OU and link exist.

        Never raises; failures are reported in the result.
        """
        gpo_name = gpo_name or self.settings.gpo_name
        target_ou = target_ou or self.settings.gpo_target_ou or ""
        result = GPODeploymentResult(gpo_name=gpo_name, target_ou=target_ou)
        if not target_ou:
            result.message = "No target OU specified"
            logger.error(result.message)
            return result

        try:
            if await self.ensure_gpo(gpo_name):
                result.created.append("gpo")
            if await self.ensure_ou(target_ou, create_ou):
                result.created.append("ou")
            if await self.ensure_link(gpo_name, target_ou):
                result.created.append("link")
        except GPODeploymentError as e:
            logger.error(f"GPO deployment failed at {e.step}: {e.message}")
            result.message = f"{e.step} failed: {e.message}"
            await self.rollback(result)
            return result
        except RemoteExecutionError as e:
            logger.error(f"GPO deployment failed: {e.message}")
            result.message = e.message
            await self.rollback(result)
            return result

        result.success = True
        result.message = (
            f"Created: {', '.join(result.created)}" if result.created else "Already configured"
        )
        return result
