"""Agent installation and Group Policy deployment."""

from arc_onboarding.provisioning.gpo import GPODeployer, GPODeploymentResult
from arc_onboarding.provisioning.installer import AgentInstaller, InstallResult

__all__ = ["AgentInstaller", "InstallResult", "GPODeployer", "GPODeploymentResult"]
