"""Azure SDK client wrapper for the operator's identity.

Credential resolution order:
1. Service principal from settings (azure_tenant_id/client_id/client_secret)
2. An existing Azure CLI login
3. Interactive login (browser, or device code when use_device_code is set)

The manager also holds the active working subscription used by the
resource-provider registrar.
"""

import logging

from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import (
    AzureCliCredential,
    ClientSecretCredential,
    DeviceCodeCredential,
    InteractiveBrowserCredential,
)
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.subscriptions import SubscriptionClient

from arc_onboarding.core.config import Settings, get_settings
from arc_onboarding.core.retry import SUBSCRIPTION_LIST_POLICY, retry_with_backoff

logger = logging.getLogger(__name__)

# Azure Management API scope
AZURE_MANAGEMENT_SCOPE = "https://management.azure.com/.default"


class AzureClientManager:
    """Manages the credential, subscription context and ARM clients."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._credential: TokenCredential | None = None
        self.active_subscription_id: str | None = None

    @property
    def credential(self) -> TokenCredential | None:
        return self._credential

    def _candidate_credentials(self) -> list[tuple[str, TokenCredential]]:
        candidates: list[tuple[str, TokenCredential]] = []
        settings = self._settings
        if settings.has_service_principal:
            candidates.append((
                "service principal",
                ClientSecretCredential(
                    tenant_id=settings.azure_tenant_id,
                    client_id=settings.azure_client_id,
                    client_secret=settings.azure_client_secret,
                ),
            ))
        candidates.append(("Azure CLI", AzureCliCredential(process_timeout=30)))
        return candidates

    def get_active_credential(self) -> TokenCredential | None:
        """Return a credential for an identity that is already signed in.

        Returns:
            A working credential, or None when no identity is available
        """
        if self._credential is not None:
            return self._credential

        for label, credential in self._candidate_credentials():
            try:
                credential.get_token(AZURE_MANAGEMENT_SCOPE)
            except ClientAuthenticationError as e:
                logger.debug(f"No usable {label} identity: {e}")
                continue

            logger.info(f"Using existing {label} identity")
            self._credential = credential
            return credential

        return None

    def login_interactive(self) -> TokenCredential:
        """Start an interactive login and verify it completed.

        Raises:
            ClientAuthenticationError: If the login is declined or fails
        """
        kwargs = {}
        if self._settings.azure_tenant_id:
            kwargs["tenant_id"] = self._settings.azure_tenant_id

        if self._settings.use_device_code:
            credential = DeviceCodeCredential(**kwargs)
        else:
            credential = InteractiveBrowserCredential(**kwargs)

        credential.get_token(AZURE_MANAGEMENT_SCOPE)
        logger.info("Interactive login completed")
        self._credential = credential
        return credential

    def _require_credential(self) -> TokenCredential:
        if self._credential is None:
            raise ValueError("Not authenticated: call get_active_credential or login_interactive first")
        return self._credential

    def get_subscription_client(self) -> SubscriptionClient:
        return SubscriptionClient(self._require_credential())

    @retry_with_backoff(SUBSCRIPTION_LIST_POLICY)
    async def list_subscriptions(self) -> list[dict[str, str]]:
        """List all subscriptions visible to the authenticated identity."""
        client = self.get_subscription_client()
        subscriptions = []
        for sub in client.subscriptions.list():
            state = sub.state.value if hasattr(sub.state, "value") else str(sub.state or "Unknown")
            subscriptions.append({
                "subscription_id": sub.subscription_id,
                "display_name": sub.display_name,
                "state": state,
            })
        logger.info(f"Found {len(subscriptions)} subscription(s)")
        return subscriptions

    def set_subscription(self, subscription_id: str) -> None:
        """Verify a subscription is accessible and make it the working context."""
        client = self.get_subscription_client()
        client.subscriptions.get(subscription_id)
        self.active_subscription_id = subscription_id

    def get_resource_client(self) -> ResourceManagementClient:
        """Get a resource management client for the active subscription."""
        if not self.active_subscription_id:
            raise ValueError("No active subscription context")
        return ResourceManagementClient(self._require_credential(), self.active_subscription_id)
