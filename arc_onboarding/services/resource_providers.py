"""Resource provider registration for the active subscription.

Registration requests are asynchronous on the Azure side; this module
issues them but does not wait for completion. The returned status is the
snapshot taken before any request was sent.
"""

import logging

from arc_onboarding.core.retry import PROVIDER_QUERY_POLICY, retry_with_backoff
from arc_onboarding.preflight.models import ResourceProviderStatus
from arc_onboarding.services.azure_client import AzureClientManager

logger = logging.getLogger(__name__)

REGISTERED_STATE = "Registered"


class ResourceProviderRegistrar:
    """Query and register Azure resource provider namespaces."""

    def __init__(self, client_manager: AzureClientManager):
        self.client_manager = client_manager

    @retry_with_backoff(PROVIDER_QUERY_POLICY)
    async def get_registration_state(self, namespace: str) -> str:
        """Current registration state of a namespace."""
        client = self.client_manager.get_resource_client()
        provider = client.providers.get(namespace)
        return provider.registration_state or "Unknown"

    async def register(self, namespace: str) -> None:
        """Send a registration request (does not wait for completion)."""
        client = self.client_manager.get_resource_client()
        client.providers.register(namespace)

    async def ensure_registered(self, namespaces: set[str] | list[str]) -> ResourceProviderStatus:
        """Register every namespace that is not registered yet.

        A namespace whose state cannot be read is treated as unregistered and
        marks the status as not fully checked.

        Returns:
            ResourceProviderStatus with the pre-registration snapshot
        """
        unregistered: set[str] = set()
        registered_this_session = False
        all_queried = True

        for namespace in sorted(set(namespaces)):
            try:
                state = await self.get_registration_state(namespace)
            except Exception as e:
                logger.error(f"Could not query resource provider {namespace}: {e}")
                unregistered.add(namespace)
                all_queried = False
                continue

            if state == REGISTERED_STATE:
                logger.info(f"Resource provider {namespace} is registered")
                continue

            unregistered.add(namespace)
            logger.warning(f"Resource provider {namespace} is {state}, requesting registration")
            try:
                await self.register(namespace)
                registered_this_session = True
            except Exception as e:
                logger.error(f"Registration request for {namespace} failed: {e}")

        if registered_this_session:
            logger.info(
                "Registration requested; completion can take several minutes "
                "and is not verified during this run"
            )

        return ResourceProviderStatus(
            checked=all_queried,
            registered_this_session=registered_this_session,
            unregistered=unregistered,
        )
