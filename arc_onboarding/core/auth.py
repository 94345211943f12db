"""Azure authentication and subscription selection.

SECURITY: Subscription IDs and tenant IDs are never shown to the
operator. The selection list shows subscription names only, and log
messages name the subscription, not its identifier.
"""

import logging

from arc_onboarding.core.logfile import log_success
from arc_onboarding.core.prompts import Prompter
from arc_onboarding.preflight.models import AuthResult
from arc_onboarding.services.azure_client import AzureClientManager

logger = logging.getLogger(__name__)


class AuthSession:
    """Resolve an authenticated identity and a working subscription."""

    def __init__(
        self,
        client_manager: AzureClientManager | None = None,
        prompter: Prompter | None = None,
    ):
        self.client_manager = client_manager or AzureClientManager()
        self.prompter = prompter or Prompter()

    def _failure(self, message: str) -> AuthResult:
        logger.error(f"Authentication failed: {message}")
        return AuthResult(success=False, message=message)

    async def authenticate(self, subscription_id_hint: str | None = None) -> AuthResult:
        """Authenticate and select a subscription.

        Never raises; every failure is reported through the result.

        Args:
            subscription_id_hint: Subscription to use without prompting if it
                is visible to the identity (matched by ID or name)

        Returns:
            AuthResult with the selected subscription on success
        """
        try:
            credential = self.client_manager.get_active_credential()
        except Exception as e:
            logger.warning(f"Could not check for an existing Azure identity: {e}")
            credential = None

        if credential is None:
            if not self.prompter.interactive:
                return self._failure(
                    "No authenticated Azure identity and interactive login is disabled"
                )
            self.prompter.say("No active Azure session found. Starting interactive login...")
            try:
                self.client_manager.login_interactive()
            except Exception as e:
                return self._failure(f"Interactive login did not complete: {type(e).__name__}")

        try:
            subscriptions = await self.client_manager.list_subscriptions()
        except Exception as e:
            return self._failure(f"Could not list subscriptions: {type(e).__name__}")

        if not subscriptions:
            return self._failure("No subscriptions are visible to the authenticated identity")

        selected = self._match_hint(subscriptions, subscription_id_hint)
        if selected is None:
            if subscription_id_hint:
                self.prompter.say("The requested subscription is not available to this identity.")
            selected = self.select_subscription(subscriptions)

        name = selected.get("display_name") or "Unnamed subscription"
        try:
            self.client_manager.set_subscription(selected["subscription_id"])
        except Exception as e:
            return self._failure(f"Failed to set subscription context to '{name}': {type(e).__name__}")

        log_success(logger, f"Subscription context set to '{name}'")
        return AuthResult(
            success=True,
            message=f"Authenticated; using subscription '{name}'",
            subscription_id=selected["subscription_id"],
            subscription_name=name,
        )

    @staticmethod
    def _match_hint(
        subscriptions: list[dict[str, str]], hint: str | None
    ) -> dict[str, str] | None:
        if not hint:
            return None
        wanted = hint.strip().lower()
        for sub in subscriptions:
            if wanted in (
                str(sub.get("subscription_id", "")).lower(),
                str(sub.get("display_name", "")).lower(),
            ):
                return sub
        return None

    def select_subscription(self, subscriptions: list[dict[str, str]]) -> dict[str, str]:
        """Show subscription names and ask the operator to pick one (default 1)."""
        self.prompter.say("Available subscriptions:")
        for index, sub in enumerate(subscriptions, start=1):
            self.prompter.say(f"  [{index}] {sub.get('display_name') or 'Unnamed subscription'}")

        selection = self.prompter.choose("Select a subscription", len(subscriptions), default=1)
        return subscriptions[selection - 1]
