"""Shared fixtures for unit tests."""

import json
from unittest.mock import MagicMock

import pytest

from arc_onboarding.core.config import Settings
from arc_onboarding.core.prompts import Prompter
from arc_onboarding.preflight.models import CheckName
from arc_onboarding.services.remote import PowerShellOutput, RemoteExecutionError

REQUIRED_ENDPOINTS = ["management.azure.com", "login.microsoftonline.com"]
OPTIONAL_ENDPOINTS = ["go.microsoft.com"]


def ps_json(value, status_code: int = 0, std_err: str = "") -> PowerShellOutput:
    """PowerShellOutput as a script ending in ConvertTo-Json would return it."""
    return PowerShellOutput(
        status_code=status_code,
        std_out=json.dumps(value),
        std_err=std_err,
        parsed=value,
    )


class FakeExecutor:
    """In-memory executor keyed by (device, check name) or check name."""

    def __init__(self, responses=None, unreachable=(), local=()):
        self.responses = dict(responses or {})
        self.unreachable = set(unreachable)
        self.local = set(local)
        self.calls: list[tuple[str, str]] = []
        self.probes: list[str] = []

    def is_local(self, device: str) -> bool:
        return device in self.local

    async def probe(self, device: str, port: int, timeout: float) -> tuple[bool, str]:
        self.probes.append(device)
        if device in self.unreachable:
            return False, f"Connection to {device}:{port} failed: refused"
        return True, f"{device}:{port} is reachable"

    async def run_powershell(self, device, script, timeout=None, label="script"):
        self.calls.append((device, label))
        response = self.responses.get((device, label), self.responses.get(label))
        if response is None:
            raise RemoteExecutionError(f"No response configured for '{label}'", device)
        if isinstance(response, Exception):
            raise response
        return response

    def labels_for(self, device: str) -> list[str]:
        return [label for d, label in self.calls if d == device]


class FakeClientManager:
    """Stand-in for AzureClientManager."""

    def __init__(
        self,
        subscriptions=None,
        active: bool = True,
        login_error: Exception | None = None,
        list_error: Exception | None = None,
        set_error: Exception | None = None,
        resource_client=None,
    ):
        self.subscriptions = list(subscriptions or [])
        self.active = active
        self.login_error = login_error
        self.list_error = list_error
        self.set_error = set_error
        self.resource_client = resource_client or MagicMock()
        self.login_calls = 0
        self.active_subscription_id = None

    def get_active_credential(self):
        return MagicMock() if self.active else None

    def login_interactive(self):
        self.login_calls += 1
        if self.login_error:
            raise self.login_error
        self.active = True
        return MagicMock()

    async def list_subscriptions(self):
        if self.list_error:
            raise self.list_error
        return list(self.subscriptions)

    def set_subscription(self, subscription_id: str) -> None:
        if self.set_error:
            raise self.set_error
        self.active_subscription_id = subscription_id

    def get_resource_client(self):
        return self.resource_client


def make_provider_client(states: dict[str, str]) -> MagicMock:
    """Resource client whose providers.get returns the given states."""
    client = MagicMock()

    def get_provider(namespace):
        provider = MagicMock()
        provider.registration_state = states.get(namespace, "Registered")
        return provider

    client.providers.get.side_effect = get_provider
    return client


def scripted_prompter(*answers: str, interactive: bool = True, max_attempts=None):
    """Prompter fed from canned answers; returns (prompter, printed lines)."""
    printed: list[str] = []
    remaining = list(answers)

    def read(prompt: str) -> str:
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    prompter = Prompter(
        interactive=interactive,
        input_func=read,
        output_func=printed.append,
        max_attempts=max_attempts,
    )
    return prompter, printed


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        required_endpoints=REQUIRED_ENDPOINTS,
        optional_endpoints=OPTIONAL_ENDPOINTS,
        check_timeout_seconds=5.0,
        connectivity_timeout_seconds=1.0,
        log_directory=str(tmp_path),
        diagnostics_output_dir=str(tmp_path),
        non_interactive=True,
    )


@pytest.fixture
def subscriptions():
    return [
        {"subscription_id": "00000000-0000-0000-0000-000000000001", "display_name": "Production", "state": "Enabled"},
        {"subscription_id": "00000000-0000-0000-0000-000000000002", "display_name": "Development", "state": "Enabled"},
        {"subscription_id": "00000000-0000-0000-0000-000000000003", "display_name": "Sandbox", "state": "Enabled"},
    ]


@pytest.fixture
def healthy_responses():
    """Responses for a device that passes every check at every depth."""
    endpoints = REQUIRED_ENDPOINTS + OPTIONAL_ENDPOINTS
    return {
        CheckName.POWERSHELL_VERSION.value: ps_json({"Major": 5, "Minor": 1}),
        CheckName.OS_VERSION.value: ps_json(
            {"Caption": "Microsoft Windows Server 2022 Datacenter", "Version": "10.0.20348"}
        ),
        CheckName.AZ_MODULE.value: ps_json({"Name": "Az.Accounts", "Version": "2.13.2"}),
        CheckName.AZURE_ARC_AGENT.value: ps_json({"Installed": True, "ServiceStatus": "Running"}),
        CheckName.NETWORK_CONNECTIVITY.value: ps_json(
            [{"Endpoint": e, "Reachable": True} for e in endpoints]
        ),
        CheckName.TLS_VERSION.value: ps_json({"Enabled": 1, "DisabledByDefault": 0}),
        CheckName.EXECUTION_POLICY.value: ps_json("RemoteSigned"),
        CheckName.MDE_SERVICE.value: ps_json({"Installed": True, "Status": "Running"}),
        CheckName.MDE_EXTENSION.value: ps_json({
            "AgentInstalled": True,
            "ExitCode": 0,
            "Extensions": [{"name": "MDE.Windows", "provisioningState": "Succeeded"}],
        }),
    }


@pytest.fixture
def fake_executor(healthy_responses):
    return FakeExecutor(healthy_responses)
