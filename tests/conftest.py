"""
Pytest configuration and shared fixtures for substrate-memo tests.
"""

import pytest

from substrate_memo.lib.composer import Call
from substrate_memo.lib.keys import derive_identity

POLKADOT_FORMAT = 0


def call_to_subscan_params(call: Call):
    """Render a composed call the way Subscan reports extrinsic params."""

    def render_value(value):
        if isinstance(value, str) and value.startswith("{"):
            return "0x" + value.encode("utf-8").hex()
        return value

    def render_call(inner: Call):
        return {
            "call_module": inner.module,
            "call_name": inner.function,
            "params": [
                {"name": name, "type": "", "value": render_value(value)}
                for name, value in inner.params.items()
            ],
        }

    if call.is_batch:
        return [
            {
                "name": "calls",
                "type": "Vec<RuntimeCall>",
                "value": [render_call(c) for c in call.params["calls"]],
            }
        ]
    return render_call(call)["params"]


@pytest.fixture
def alice_seed():
    """Seed of the sending account."""
    return "0x139ace2d79edcd1af5f5449e784e48b147bdc0f22598fbb0fe3c3f0e02a5c451"


@pytest.fixture
def bob_seed():
    """Seed of the receiving account."""
    return "0x" + "42" * 32


@pytest.fixture
def eve_seed():
    """Seed of an account that is neither sender nor recipient."""
    return "0x" + "e5" * 32


@pytest.fixture
def alice(alice_seed):
    return derive_identity(alice_seed, "ed25519", POLKADOT_FORMAT)


@pytest.fixture
def bob(bob_seed):
    return derive_identity(bob_seed, "ed25519", POLKADOT_FORMAT)


@pytest.fixture
def eve(eve_seed):
    return derive_identity(eve_seed, "ed25519", POLKADOT_FORMAT)


@pytest.fixture
def mock_subscan_api_key():
    """Mock Subscan API key for testing."""
    return "test-subscan-key-12345"


@pytest.fixture
def subscan_base_url():
    return "https://assethub-polkadot.api.subscan.io"


@pytest.fixture
def subscan_params():
    """Converter from composed calls to Subscan extrinsic params."""
    return call_to_subscan_params
