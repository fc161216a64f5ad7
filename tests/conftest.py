"""
Shared pytest fixtures.

``isolated_environ`` swaps ``os.environ`` for a copy without any toolkit
variables, so ``load_config`` (and python-dotenv, which writes into
``os.environ``) cannot leak state between tests.
"""

import os

import pytest

from test_mocks import (
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_ADMIN_PRIVATE_KEY,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_RPC_URL,
    MOCK_SPENDER_ADDRESS,
    MOCK_TOKEN_ADDRESS,
    MockChainClient,
    create_mock_config,
)

TOOLKIT_ENV = (
    "NETWORK_RPC_URL", "INFURA_SEPOLIA", "CHAIN_ID", "TOKEN_ADDRESS", "PRIVATE_KEY",
    "OWNER_PRIVATE_KEY", "OWNER_ADDRESS", "SPENDER_ADDRESS", "SPENDER_PRIVATE_KEY",
    "MY_ADDRESS", "RECIPIENT", "PERMIT_SIGNATURE", "PERMIT_VALUE", "PERMIT_DEADLINE",
    "LOG_LEVEL",
)


@pytest.fixture
def isolated_environ(monkeypatch):
    env = {k: v for k, v in os.environ.items() if k not in TOOLKIT_ENV}
    monkeypatch.setattr(os, "environ", env)
    return env


@pytest.fixture
def toolkit_environ(isolated_environ):
    """Environment with everything an allowance/admin command needs."""
    isolated_environ.update({
        "NETWORK_RPC_URL": MOCK_RPC_URL,
        "TOKEN_ADDRESS": MOCK_TOKEN_ADDRESS,
        "PRIVATE_KEY": MOCK_ADMIN_PRIVATE_KEY,
        "OWNER_PRIVATE_KEY": MOCK_OWNER_PRIVATE_KEY,
        "OWNER_ADDRESS": MOCK_OWNER_ADDRESS,
        "SPENDER_ADDRESS": MOCK_SPENDER_ADDRESS,
        "MY_ADDRESS": MOCK_OWNER_ADDRESS,
        "RECIPIENT": MOCK_RECIPIENT_ADDRESS,
    })
    return isolated_environ


@pytest.fixture
def missing_env_file(tmp_path):
    return str(tmp_path / "absent.env")


@pytest.fixture
def config():
    return create_mock_config()


@pytest.fixture
def owner_client():
    return MockChainClient(private_key=MOCK_OWNER_PRIVATE_KEY)


@pytest.fixture
def admin_client():
    return MockChainClient(private_key=MOCK_ADMIN_PRIVATE_KEY)
