"""
Balance, transfer, allowance-read, offline helper and deploy command tests.
"""

import hashlib
import json

import pytest
from eth_account import Account

from test_mocks import (
    MOCK_OTHER_TOKEN_ADDRESS,
    MOCK_OWNER_ADDRESS,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_SPENDER_ADDRESS,
    ONE_TOKEN,
    create_mock_config,
    create_mock_context,
)

from erc20_toolkit.commands import accounts, deploy, transfers
from erc20_toolkit.commands.allowance import cmd_allowance
from erc20_toolkit.engine.exceptions import ConfigError


class TestBalances:

    @pytest.mark.asyncio
    async def test_token_balance_defaults_to_my_address(self, owner_client):
        owner_client.balances[MOCK_OWNER_ADDRESS] = 15 * 10 ** 17
        ctx = create_mock_context(owner_client)

        result = await transfers.cmd_balance(ctx)

        assert result["formatted"] == "1.5"
        assert ctx.lines == [
            "Yan's Token (YAN), decimals: 18",
            f"Balance of {MOCK_OWNER_ADDRESS}: 1.5 YAN",
        ]

    @pytest.mark.asyncio
    async def test_token_balance_needs_holder(self, owner_client):
        ctx = create_mock_context(owner_client, create_mock_config(my_address=None))
        with pytest.raises(ConfigError, match="MY_ADDRESS"):
            await transfers.cmd_balance(ctx)

    @pytest.mark.asyncio
    async def test_eth_balance(self, owner_client):
        owner_client.eth_balances[MOCK_RECIPIENT_ADDRESS] = 10 ** 16
        ctx = create_mock_context(owner_client)
        result = await transfers.cmd_eth_balance(ctx, MOCK_RECIPIENT_ADDRESS)
        assert result["eth"] == "0.01"
        assert ctx.lines == [f"Balance of {MOCK_RECIPIENT_ADDRESS}: 0.01 ETH"]


class TestTransfers:

    @pytest.mark.asyncio
    async def test_transfer_to_default_recipient(self, admin_client):
        ctx = create_mock_context(admin_client)
        result = await transfers.cmd_transfer(ctx, "3")
        assert result["to"] == MOCK_RECIPIENT_ADDRESS
        assert admin_client.sent() == [("transfer", (MOCK_RECIPIENT_ADDRESS, 3 * ONE_TOKEN))]
        assert ctx.lines[-1] == "status: success"

    @pytest.mark.asyncio
    async def test_send_eth(self, admin_client):
        ctx = create_mock_context(admin_client)
        result = await transfers.cmd_send_eth(ctx, "0.01")
        assert result["wei"] == 10 ** 16
        assert admin_client.eth_balances[MOCK_RECIPIENT_ADDRESS] == 10 ** 16
        assert ctx.lines[0] == f"transaction hash: {result['tx_hash']}"

    @pytest.mark.asyncio
    async def test_send_eth_rejects_bad_amount(self, admin_client):
        with pytest.raises(ConfigError):
            await transfers.cmd_send_eth(create_mock_context(admin_client), "lots")
        assert admin_client.sent() == []


class TestAllowanceRead:

    @pytest.mark.asyncio
    async def test_configured_token(self, owner_client):
        owner_client.allowances[(MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS)] = 5 * 10 ** 17
        ctx = create_mock_context(owner_client)

        result = await cmd_allowance(ctx)

        assert result["allowance"] == 5 * 10 ** 17
        assert ctx.lines[-1] == "Allowance: 500000000000000000 raw (0.5 YAN)"

    @pytest.mark.asyncio
    async def test_other_token_is_queried_directly(self, owner_client):
        owner_client.web3.contract.results["allowance"] = 77
        ctx = create_mock_context(owner_client)

        result = await cmd_allowance(ctx, token=MOCK_OTHER_TOKEN_ADDRESS)

        assert result["allowance"] == 77
        assert result["decimals"] is None
        assert ctx.lines[-1] == "Allowance: 77 raw"
        assert owner_client.calls == []

    @pytest.mark.asyncio
    async def test_owner_required(self, owner_client):
        ctx = create_mock_context(owner_client, create_mock_config(owner_address=None))
        with pytest.raises(ConfigError, match="OWNER_ADDRESS"):
            await cmd_allowance(ctx)


class TestOfflineHelpers:

    def test_wallet_new(self):
        lines = []
        result = accounts.cmd_wallet_new(echo=lines.append)

        assert len(result["mnemonic"].split()) == 12
        assert Account.from_key(result["private_key"]).address == result["address"]
        assert Account.from_mnemonic(result["mnemonic"], account_path=result["path"]).address == result["address"]
        assert lines[-1] == f"Address: {result['address']}"

    def test_hash(self):
        lines = []
        result = accounts.cmd_hash("hello blockchain", echo=lines.append)
        expected = hashlib.sha256(b"hello blockchain").hexdigest()
        assert result["sha256"] == expected
        assert lines == [f"SHA-256: {expected}"]


class TestDeploy:

    def write_artifact(self, tmp_path, bytecode):
        path = tmp_path / "Token.json"
        path.write_text(json.dumps({"abi": [], "bytecode": bytecode}), encoding="utf-8")
        return str(path)

    def test_load_artifact_foundry_layout(self, tmp_path):
        abi, bytecode = deploy.load_artifact(self.write_artifact(tmp_path, {"object": "6080"}))
        assert abi == []
        assert bytecode == "0x6080"

    @pytest.mark.parametrize("content", ["not json", json.dumps({"abi": []})])
    def test_load_artifact_rejects(self, tmp_path, content):
        path = tmp_path / "bad.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            deploy.load_artifact(str(path))

    def test_load_artifact_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read artifact"):
            deploy.load_artifact(str(tmp_path / "nope.json"))

    def test_append_env_adds_newline(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("A=1", encoding="utf-8")
        deploy.append_env(str(env), "TOKEN_ADDRESS", "0xabc")
        assert env.read_text(encoding="utf-8") == "A=1\nTOKEN_ADDRESS=0xabc\n"

    @pytest.mark.asyncio
    async def test_deploy_and_save(self, admin_client, tmp_path):
        env = tmp_path / ".env"
        ctx = create_mock_context(admin_client)

        result = await deploy.cmd_deploy(
            ctx, self.write_artifact(tmp_path, "0x6080"), "Test", "TST", "500", str(env)
        )

        assert result["contract_address"] == MOCK_OTHER_TOKEN_ADDRESS
        assert admin_client.sent() == [("constructor", ("Test", "TST", 500))]
        assert env.read_text(encoding="utf-8") == f"TOKEN_ADDRESS={MOCK_OTHER_TOKEN_ADDRESS}\n"

    @pytest.mark.asyncio
    async def test_deploy_bad_supply(self, admin_client, tmp_path):
        with pytest.raises(ConfigError):
            await deploy.cmd_deploy(create_mock_context(admin_client), self.write_artifact(tmp_path, "0x60"), supply="1.5")
