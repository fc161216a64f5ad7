"""
ChainClient Test Suite

Exercises the read / simulate / send / wait verbs against a mocked
AsyncWeb3 provider: error translation, fee derivation, gas estimation
fallbacks and receipt handling.

Usage:
    pytest tests/test_adapter/test_chain_client.py -v
"""

import pytest
from unittest.mock import AsyncMock, Mock
from web3.exceptions import ContractLogicError, MismatchedABI, TimeExhausted

from test_mocks import (
    MOCK_BLOCK_NUMBER,
    MOCK_GAS_USED,
    MOCK_OWNER_ADDRESS,
    MOCK_OWNER_PRIVATE_KEY,
    MOCK_RECIPIENT_ADDRESS,
    MOCK_SPENDER_ADDRESS,
    MOCK_SPENDER_PRIVATE_KEY,
    MOCK_TOKEN_ADDRESS,
    MOCK_TX_HASH,
    MockWeb3Provider,
    create_mock_config,
    create_mock_receipt,
)

from eth_account import Account

from erc20_toolkit.adapters.evm.client import FALLBACK_GAS_LIMIT, ChainClient
from erc20_toolkit.adapters.evm.schemas import GasOverrides
from erc20_toolkit.engine.exceptions import (
    BlockchainInteractionError,
    ConfigError,
    SimulationRejected,
    SubmissionFailed,
)
from erc20_toolkit.schemas.bases import TransactionStatus


@pytest.fixture
def w3():
    return MockWeb3Provider()


@pytest.fixture
def client(w3):
    return ChainClient(create_mock_config(), MOCK_OWNER_PRIVATE_KEY, web3=w3)


def last_params(w3):
    """Params passed to the last ``build_transaction``."""
    return w3.contract.bound[-1].build_transaction.await_args.args[0]


class TestInitialization:

    def test_signer_from_key(self, client):
        assert client.address == MOCK_OWNER_ADDRESS
        assert client.chain_id == 11155111
        assert client.token_address == MOCK_TOKEN_ADDRESS

    def test_read_only_client_has_no_address(self, w3):
        client = ChainClient(create_mock_config(), None, web3=w3)
        assert client.account is None
        with pytest.raises(ConfigError):
            client.address

    def test_from_config_requires_rpc_url(self):
        with pytest.raises(ConfigError, match="NETWORK_RPC_URL"):
            ChainClient.from_config(create_mock_config(rpc_url=None))

    def test_contract_requires_token_address(self, w3):
        client = ChainClient(create_mock_config(token_address=None), None, web3=w3)
        with pytest.raises(ConfigError, match="TOKEN_ADDRESS"):
            client.contract

    def test_contract_built_once(self, client, w3):
        assert client.contract is client.contract
        w3.eth.contract.assert_called_once()
        assert w3.eth.contract.call_args.kwargs["address"] == MOCK_TOKEN_ADDRESS


class TestReads:

    @pytest.mark.asyncio
    async def test_read_returns_decoded_value(self, client, w3):
        w3.contract.results["allowance"] = 123
        assert await client.read("allowance", MOCK_OWNER_ADDRESS, MOCK_SPENDER_ADDRESS) == 123

    @pytest.mark.asyncio
    async def test_unknown_function_rejected_before_rpc(self, client, w3):
        with pytest.raises(ValueError, match="not part of the token interface"):
            await client.read("steal")
        assert w3.contract.bound == []

    @pytest.mark.asyncio
    async def test_wrong_arity_rejected(self, client):
        with pytest.raises(ValueError, match="allowance takes 2"):
            await client.read("allowance", MOCK_OWNER_ADDRESS)

    @pytest.mark.asyncio
    async def test_revert_becomes_interaction_error(self, client, w3):
        w3.contract.reverts.add("paused")
        with pytest.raises(BlockchainInteractionError) as exc_info:
            await client.read("paused")
        assert exc_info.value.function == "paused"

    @pytest.mark.asyncio
    async def test_try_read_defaults(self, client, w3):
        w3.contract.reverts.add("owner")
        assert await client.try_read("owner") is None
        assert await client.try_read("owner", default="n/a") == "n/a"

    @pytest.mark.asyncio
    async def test_native_balance(self, client, w3):
        assert await client.get_balance(MOCK_RECIPIENT_ADDRESS.lower()) == 5 * 10 ** 17
        w3.eth.get_balance.assert_awaited_once_with(MOCK_RECIPIENT_ADDRESS)


class TestSimulate:

    @pytest.mark.asyncio
    async def test_simulates_from_signer(self, client, w3):
        assert await client.simulate("approve", MOCK_SPENDER_ADDRESS, 0) is True
        w3.contract.bound[-1].call.assert_awaited_once_with({"from": MOCK_OWNER_ADDRESS})

    @pytest.mark.asyncio
    async def test_explicit_sender(self, client, w3):
        await client.simulate("approve", MOCK_SPENDER_ADDRESS, 0, sender=MOCK_SPENDER_ADDRESS)
        w3.contract.bound[-1].call.assert_awaited_once_with({"from": MOCK_SPENDER_ADDRESS})

    @pytest.mark.asyncio
    async def test_revert_becomes_simulation_rejected(self, client, w3):
        w3.contract.reverts.add("decreaseAllowance")
        with pytest.raises(SimulationRejected) as exc_info:
            await client.simulate("decreaseAllowance", MOCK_SPENDER_ADDRESS, 1)
        assert exc_info.value.exit_code == 3
        assert "execution reverted" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_unencodable_argument_becomes_simulation_rejected(self, client, w3):
        with pytest.raises(SimulationRejected) as exc_info:
            await client.simulate("increaseAllowance", MOCK_SPENDER_ADDRESS, 2 ** 256)
        assert "uint256" in exc_info.value.reason
        assert exc_info.value.function == "increaseAllowance"
        assert w3.contract.bound == []


class TestSend:

    @pytest.mark.asyncio
    async def test_send_builds_eip1559_transaction(self, client, w3):
        tx_hash = await client.send("approve", MOCK_SPENDER_ADDRESS, 5)

        assert tx_hash == MOCK_TX_HASH
        params = last_params(w3)
        assert params["from"] == MOCK_OWNER_ADDRESS
        assert params["nonce"] == 7
        assert params["chainId"] == 11155111
        assert params["gas"] == 66_000
        # base fee 12 gwei * 2 + 1.5 gwei tip
        assert params["maxFeePerGas"] == 25_500_000_000
        assert params["maxPriorityFeePerGas"] == 1_500_000_000
        w3.eth.get_transaction_count.assert_awaited_once_with(MOCK_OWNER_ADDRESS, "pending")
        w3.eth.send_raw_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_legacy_gas_price_when_fee_history_unavailable(self, client, w3):
        w3.eth.fee_history = AsyncMock(side_effect=ValueError("method not supported"))
        await client.send("approve", MOCK_SPENDER_ADDRESS, 5)

        params = last_params(w3)
        assert params["gasPrice"] == 20_000_000_000
        assert "maxFeePerGas" not in params

    @pytest.mark.asyncio
    async def test_fee_overrides_applied(self, client, w3):
        await client.send("approve", MOCK_SPENDER_ADDRESS, 5, fees=GasOverrides.from_gwei("30", "2"))

        params = last_params(w3)
        assert params["maxFeePerGas"] == 30_000_000_000
        assert params["maxPriorityFeePerGas"] == 2_000_000_000

    @pytest.mark.asyncio
    async def test_fixed_gas_when_estimate_fails(self, client, w3):
        w3.contract.gas_fails.add("approve")
        await client.send("approve", MOCK_SPENDER_ADDRESS, 5)
        assert last_params(w3)["gas"] == FALLBACK_GAS_LIMIT

    @pytest.mark.asyncio
    async def test_broadcast_failure_becomes_submission_failed(self, client, w3):
        w3.eth.send_raw_transaction = AsyncMock(side_effect=ValueError("nonce too low"))
        with pytest.raises(SubmissionFailed) as exc_info:
            await client.send("approve", MOCK_SPENDER_ADDRESS, 5)
        assert exc_info.value.reason == "nonce too low"
        assert exc_info.value.tx_hash is None

    @pytest.mark.asyncio
    async def test_unencodable_argument_is_never_broadcast(self, client, w3):
        with pytest.raises(SubmissionFailed) as exc_info:
            await client.send("approve", MOCK_SPENDER_ADDRESS, -1)
        assert "uint256" in exc_info.value.reason
        w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unencodable_constructor_arguments(self, client, w3):
        factory = Mock()
        factory.constructor.side_effect = MismatchedABI("Argument 3 value -1 is not compatible with type uint256")
        w3.eth.contract = Mock(return_value=factory)
        with pytest.raises(SubmissionFailed) as exc_info:
            await client.deploy([], "0x6080", ("Test", "TST", -1))
        assert exc_info.value.function == "constructor"
        w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_explicit_signer(self, client, w3):
        relayer = Account.from_key(MOCK_SPENDER_PRIVATE_KEY)
        await client.send("approve", MOCK_SPENDER_ADDRESS, 5, signer=relayer)
        assert last_params(w3)["from"] == MOCK_SPENDER_ADDRESS

    @pytest.mark.asyncio
    async def test_send_without_key(self, w3):
        client = ChainClient(create_mock_config(), None, web3=w3)
        with pytest.raises(ConfigError):
            await client.send("approve", MOCK_SPENDER_ADDRESS, 5)

    @pytest.mark.asyncio
    async def test_send_value(self, client, w3):
        tx_hash = await client.send_value(MOCK_RECIPIENT_ADDRESS, 10 ** 16)
        assert tx_hash == MOCK_TX_HASH
        estimated = w3.eth.estimate_gas.await_args.args[0]
        assert estimated["to"] == MOCK_RECIPIENT_ADDRESS
        assert estimated["value"] == 10 ** 16


class TestReceipts:

    @pytest.mark.asyncio
    async def test_success(self, client, w3):
        confirmation = await client.wait_for_receipt(MOCK_TX_HASH, function="approve")

        assert confirmation.is_success()
        assert confirmation.block_number == MOCK_BLOCK_NUMBER
        assert confirmation.gas_used == MOCK_GAS_USED
        assert confirmation.transaction_fee == MOCK_GAS_USED * 2_000_000_000
        assert confirmation.get_confirmation_status() == "success"

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, client, w3):
        w3.eth.wait_for_transaction_receipt = AsyncMock(return_value=create_mock_receipt(status=0))
        with pytest.raises(SubmissionFailed) as exc_info:
            await client.wait_for_receipt(MOCK_TX_HASH, function="approve")
        assert exc_info.value.reason == TransactionStatus.FAILED.value
        assert exc_info.value.tx_hash == MOCK_TX_HASH
        assert exc_info.value.function == "approve"

    @pytest.mark.asyncio
    async def test_timeout(self, client, w3):
        w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=TimeExhausted("not mined"))
        with pytest.raises(SubmissionFailed) as exc_info:
            await client.wait_for_receipt(MOCK_TX_HASH)
        assert exc_info.value.reason == TransactionStatus.TIMEOUT.value


class TestTransact:

    @pytest.mark.asyncio
    async def test_simulates_then_sends(self, client, w3):
        confirmation = await client.transact("pause")
        assert confirmation.tx_hash == MOCK_TX_HASH
        # simulate binds once, send binds once
        assert [fn.name for fn in w3.contract.bound] == ["pause", "pause"]
        w3.contract.bound[0].call.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_simulation_sends_nothing(self, client, w3):
        w3.contract.results["pause"] = None
        w3.contract.reverts.add("pause")
        with pytest.raises(SimulationRejected):
            await client.transact("pause")
        w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_skip_simulation(self, client, w3):
        await client.transact("pause", simulate=False)
        assert [fn.name for fn in w3.contract.bound] == ["pause"]
