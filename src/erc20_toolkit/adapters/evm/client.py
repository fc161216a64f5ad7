"""
Async JSON-RPC client bound to one token contract.

``ChainClient`` is the only place the toolkit talks to a node.  Every
contract call goes through one of four verbs:

    read      decoded return value of a view function
    simulate  ``eth_call`` of a state-changing function; reverts become
              ``SimulationRejected`` and nothing is broadcast
    send      build, sign and broadcast; returns the transaction hash
    wait_for_receipt
              block until mined; reverts and timeouts become
              ``SubmissionFailed``

``transact`` chains the three write verbs.  Function names and argument
counts are checked against ``TOKEN_FUNCTIONS`` before any RPC is made.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted, Web3Exception

from .ERC20_ABI import get_function, get_token_abi
from .constants import ToolkitConfig
from .schemas import EVMTransactionConfirmation, GasOverrides
from ...engine.exceptions import (
    BlockchainInteractionError,
    ConfigError,
    SimulationRejected,
    SubmissionFailed,
)
from ...schemas.bases import TransactionStatus
from ...utils import logger

#: Used when ``eth_estimateGas`` fails for a call whose simulation passed.
FALLBACK_GAS_LIMIT = 100_000
NATIVE_TRANSFER_GAS = 21_000
GAS_BUFFER = 1.1

# Errors a node round-trip can surface: web3's own hierarchy, pre-v7 RPC
# errors (ValueError) and transport failures.
_RPC_ERRORS = (Web3Exception, ValueError, OSError, asyncio.TimeoutError)


def _reason(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    return str(message or exc) or exc.__class__.__name__


class ChainClient:
    """
    Read/simulate/send access to one ERC-20 token.

    Args:
        config: Resolved configuration (``rpc_url`` and ``chain_id`` are used,
            ``token_address`` when contract calls are made).
        private_key: Default signing key; optional for read-only commands.
        web3: Pre-built ``AsyncWeb3`` (tests inject a mock here).
        request_timeout: HTTP timeout per RPC request, seconds.
        receipt_timeout: Maximum wait for a receipt, seconds.

    Example:
        client = ChainClient.from_config(config, private_key=config.owner_key)
        before = await client.read("allowance", client.address, spender)
        await client.transact("approve", spender, 0)
    """

    def __init__(
        self,
        config: ToolkitConfig,
        private_key: Optional[str] = None,
        *,
        web3: Optional[AsyncWeb3] = None,
        request_timeout: int = 60,
        receipt_timeout: float = 180.0,
    ):
        self.config = config
        self.chain_id = config.chain_id
        self.token_address = config.token_address
        self._receipt_timeout = receipt_timeout

        if web3 is None:
            web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
                config.rpc_url,
                request_kwargs={"timeout": request_timeout},
            ))
        self.web3 = web3

        self.account: Optional[LocalAccount] = Account.from_key(private_key) if private_key else None
        self._contract = None

    @classmethod
    def from_config(cls, config: ToolkitConfig, private_key: Optional[str] = None, **kwargs) -> "ChainClient":
        """
        Build a client after checking that an RPC endpoint is configured.

        Raises:
            ConfigError: If ``NETWORK_RPC_URL`` is unset.
        """
        config.require("rpc_url")
        return cls(config, private_key, **kwargs)

    @property
    def address(self) -> str:
        """Checksummed address of the default signer."""
        if self.account is None:
            raise ConfigError("No signing key configured for this command")
        return self.account.address

    @property
    def contract(self):
        if self._contract is None:
            if not self.token_address:
                raise ConfigError("Missing env: TOKEN_ADDRESS")
            self._contract = self.web3.eth.contract(
                address=AsyncWeb3.to_checksum_address(self.token_address),
                abi=get_token_abi(),
            )
        return self._contract

    @staticmethod
    def _check_arity(fn: str, args: Sequence[Any]) -> None:
        abi_fn = get_function(fn)
        if len(args) != abi_fn.arity:
            raise ValueError(f"{fn} takes {abi_fn.arity} argument(s), got {len(args)}")

    def _bind(self, fn: str, args: Sequence[Any]):
        # web3 encodes arguments here; out-of-range values raise MismatchedABI
        return getattr(self.contract.functions, fn)(*args)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read(self, fn: str, *args: Any) -> Any:
        """
        Call a view function and return the decoded result.

        Raises:
            BlockchainInteractionError: On revert or RPC failure.
            ValueError: If ``fn`` is unknown or the arity is wrong.
        """
        self._check_arity(fn, args)
        try:
            return await self._bind(fn, args).call()
        except _RPC_ERRORS as e:
            raise BlockchainInteractionError(
                f"Read of {fn} failed: {_reason(e)}", function=fn, reason=_reason(e)
            ) from e

    async def try_read(self, fn: str, *args: Any, default: Any = None) -> Any:
        """``read`` that degrades to ``default`` (logged) instead of raising."""
        try:
            return await self.read(fn, *args)
        except BlockchainInteractionError as e:
            logger.info("Optional read %s unavailable: %s", fn, e.reason)
            return default

    async def get_balance(self, address: str) -> int:
        """Native balance of ``address`` in wei."""
        try:
            return int(await self.web3.eth.get_balance(AsyncWeb3.to_checksum_address(address)))
        except _RPC_ERRORS as e:
            raise BlockchainInteractionError(
                f"Balance query for {address} failed: {_reason(e)}", reason=_reason(e)
            ) from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def simulate(self, fn: str, *args: Any, sender: Optional[str] = None) -> Any:
        """
        Dry-run a state-changing call via ``eth_call``.

        Args:
            sender: ``from`` of the call; defaults to the signer.

        Returns:
            The decoded return value of the simulated call.

        Raises:
            SimulationRejected: On revert, RPC failure or arguments the ABI
                cannot encode.
        """
        self._check_arity(fn, args)
        if sender is None and self.account is not None:
            sender = self.account.address
        params = {"from": sender} if sender else {}
        try:
            result = await self._bind(fn, args).call(params)
        except _RPC_ERRORS as e:
            logger.debug("Simulation of %s%r rejected: %s", fn, args, _reason(e))
            raise SimulationRejected(
                f"Simulation of {fn} rejected: {_reason(e)}", function=fn, reason=_reason(e)
            ) from e
        logger.debug("Simulation of %s%r ok", fn, args)
        return result

    async def _fee_fields(self, fees: Optional[GasOverrides]) -> Dict[str, int]:
        try:
            history = await self.web3.eth.fee_history(1, "latest", [25.0])
            base_fee = int(history["baseFeePerGas"][-1])
            rewards = history.get("reward") or [[0]]
            tip = max(int(rewards[-1][0]), 1)
            tx = {"maxFeePerGas": base_fee * 2 + tip, "maxPriorityFeePerGas": tip}
        except (*_RPC_ERRORS, KeyError, IndexError, TypeError) as e:
            logger.debug("fee history unavailable (%s), using legacy gasPrice", _reason(e))
            tx = {"gasPrice": int(await self.web3.eth.gas_price)}
        if fees is not None:
            fees.apply(tx)
        return tx

    async def _base_params(self, account: LocalAccount, fees: Optional[GasOverrides]) -> Dict[str, Any]:
        nonce = await self.web3.eth.get_transaction_count(account.address, "pending")
        params: Dict[str, Any] = {
            "from": account.address,
            "nonce": nonce,
            "chainId": self.chain_id,
        }
        params.update(await self._fee_fields(fees))
        return params

    async def _broadcast(self, account: LocalAccount, tx: Dict[str, Any]) -> str:
        signed = account.sign_transaction(tx)
        tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return AsyncWeb3.to_hex(tx_hash)

    async def send(
        self,
        fn: str,
        *args: Any,
        fees: Optional[GasOverrides] = None,
        signer: Optional[LocalAccount] = None,
    ) -> str:
        """
        Build, sign and broadcast a contract call.

        Gas is the node's estimate plus 10% (``FALLBACK_GAS_LIMIT`` when the
        estimate fails); fees come from ``eth_feeHistory`` with a legacy
        ``gasPrice`` fallback, then ``fees`` overrides are applied.

        Returns:
            0x-prefixed transaction hash.

        Raises:
            SubmissionFailed: If encoding, building, signing or broadcasting fails.
        """
        account = signer or self.account
        if account is None:
            raise ConfigError("No signing key configured for this command")
        self._check_arity(fn, args)

        try:
            bound = self._bind(fn, args)
            params = await self._base_params(account, fees)
            try:
                estimate = await bound.estimate_gas({"from": account.address})
                params["gas"] = int(estimate * GAS_BUFFER)
            except _RPC_ERRORS as e:
                logger.warning("Gas estimate for %s failed (%s); using %d", fn, _reason(e), FALLBACK_GAS_LIMIT)
                params["gas"] = FALLBACK_GAS_LIMIT
            tx = await bound.build_transaction(params)
            tx_hash = await self._broadcast(account, tx)
        except _RPC_ERRORS as e:
            raise SubmissionFailed(
                f"Submission of {fn} failed: {_reason(e)}", function=fn, reason=_reason(e)
            ) from e

        logger.info("Sent %s from %s: %s", fn, account.address, tx_hash)
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str, *, function: Optional[str] = None) -> EVMTransactionConfirmation:
        """
        Wait until ``tx_hash`` is mined.

        Returns:
            :class:`EVMTransactionConfirmation` with ``status=SUCCESS``.

        Raises:
            SubmissionFailed: If the transaction reverted or the receipt did
                not arrive within ``receipt_timeout``.
        """
        started = time.monotonic()
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        except TimeExhausted as e:
            raise SubmissionFailed(
                f"Transaction {tx_hash} not mined within {self._receipt_timeout:.0f}s",
                function=function,
                reason=TransactionStatus.TIMEOUT.value,
                tx_hash=tx_hash,
            ) from e
        except _RPC_ERRORS as e:
            raise SubmissionFailed(
                f"Waiting for {tx_hash} failed: {_reason(e)}",
                function=function,
                reason=_reason(e),
                tx_hash=tx_hash,
            ) from e

        gas_used = receipt.get("gasUsed")
        effective_price = receipt.get("effectiveGasPrice")
        contract_address = receipt.get("contractAddress")
        confirmation = EVMTransactionConfirmation(
            status=TransactionStatus.SUCCESS if receipt.get("status") == 1 else TransactionStatus.FAILED,
            tx_hash=tx_hash,
            execution_time=time.monotonic() - started,
            block_number=receipt.get("blockNumber"),
            gas_used=gas_used,
            transaction_fee=gas_used * effective_price if gas_used is not None and effective_price else None,
            from_address=receipt.get("from"),
            to_address=receipt.get("to"),
            contract_address=str(contract_address) if contract_address else None,
            error_message=None if receipt.get("status") == 1 else "Transaction reverted on-chain",
        )
        if not confirmation.is_success():
            raise SubmissionFailed(
                f"Transaction {tx_hash} reverted on-chain",
                function=function,
                reason=TransactionStatus.FAILED.value,
                tx_hash=tx_hash,
            )
        logger.info("Mined %s in block %s", tx_hash, confirmation.block_number)
        return confirmation

    async def transact(
        self,
        fn: str,
        *args: Any,
        fees: Optional[GasOverrides] = None,
        signer: Optional[LocalAccount] = None,
        simulate: bool = True,
    ) -> EVMTransactionConfirmation:
        """Simulate (unless disabled), send and wait for ``fn(*args)``."""
        if simulate:
            await self.simulate(fn, *args, sender=signer.address if signer else None)
        tx_hash = await self.send(fn, *args, fees=fees, signer=signer)
        return await self.wait_for_receipt(tx_hash, function=fn)

    async def send_value(self, to: str, value: int, *, fees: Optional[GasOverrides] = None) -> str:
        """
        Broadcast a native-currency transfer of ``value`` wei.

        Returns:
            0x-prefixed transaction hash.
        """
        account = self.account
        if account is None:
            raise ConfigError("No signing key configured for this command")
        try:
            tx = await self._base_params(account, fees)
            tx.update({"to": AsyncWeb3.to_checksum_address(to), "value": value})
            try:
                tx["gas"] = int(await self.web3.eth.estimate_gas(tx))
            except _RPC_ERRORS:
                tx["gas"] = NATIVE_TRANSFER_GAS
            tx_hash = await self._broadcast(account, tx)
        except _RPC_ERRORS as e:
            raise SubmissionFailed(f"ETH transfer failed: {_reason(e)}", reason=_reason(e)) from e
        logger.info("Sent %d wei to %s: %s", value, to, tx_hash)
        return tx_hash

    async def deploy(
        self,
        abi: List[Dict[str, Any]],
        bytecode: str,
        args: Sequence[Any] = (),
        *,
        fees: Optional[GasOverrides] = None,
    ) -> EVMTransactionConfirmation:
        """
        Deploy a contract and wait for it to be mined.

        Returns:
            Confirmation whose ``contract_address`` is the new contract.
        """
        account = self.account
        if account is None:
            raise ConfigError("No signing key configured for this command")
        try:
            factory = self.web3.eth.contract(abi=abi, bytecode=bytecode)
            constructor = factory.constructor(*args)
            params = await self._base_params(account, fees)
            params["gas"] = int(await constructor.estimate_gas({"from": account.address}) * GAS_BUFFER)
            tx = await constructor.build_transaction(params)
            tx_hash = await self._broadcast(account, tx)
        except _RPC_ERRORS as e:
            raise SubmissionFailed(f"Deployment failed: {_reason(e)}", function="constructor", reason=_reason(e)) from e
        logger.info("Deployment sent: %s", tx_hash)
        return await self.wait_for_receipt(tx_hash, function="constructor")
