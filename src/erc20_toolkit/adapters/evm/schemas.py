"""
Token-level schema models.

    - EVMECDSASignature: secp256k1 ``(v, r, s)`` and its packed 65-byte form
      (the ``PERMIT_SIGNATURE`` value).
    - EVMTokenPermit: the arguments of an EIP-2612 ``permit()`` call plus the
      owner's signature over them.
    - EVMTransactionConfirmation: what ``ChainClient.wait_for_receipt`` returns.
    - GasOverrides: ``--gas`` / ``--priority`` fee caps.
"""

from typing import Optional, Dict, Any, Literal

from pydantic import Field

from ...schemas.bases import (
    BaseSignature,
    BasePermit,
    BaseTransactionConfirmation,
    CanonicalModel,
)
from .constants import gwei_to_wei


class EVMECDSASignature(BaseSignature):
    """
    ``(v, r, s)`` of a permit signature.

    ``r`` and ``s`` are hex strings of up to 32 bytes; shorter values are
    left-padded when converted to bytes.

    Example::

        sig = signature_from_packed(config.permit_signature)
        contract_args = (sig.v, sig.r_bytes(), sig.s_bytes())
    """

    signature_type: Literal["EIP2612"] = Field("EIP2612", description="Signing standard")
    v: int = Field(..., ge=27, le=28, description="Recovery id, 27 or 28")
    r: str = Field(..., description="r as hex, 0x optional")
    s: str = Field(..., description="s as hex, 0x optional")

    def validate_format(self) -> bool:
        """
        Raises:
            ValueError: If ``v`` is not 27/28 or ``r``/``s`` are not hex of at most 32 bytes.
        """
        if self.v not in (27, 28):
            raise ValueError(f"recovery id must be 27 or 28, got {self.v}")

        for label, component in (("r", self.r), ("s", self.s)):
            digits = _strip_0x(component)
            if not digits or len(digits) > 64:
                raise ValueError(f"{label} must be 1..64 hex digits, got {len(digits)}")
            try:
                int(digits, 16)
            except ValueError:
                raise ValueError(f"{label} is not hexadecimal: {component!r}") from None

        return True

    def r_bytes(self) -> bytes:
        return bytes.fromhex(_strip_0x(self.r).zfill(64))

    def s_bytes(self) -> bytes:
        return bytes.fromhex(_strip_0x(self.s).zfill(64))

    def to_packed_hex(self) -> str:
        """``0x`` + r (32 bytes) + s (32 bytes) + v (1 byte)."""
        self.validate_format()
        return "0x" + self.r_bytes().hex() + self.s_bytes().hex() + format(self.v, "02x")


class EVMTokenPermit(BasePermit):
    """
    One EIP-2612 approval: ``owner`` lets ``spender`` draw ``value`` from
    ``token`` until ``deadline``, consuming ``nonces(owner) == nonce``.

    The EIP-712 domain is ``(token name(), "1", chain_id, token)``; the name
    is not stored here and must be read from the token when signing or
    verifying.
    """

    permit_type: Literal["EIP2612"] = Field(default="EIP2612", description="Approval standard")
    owner: str = Field(..., description="Signer and token holder")
    spender: str = Field(..., description="Account allowed to spend")
    token: str = Field(..., description="Token contract, the EIP-712 verifyingContract")
    value: int = Field(..., ge=0, description="Allowance granted, base units")
    nonce: int = Field(..., ge=0, description="nonces(owner) at signing time")
    deadline: int = Field(..., ge=0, description="Unix expiry")
    chain_id: int = Field(..., ge=1, description="EIP-712 chainId")
    signature: Optional[EVMECDSASignature] = Field(None, description="Owner signature")

    def validate_structure(self) -> bool:
        """
        Raises:
            ValueError: On a malformed address or a missing/malformed signature.
        """
        for label, address in (("owner", self.owner), ("spender", self.spender), ("token", self.token)):
            if len(address) != 42 or not address.startswith("0x"):
                raise ValueError(f"{label} is not a 0x-prefixed 20-byte address: {address!r}")

        if self.signature is None:
            raise ValueError("signature is required")
        try:
            self.signature.validate_format()
        except ValueError as e:
            raise ValueError(f"bad permit signature: {e}") from e

        return True

    def permit_args(self) -> tuple:
        """Positional arguments of the on-chain ``permit(owner, spender, value, deadline, v, r, s)``."""
        self.validate_structure()
        sig = self.signature
        return (self.owner, self.spender, self.value, self.deadline, sig.v, sig.r_bytes(), sig.s_bytes())


class EVMTransactionConfirmation(BaseTransactionConfirmation):
    """
    Receipt of a mined transaction.

    ``transaction_fee`` is ``gasUsed * effectiveGasPrice`` in wei;
    ``contract_address`` is only set for deployments.
    """

    confirmation_type: Literal["evm"] = Field(default="evm", description="Chain family")
    tx_hash: str = Field(..., description="0x-prefixed transaction hash")
    block_number: Optional[int] = Field(None, ge=0, description="Inclusion block")
    gas_used: Optional[int] = Field(None, ge=0, description="Gas consumed")
    transaction_fee: Optional[int] = Field(None, ge=0, description="Fee paid, wei")
    from_address: Optional[str] = Field(None, description="Sender")
    to_address: Optional[str] = Field(None, description="Recipient or token contract")
    contract_address: Optional[str] = Field(None, description="Deployed contract, if any")


class GasOverrides(CanonicalModel):
    """
    Optional EIP-1559 fee caps, in wei.

    Unset fields keep the values derived from ``eth_feeHistory``.
    """

    max_fee_per_gas: Optional[int] = Field(None, ge=0, description="maxFeePerGas in wei")
    max_priority_fee_per_gas: Optional[int] = Field(None, ge=0, description="maxPriorityFeePerGas in wei")

    @classmethod
    def from_gwei(cls, max_fee: Optional[str] = None, priority: Optional[str] = None) -> "GasOverrides":
        """
        Build overrides from gwei strings such as ``"30"`` or ``"1.5"``.

        Raises:
            ValueError: If a value is not a valid non-negative gwei amount.
        """
        return cls(
            max_fee_per_gas=gwei_to_wei(max_fee) if max_fee else None,
            max_priority_fee_per_gas=gwei_to_wei(priority) if priority else None,
        )

    def is_empty(self) -> bool:
        return self.max_fee_per_gas is None and self.max_priority_fee_per_gas is None

    def apply(self, tx: Dict[str, Any]) -> Dict[str, Any]:
        """Overlay the set caps onto a transaction dict (in place)."""
        if self.is_empty():
            return tx
        if "gasPrice" in tx:
            # legacy fee market; switch to EIP-1559 fields
            legacy = tx.pop("gasPrice")
            tx.setdefault("maxFeePerGas", legacy)
            tx.setdefault("maxPriorityFeePerGas", min(legacy, self.max_priority_fee_per_gas or legacy))
        if self.max_fee_per_gas is not None:
            tx["maxFeePerGas"] = self.max_fee_per_gas
        if self.max_priority_fee_per_gas is not None:
            tx["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas
        if tx["maxPriorityFeePerGas"] > tx["maxFeePerGas"]:
            tx["maxPriorityFeePerGas"] = tx["maxFeePerGas"]
        return tx


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value
