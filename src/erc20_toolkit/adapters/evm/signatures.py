"""
EVM Off-Chain Signing Utilities

Local EIP-712 signing helpers for EIP-2612 ``permit``.  All cryptographic
operations are performed in-process using ``eth_account``; no RPC calls or
on-chain state queries are made (the caller supplies ``nonce`` and the
token's domain ``name``).

Exported helpers
----------------
build_permit_typed_data
    Wrap permit fields in an ``EIP712TypedData`` envelope without signing.

sign_permit
    Build the EIP-712 payload, sign with a private key, and return a complete
    ``EVMTokenPermit`` with ``EVMECDSASignature`` (v, r, s).

split_signature
    Decode a packed 65-byte ``r || s || v`` signature, e.g. the stored
    ``PERMIT_SIGNATURE``.
"""

import time
from typing import Optional, Tuple

from eth_account import Account

from .EIP2612_types import EIP712Domain, PermitMessage, EIP712TypedData, PERMIT_DOMAIN_VERSION
from .schemas import EVMTokenPermit, EVMECDSASignature


def build_permit_typed_data(
    *,
    domain_name: str,
    chain_id: int,
    token: str,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
    domain_version: str = PERMIT_DOMAIN_VERSION,
) -> EIP712TypedData:
    """
    Build the EIP-712 ``Permit`` payload without signing.

    Args:
        domain_name:    Token ``name()``, used as the EIP-712 domain name.
        chain_id:       EVM network ID.
        token:          Token address (``verifyingContract``).
        owner:          Token owner granting the allowance.
        spender:        Address receiving the allowance.
        value:          Allowance in smallest units.
        nonce:          ``nonces(owner)`` read from the token.
        deadline:       Unix timestamp after which the permit is invalid.
        domain_version: EIP-712 domain version, ``"1"`` for OpenZeppelin tokens.

    Returns:
        ``EIP712TypedData`` whose ``to_dict()`` is accepted by
        ``Account.sign_typed_data(full_message=...)``.
    """
    domain = EIP712Domain(
        name=domain_name,
        version=domain_version,
        chainId=chain_id,
        verifyingContract=token,
    )
    message = PermitMessage(
        owner=owner,
        spender=spender,
        value=value,
        nonce=nonce,
        deadline=deadline,
    )
    return EIP712TypedData(domain=domain, message=message)


def sign_permit(
    *,
    private_key: str,
    domain_name: str,
    chain_id: int,
    token: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
    owner: Optional[str] = None,
    domain_version: str = PERMIT_DOMAIN_VERSION,
) -> EVMTokenPermit:
    """
    Sign an EIP-2612 permit and return it with the signature attached.

    ``owner`` defaults to the address derived from ``private_key``; when it is
    given it must match, otherwise the token would reject the permit.

    Raises:
        ValueError: If ``owner`` does not match the key, or ``value`` /
            ``deadline`` / ``nonce`` are negative.

    Example::

        permit = sign_permit(
            private_key="0xOWNER_KEY",
            domain_name="MyToken",
            chain_id=11155111,
            token="0xToken",
            spender="0xSpender",
            value=10**18,
            nonce=0,
            deadline=int(time.time()) + 3600,
        )
        permit.signature.to_packed_hex()
    """
    account = Account.from_key(private_key)
    if owner is None:
        owner = account.address
    elif owner.lower() != account.address.lower():
        raise ValueError(f"owner {owner} does not match signing key address {account.address}")

    permit = EVMTokenPermit(
        owner=owner,
        spender=spender,
        token=token,
        value=value,
        nonce=nonce,
        deadline=deadline,
        chain_id=chain_id,
    )

    typed_data = build_permit_typed_data(
        domain_name=domain_name,
        domain_version=domain_version,
        chain_id=chain_id,
        token=token,
        owner=owner,
        spender=spender,
        value=value,
        nonce=nonce,
        deadline=deadline,
    )
    signed = Account.sign_typed_data(private_key, full_message=typed_data.to_dict())

    permit.signature = EVMECDSASignature(
        signature_type="EIP2612",
        v=signed.v,
        r=hex(signed.r),
        s=hex(signed.s),
    )
    return permit


def split_signature(signature: str) -> Tuple[int, str, str]:
    """
    Split a packed 65-byte signature into ``(v, r, s)``.

    ``v`` values of 0/1 (as produced by some signers) are normalized to 27/28.

    Returns:
        ``(v, r, s)`` with ``r`` and ``s`` as 0x-prefixed 64-char hex strings.

    Raises:
        ValueError: If the input is not 65 bytes of hex.
    """
    raw = signature[2:] if signature.startswith(("0x", "0X")) else signature
    if len(raw) != 130:
        raise ValueError(f"signature must be 65 bytes, got {len(raw) // 2}")
    try:
        data = bytes.fromhex(raw)
    except ValueError:
        raise ValueError("signature is not valid hexadecimal") from None

    v = data[64]
    if v < 27:
        v += 27
    return v, "0x" + data[:32].hex(), "0x" + data[32:64].hex()


def signature_from_packed(signature: str) -> EVMECDSASignature:
    """Parse a packed ``r || s || v`` hex string into an ``EVMECDSASignature``."""
    v, r, s = split_signature(signature)
    return EVMECDSASignature(signature_type="EIP2612", v=v, r=r, s=s)


def deadline_in(minutes: int, *, now: Optional[int] = None) -> int:
    """Unix timestamp ``minutes`` from ``now`` (defaults to the current time)."""
    return (int(time.time()) if now is None else now) + minutes * 60
