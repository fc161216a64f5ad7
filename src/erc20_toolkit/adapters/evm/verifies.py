"""
EVM Signature Verification Helpers

Off-chain verification of EIP-2612 permits, plus the allowance query shared
by the read-only ``allowance`` command.

Signer recovery is performed in-process using ``eth_account``: the EIP-712
payload is rebuilt from the permit fields with the same builder the signing
path uses, and the address is recovered from (v, r, s).
"""

import time
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from .ERC20_ABI import get_allowance_abi
from .EIP2612_types import PERMIT_DOMAIN_VERSION
from .schemas import EVMTokenPermit
from .signatures import build_permit_typed_data
from ...engine.exceptions import SignatureVerificationError, BlockchainInteractionError


def recover_permit_signer(
    permit: EVMTokenPermit,
    *,
    domain_name: str,
    domain_version: str = PERMIT_DOMAIN_VERSION,
) -> str:
    """
    Recover the address that signed ``permit``.

    Args:
        permit: Permit with ``signature`` populated.
        domain_name: Token ``name()`` used as EIP-712 domain name.
        domain_version: EIP-712 domain version.

    Returns:
        Checksummed signer address.

    Raises:
        ValueError: If the permit has no signature or it is malformed.
    """
    permit.validate_structure()
    typed_data = build_permit_typed_data(
        domain_name=domain_name,
        domain_version=domain_version,
        chain_id=permit.chain_id,
        token=permit.token,
        owner=permit.owner,
        spender=permit.spender,
        value=permit.value,
        nonce=permit.nonce,
        deadline=permit.deadline,
    )
    signable = encode_typed_data(full_message=typed_data.to_dict())
    sig = permit.signature
    return Account.recover_message(
        signable,
        vrs=(sig.v, int.from_bytes(sig.r_bytes(), "big"), int.from_bytes(sig.s_bytes(), "big")),
    )


def verify_permit_signer(
    permit: EVMTokenPermit,
    *,
    domain_name: str,
    domain_version: str = PERMIT_DOMAIN_VERSION,
) -> str:
    """
    Check that ``permit`` was signed by its ``owner``.

    Returns:
        The recovered (owner) address.

    Raises:
        SignatureVerificationError: If the recovered signer is not the owner.
    """
    recovered = recover_permit_signer(permit, domain_name=domain_name, domain_version=domain_version)
    if recovered.lower() != permit.owner.lower():
        raise SignatureVerificationError(
            f"Permit signer mismatch: expected {permit.owner}, recovered {recovered}",
            expected=permit.owner,
            recovered=recovered,
        )
    return recovered


async def query_erc20_allowance(w3: AsyncWeb3, token_addr: str, owner: str, spender: str) -> int:
    """
    ``allowance(owner, spender)`` on an arbitrary token, using a one-function ABI.

    Used by the ``allowance`` command when ``--token`` names a token other
    than the configured one.

    Raises:
        ValueError: If an address is malformed.
        BlockchainInteractionError: If the call reverts or the node errors.
    """
    token = w3.to_checksum_address(token_addr)
    contract = w3.eth.contract(address=token, abi=get_allowance_abi())
    try:
        value = await contract.functions.allowance(
            w3.to_checksum_address(owner), w3.to_checksum_address(spender)
        ).call()
    except Web3Exception as e:
        raise BlockchainInteractionError(
            f"allowance({owner}, {spender}) on {token} failed: {e}",
            function="allowance",
            reason=str(e),
        ) from e
    return int(value)


def permit_is_expired(permit: EVMTokenPermit, now: Optional[int] = None) -> bool:
    """True once ``deadline`` has passed."""
    return permit.deadline < (int(time.time()) if now is None else now)
