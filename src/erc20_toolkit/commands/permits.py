"""
EIP-2612 permit commands.

    permit-sign    owner signs a permit for SPENDER_ADDRESS, prints .env lines
    permit-revoke  owner signs a value-0 permit and submits it
    permit-spend   spender submits the stored permit, then transferFrom
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from eth_account import Account

from .context import CommandContext
from ..adapters.evm.schemas import EVMTokenPermit
from ..adapters.evm.signatures import deadline_in, sign_permit, signature_from_packed
from ..adapters.evm.verifies import permit_is_expired, verify_permit_signer
from ..engine.exceptions import ConfigError
from ..utils import logger

DEFAULT_PERMIT_AMOUNT = "1"
DEFAULT_SIGN_TTL_MINUTES = 60
DEFAULT_REVOKE_TTL_MINUTES = 30


def _revoke_ttl(raw: Optional[str]) -> int:
    """Any positive number of minutes, floored; anything else uses the default."""
    if raw is None:
        return DEFAULT_REVOKE_TTL_MINUTES
    try:
        parsed = Decimal(raw.strip())
    except InvalidOperation:
        parsed = Decimal(0)
    if not parsed.is_finite() or parsed <= 0:
        logger.warning("Invalid TTL %r, using %d minutes", raw, DEFAULT_REVOKE_TTL_MINUTES)
        return DEFAULT_REVOKE_TTL_MINUTES
    return int(parsed)


async def cmd_permit_sign(
    ctx: CommandContext,
    amount: str = DEFAULT_PERMIT_AMOUNT,
    ttl_minutes: str = str(DEFAULT_SIGN_TTL_MINUTES),
    *,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """Sign a permit of ``amount`` tokens valid for ``ttl_minutes``."""
    config = ctx.config
    config.require("owner_private_key", "spender_address", "token_address")
    try:
        minutes = int(ttl_minutes)
    except ValueError:
        raise ConfigError(f"TTL must be a whole number of minutes, got {ttl_minutes!r}") from None

    owner = ctx.client.address
    name, decimals, nonce = await asyncio.gather(
        ctx.client.read("name"),
        ctx.client.read("decimals"),
        ctx.client.read("nonces", owner),
    )
    value = ctx.parse_amount(amount, int(decimals))

    permit = sign_permit(
        private_key=config.owner_private_key,
        domain_name=str(name),
        chain_id=config.chain_id,
        token=config.token_address,
        owner=owner,
        spender=config.spender_address,
        value=value,
        nonce=int(nonce),
        deadline=deadline_in(minutes, now=now),
    )
    signature = permit.signature.to_packed_hex()

    ctx.echo("--- Copy to .env ---")
    ctx.echo(f"PERMIT_SIGNATURE={signature}")
    ctx.echo(f"PERMIT_VALUE={permit.value}")
    ctx.echo(f"PERMIT_DEADLINE={permit.deadline}")
    ctx.echo("--------------------")

    return {
        "permit": permit.model_dump(mode="json", exclude={"created_at"}),
        "packed_signature": signature,
    }


async def cmd_permit_revoke(
    ctx: CommandContext,
    ttl_minutes: Optional[str] = None,
    *,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Zero the spender's allowance with a value-0 permit.

    The permit is submitted by ``SPENDER_PRIVATE_KEY`` when set, otherwise by
    the owner.
    """
    config = ctx.config
    config.require("owner_private_key", "spender_address", "token_address")
    minutes = _revoke_ttl(ttl_minutes)

    owner = ctx.client.address
    name, nonce = await asyncio.gather(
        ctx.client.read("name"),
        ctx.client.read("nonces", owner),
    )
    permit = sign_permit(
        private_key=config.owner_private_key,
        domain_name=str(name),
        chain_id=config.chain_id,
        token=config.token_address,
        owner=owner,
        spender=config.spender_address,
        value=0,
        nonce=int(nonce),
        deadline=deadline_in(minutes, now=now),
    )
    verify_permit_signer(permit, domain_name=str(name))

    submitter = Account.from_key(config.spender_private_key) if config.spender_private_key else None
    logger.info("Submitting revoke permit from %s", submitter.address if submitter else owner)
    confirmation = await ctx.client.transact("permit", *permit.permit_args(), fees=ctx.fees, signer=submitter)

    ctx.echo(f"revoke permit tx: {confirmation.tx_hash}")
    ctx.echo(f"status: {confirmation.get_confirmation_status()}")
    return {
        "tx_hash": confirmation.tx_hash,
        "status": confirmation.status.value,
        "deadline": permit.deadline,
        "submitter": submitter.address if submitter else owner,
    }


async def cmd_permit_spend(
    ctx: CommandContext,
    amount: Optional[str] = None,
    to: Optional[str] = None,
    *,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Submit the stored permit as the spender, then pull tokens with ``transferFrom``.

    ``amount`` defaults to ``PERMIT_VALUE``; ``to`` defaults to the spender.
    """
    config = ctx.config
    config.require("spender_private_key", "owner_address", "token_address",
                   "permit_signature", "permit_value", "permit_deadline")

    spender = ctx.client.address
    owner = config.owner_address
    recipient = ctx.address(to, "recipient (--to)") if to else spender
    try:
        signature = signature_from_packed(config.permit_signature)
    except ValueError as e:
        raise ConfigError(f"PERMIT_SIGNATURE: {e}") from e

    name, decimals, symbol, nonce = await asyncio.gather(
        ctx.client.read("name"),
        ctx.client.read("decimals"),
        ctx.client.read("symbol"),
        ctx.client.read("nonces", owner),
    )
    decimals = int(decimals)

    permit = EVMTokenPermit(
        owner=owner,
        spender=spender,
        token=config.token_address,
        value=config.permit_value,
        nonce=int(nonce),
        deadline=config.permit_deadline,
        chain_id=config.chain_id,
        signature=signature,
    )
    if permit_is_expired(permit, now):
        raise ConfigError(f"Stored permit expired at {permit.deadline}; sign a new one")
    verify_permit_signer(permit, domain_name=str(name))

    value = ctx.parse_amount(amount, decimals) if amount else permit.value

    permit_confirmation = await ctx.client.transact("permit", *permit.permit_args(), fees=ctx.fees)
    ctx.echo(f"permit tx: {permit_confirmation.tx_hash}")
    transfer_confirmation = await ctx.client.transact("transferFrom", owner, recipient, value, fees=ctx.fees)
    ctx.echo(f"transferFrom tx: {transfer_confirmation.tx_hash}")
    ctx.echo(f"Transferred {ctx.format_amount(value, decimals)} {symbol} to {recipient}")

    return {
        "permit_tx": permit_confirmation.tx_hash,
        "transfer_tx": transfer_confirmation.tx_hash,
        "to": recipient,
        "value": value,
    }
