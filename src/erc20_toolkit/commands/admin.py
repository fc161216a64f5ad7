"""
Token administration: status, pause/unpause, mint, burn, burnFrom.

Every write is simulated from the signer before it is sent.
"""

import asyncio
from typing import Any, Dict, Optional

from .context import CommandContext, DEFAULT_DECIMALS
from ..adapters.evm.constants import explorer_tx_url, get_chain_name
from ..engine.exceptions import ConfigError
from ..utils import logger

NA = "n/a"


async def cmd_status(ctx: CommandContext) -> Dict[str, Any]:
    """
    Print token metadata, owner, pause state and the signer's pauser role.

    Reads are best-effort: anything the token does not answer shows ``n/a``.
    """
    client = ctx.client
    name, symbol, decimals, total_supply, paused, owner = await asyncio.gather(
        client.try_read("name"),
        client.try_read("symbol"),
        client.try_read("decimals"),
        client.try_read("totalSupply"),
        client.try_read("paused"),
        client.try_read("owner"),
    )
    signer = client.account.address if client.account is not None else None

    pauser_role: Optional[str] = None
    has_pauser = False
    role = await client.try_read("PAUSER_ROLE")
    if role is not None:
        pauser_role = "0x" + bytes(role).hex()
        if signer is not None:
            has_pauser = bool(await client.try_read("hasRole", role, signer, default=False))

    d = int(decimals) if decimals is not None else DEFAULT_DECIMALS
    supply = ctx.format_amount(total_supply, d) if total_supply is not None else NA

    chain_id = ctx.config.chain_id
    ctx.echo(f"Network: {get_chain_name(chain_id)} ({chain_id})")
    ctx.echo(f"Token: {name or NA} ({symbol or NA})")
    ctx.echo(f"Decimals: {d}")
    ctx.echo(f"TotalSupply: {supply}")
    ctx.echo(f"Signer: {signer or NA}")
    ctx.echo(f"Owner: {owner or NA}")
    if paused is not None:
        ctx.echo(f"Paused: {str(bool(paused)).lower()}")
    if pauser_role:
        ctx.echo(f"PauserRole: {pauser_role} hasRole(signer): {str(has_pauser).lower()}")

    return {
        "network": get_chain_name(chain_id),
        "name": name,
        "symbol": symbol,
        "decimals": d,
        "total_supply": supply,
        "signer": signer,
        "owner": owner,
        "paused": paused,
        "pauser_role": pauser_role,
        "signer_is_pauser": has_pauser,
    }


async def _write(ctx: CommandContext, fn: str, *args: Any) -> Dict[str, Any]:
    confirmation = await ctx.client.transact(fn, *args, fees=ctx.fees)
    ctx.echo(f"{fn} tx: {confirmation.tx_hash}")
    url = explorer_tx_url(ctx.config.chain_id, confirmation.tx_hash)
    if url:
        ctx.echo(f"explorer: {url}")
    return {"function": fn, "tx_hash": confirmation.tx_hash, "status": confirmation.get_confirmation_status()}


async def cmd_pause(ctx: CommandContext) -> Dict[str, Any]:
    return await _write(ctx, "pause")


async def cmd_unpause(ctx: CommandContext) -> Dict[str, Any]:
    return await _write(ctx, "unpause")


async def cmd_mint(
    ctx: CommandContext,
    amount: str,
    to: Optional[str] = None,
    *,
    raw: bool = False,
    require_owner: bool = False,
) -> Dict[str, Any]:
    """
    Mint ``amount`` tokens to ``to`` (the signer by default).

    Args:
        raw: ``amount`` is already in smallest units.
        require_owner: Refuse unless ``owner()`` is the signer.

    Raises:
        ConfigError: On a bad amount/recipient, or when ``require_owner`` is
            set and the signer is not the owner.
    """
    signer = ctx.client.address
    dest = ctx.address(to, "mint recipient") if to else signer

    if require_owner:
        owner = await ctx.client.read("owner")
        if str(owner).lower() != signer.lower():
            raise ConfigError(f"Signer {signer} is not the token owner ({owner})")

    if raw:
        try:
            value = int(amount)
        except ValueError:
            raise ConfigError(f"Invalid raw amount: {amount!r}") from None
        if value < 0:
            raise ConfigError("amount must be non-negative")
    else:
        value = ctx.parse_amount(amount, await ctx.decimals())

    logger.info("minting %d to %s", value, dest)
    result = await _write(ctx, "mint", dest, value)
    result.update({"to": dest, "value": value})
    return result


async def cmd_burn(ctx: CommandContext, amount: str) -> Dict[str, Any]:
    value = ctx.parse_amount(amount, await ctx.decimals())
    result = await _write(ctx, "burn", value)
    result["value"] = value
    return result


async def cmd_burn_from(ctx: CommandContext, owner: str, amount: str) -> Dict[str, Any]:
    account = ctx.address(owner, "burn-from owner")
    value = ctx.parse_amount(amount, await ctx.decimals())
    result = await _write(ctx, "burnFrom", account, value)
    result.update({"owner": account, "value": value})
    return result
