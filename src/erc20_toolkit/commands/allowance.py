"""
Allowance commands: ``adjust`` (mutating) and ``allowance`` (read-only).
"""

import asyncio
from typing import Any, Dict, Optional

from .context import CommandContext
from ..adapters.evm.verifies import query_erc20_allowance
from ..engine.allowance import AdjustmentReport, AdjustmentRequest, AllowanceAdjuster


async def cmd_adjust(
    ctx: CommandContext,
    operation: str,
    amount: str,
    spender: Optional[str] = None,
    **adjuster_kwargs: Any,
) -> AdjustmentReport:
    """
    Increase, decrease or set the signer's allowance for ``spender``
    (``SPENDER_ADDRESS`` by default).
    """
    request = AdjustmentRequest.parse(operation, amount, spender or ctx.config.spender_address)
    adjuster = AllowanceAdjuster(ctx.client, fees=ctx.fees, echo=ctx.echo, **adjuster_kwargs)
    return await adjuster.adjust(request)


async def cmd_allowance(
    ctx: CommandContext,
    token: Optional[str] = None,
    owner: Optional[str] = None,
    spender: Optional[str] = None,
) -> Dict[str, Any]:
    """Print ``allowance(owner, spender)``; flags override ``TOKEN_ADDRESS`` / ``OWNER_ADDRESS`` / ``SPENDER_ADDRESS``."""
    config = ctx.config
    token_addr = ctx.address(token or config.token_address, "token (--token or TOKEN_ADDRESS)")
    owner_addr = ctx.address(owner or config.owner_address, "owner (--owner or OWNER_ADDRESS)")
    spender_addr = ctx.address(spender or config.spender_address, "spender (--spender or SPENDER_ADDRESS)")

    if token_addr == ctx.client.token_address:
        value, decimals, symbol = await asyncio.gather(
            ctx.client.read("allowance", owner_addr, spender_addr),
            ctx.decimals(),
            ctx.client.try_read("symbol", default=""),
        )
    else:
        value = await query_erc20_allowance(ctx.client.web3, token_addr, owner_addr, spender_addr)
        decimals, symbol = None, ""

    value = int(value)
    ctx.echo(f"Token:   {token_addr}")
    ctx.echo(f"Owner:   {owner_addr}")
    ctx.echo(f"Spender: {spender_addr}")
    if decimals is None:
        ctx.echo(f"Allowance: {value} raw")
    else:
        human = f"{ctx.format_amount(value, decimals)} {symbol}".strip()
        ctx.echo(f"Allowance: {value} raw ({human})")

    return {
        "token": token_addr,
        "owner": owner_addr,
        "spender": spender_addr,
        "allowance": value,
        "decimals": decimals,
    }
