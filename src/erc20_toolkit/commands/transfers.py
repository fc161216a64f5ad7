"""
Balance reads and transfers (token and native).
"""

import asyncio
from typing import Any, Dict, Optional

from .context import CommandContext

ETH_DECIMALS = 18
DEFAULT_ETH_AMOUNT = "0.01"


async def cmd_balance(ctx: CommandContext, holder: Optional[str] = None) -> Dict[str, Any]:
    """``balanceOf(holder)``; holder defaults to ``MY_ADDRESS``."""
    account = ctx.address(holder or ctx.config.my_address, "holder (argument or MY_ADDRESS)")
    name, symbol, decimals, balance = await asyncio.gather(
        ctx.client.read("name"),
        ctx.client.read("symbol"),
        ctx.client.read("decimals"),
        ctx.client.read("balanceOf", account),
    )
    decimals = int(decimals)
    human = ctx.format_amount(balance, decimals)
    ctx.echo(f"{name} ({symbol}), decimals: {decimals}")
    ctx.echo(f"Balance of {account}: {human} {symbol}")
    return {"holder": account, "balance": int(balance), "formatted": human, "symbol": symbol}


async def cmd_eth_balance(ctx: CommandContext, address: Optional[str] = None) -> Dict[str, Any]:
    account = ctx.address(address or ctx.config.my_address, "address (argument or MY_ADDRESS)")
    balance = await ctx.client.get_balance(account)
    human = ctx.format_amount(balance, ETH_DECIMALS)
    ctx.echo(f"Balance of {account}: {human} ETH")
    return {"address": account, "wei": balance, "eth": human}


async def cmd_transfer(ctx: CommandContext, amount: str, recipient: Optional[str] = None) -> Dict[str, Any]:
    """ERC-20 ``transfer`` of ``amount`` tokens to ``recipient`` (``RECIPIENT`` by default)."""
    to = ctx.address(recipient or ctx.config.recipient, "recipient (argument or RECIPIENT)")
    value = ctx.parse_amount(amount, await ctx.decimals())
    confirmation = await ctx.client.transact("transfer", to, value, fees=ctx.fees)
    ctx.echo(f"transfer tx hash: {confirmation.tx_hash}")
    ctx.echo(f"status: {confirmation.get_confirmation_status()}")
    return {"to": to, "value": value, "tx_hash": confirmation.tx_hash}


async def cmd_send_eth(
    ctx: CommandContext,
    amount: str = DEFAULT_ETH_AMOUNT,
    recipient: Optional[str] = None,
) -> Dict[str, Any]:
    """Native transfer of ``amount`` ETH."""
    to = ctx.address(recipient or ctx.config.recipient, "recipient (argument or RECIPIENT)")
    value = ctx.parse_amount(amount, ETH_DECIMALS)
    tx_hash = await ctx.client.send_value(to, value, fees=ctx.fees)
    ctx.echo(f"transaction hash: {tx_hash}")
    confirmation = await ctx.client.wait_for_receipt(tx_hash)
    ctx.echo(f"status: {confirmation.get_confirmation_status()} block: {confirmation.block_number}")
    return {"to": to, "wei": value, "tx_hash": tx_hash, "block_number": confirmation.block_number}
