"""
Post-upgrade ``initializeV3(admin)``: grants DEFAULT_ADMIN_ROLE and
PAUSER_ROLE to ``admin`` on a token upgraded to v3.
"""

from typing import Any, Dict, Optional

from .context import CommandContext
from ..adapters.evm.constants import DEFAULT_ADMIN_ROLE, ToolkitConfig
from ..engine.exceptions import ConfigError

_ADMIN_ROLE_BYTES = bytes.fromhex(DEFAULT_ADMIN_ROLE[2:])


def resolve_admin_target(admin: Optional[str], config: ToolkitConfig) -> str:
    """``--admin`` if given, else ``OWNER_ADDRESS``."""
    target = admin or config.owner_address
    if not target:
        raise ConfigError("Admin address required: pass --admin 0x... or set OWNER_ADDRESS")
    return CommandContext.address(target, "admin address")


async def cmd_init_v3(ctx: CommandContext, admin: Optional[str] = None) -> Dict[str, Any]:
    target = resolve_admin_target(admin, ctx.config)

    before = bool(await ctx.client.read("hasRole", _ADMIN_ROLE_BYTES, target))
    ctx.echo(f"Admin target: {target}")
    ctx.echo(f"DEFAULT_ADMIN_ROLE before: {str(before).lower()}")
    if before:
        ctx.echo("Nothing to do: admin already holds DEFAULT_ADMIN_ROLE.")
        return {"admin": target, "before": True, "after": True, "tx_hash": None}

    confirmation = await ctx.client.transact("initializeV3", target, fees=ctx.fees)
    ctx.echo(f"initializeV3 tx: {confirmation.tx_hash}")

    after = bool(await ctx.client.read("hasRole", _ADMIN_ROLE_BYTES, target))
    ctx.echo(f"DEFAULT_ADMIN_ROLE after: {str(after).lower()}")
    return {"admin": target, "before": False, "after": after, "tx_hash": confirmation.tx_hash}
