"""
AccessControl role management: ``roles grant|revoke --role <alias|0x..> --to <addr>``.
"""

from typing import Any, Dict

from eth_utils import keccak, to_hex

from .context import CommandContext
from ..adapters.evm.constants import DEFAULT_ADMIN_ROLE
from ..engine.exceptions import ConfigError

ROLE_ALIASES: Dict[str, str] = {
    "pauser": to_hex(keccak(text="PAUSER_ROLE")),
    "admin": DEFAULT_ADMIN_ROLE,
    "default-admin": DEFAULT_ADMIN_ROLE,
}

ACTIONS = {"grant": "grantRole", "revoke": "revokeRole"}


def resolve_role(role: str) -> str:
    """
    Map a role alias or raw id to a bytes32 hex string.

    ``pauser`` is ``keccak256("PAUSER_ROLE")``; ``admin`` and ``default-admin``
    are the zero role.  Raw ``0x`` ids (32 bytes) pass through lowercased.

    Raises:
        ConfigError: On an unknown alias or a malformed raw id.
    """
    key = role.strip()
    if key.lower() in ROLE_ALIASES:
        return ROLE_ALIASES[key.lower()]
    if key.startswith(("0x", "0X")):
        body = key[2:]
        if len(body) == 64 and all(c in "0123456789abcdefABCDEF" for c in body):
            return "0x" + body.lower()
        raise ConfigError(f"Role id must be 32 bytes of hex: {role}")
    raise ConfigError(f"Unknown role alias '{role}'. Use one of: {', '.join(ROLE_ALIASES)} or a 0x bytes32 id")


async def cmd_roles(ctx: CommandContext, action: str, role: str, to: str) -> Dict[str, Any]:
    """Grant or revoke ``role`` for ``to``, printing ``hasRole`` before and after."""
    if action not in ACTIONS:
        raise ConfigError(f"Action must be grant or revoke, got {action!r}")
    role_id = resolve_role(role)
    target = ctx.address(to, "role target (--to)")
    role_bytes = bytes.fromhex(role_id[2:])

    before = await ctx.client.read("hasRole", role_bytes, target)
    ctx.echo(f"Role {role_id} for {target}: hasRole before = {str(before).lower()}")

    confirmation = await ctx.client.transact(ACTIONS[action], role_bytes, target, fees=ctx.fees)
    ctx.echo(f"{ACTIONS[action]} tx: {confirmation.tx_hash}")
    ctx.echo(f"Receipt status: {confirmation.get_confirmation_status()}")

    after = await ctx.client.read("hasRole", role_bytes, target)
    ctx.echo(f"hasRole after = {str(after).lower()}")

    return {
        "action": action,
        "role": role_id,
        "account": target,
        "before": bool(before),
        "after": bool(after),
        "tx_hash": confirmation.tx_hash,
    }
