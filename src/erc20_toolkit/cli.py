"""
Command-line entry point: ``erc20-toolkit <command> ...``.

Configuration is loaded once here (``.env`` via python-dotenv, then the
process environment) and handed to the command together with a
``ChainClient`` whose signer depends on the command.

Exit codes:
    0  success or nothing to do
    1  unexpected error
    2  configuration / usage error
    3  dry run rejected, nothing sent
    4  transaction failed (a partial fallback was restored)
    5  restore failed, manual intervention required
"""

import argparse
import asyncio
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

from .adapters.evm.client import ChainClient
from .adapters.evm.constants import ToolkitConfig, load_config
from .adapters.evm.schemas import GasOverrides
from .commands import accounts, admin, allowance, deploy, initialize, permits, roles, transfers
from .commands.context import CommandContext
from .engine.allowance import FallbackState
from .engine.exceptions import CompensationFailed, ConfigError, SubmissionFailed, ToolkitError
from .schemas.bases import CanonicalModel
from .utils import canonical_json, logger, setup_logging

ClientFactory = Callable[[ToolkitConfig, Optional[str]], ChainClient]

# Which key signs for each command: "owner", "spender", "admin", "admin?" (optional) or None.
SIGNERS: Dict[str, Optional[str]] = {
    "adjust": "owner",
    "permit-sign": "owner",
    "permit-revoke": "owner",
    "permit-spend": "spender",
    "status": "admin?",
    "pause": "admin",
    "unpause": "admin",
    "mint": "admin",
    "burn": "admin",
    "burn-from": "admin",
    "roles": "admin",
    "init-v3": "admin",
    "transfer": "admin",
    "send-eth": "admin",
    "deploy": "admin",
    "allowance": None,
    "balance": None,
    "eth-balance": None,
}

# Commands that do not need TOKEN_ADDRESS.
NO_TOKEN = {"allowance", "eth-balance", "send-eth", "deploy"}

OFFLINE = {"wallet-new", "hash"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="erc20-toolkit", description="ERC-20 token utilities over JSON-RPC")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING (default: LOG_LEVEL or WARNING)")
    parser.add_argument("--json", action="store_true", help="print the result as canonical JSON")

    gas = argparse.ArgumentParser(add_help=False)
    gas.add_argument("--gas", metavar="GWEI", help="maxFeePerGas in gwei")
    gas.add_argument("--priority", metavar="GWEI", help="maxPriorityFeePerGas in gwei")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_adj = sub.add_parser("adjust", parents=[gas], help="Increase, decrease or set an allowance")
    p_adj.add_argument("operation", choices=["inc", "dec", "set"])
    p_adj.add_argument("amount", help="whole-token amount, e.g. 1.5")
    p_adj.add_argument("spender", nargs="?", help="default: SPENDER_ADDRESS")

    p_allow = sub.add_parser("allowance", help="Read allowance(owner, spender)")
    p_allow.add_argument("--token")
    p_allow.add_argument("--owner")
    p_allow.add_argument("--spender")

    p_psign = sub.add_parser("permit-sign", help="Sign an EIP-2612 permit for SPENDER_ADDRESS")
    p_psign.add_argument("amount", nargs="?", default=permits.DEFAULT_PERMIT_AMOUNT)
    p_psign.add_argument("ttl_minutes", nargs="?", default=str(permits.DEFAULT_SIGN_TTL_MINUTES))

    p_prev = sub.add_parser("permit-revoke", parents=[gas], help="Revoke the spender's allowance via a value-0 permit")
    p_prev.add_argument("ttl_minutes", nargs="?", default=None)

    p_pspend = sub.add_parser("permit-spend", parents=[gas], help="Submit the stored permit and transferFrom the owner")
    p_pspend.add_argument("amount", nargs="?", help="default: PERMIT_VALUE")
    p_pspend.add_argument("--to", help="default: the spender")

    sub.add_parser("status", help="Show token metadata, owner, pause and role state")
    sub.add_parser("pause", parents=[gas], help="pause()")
    sub.add_parser("unpause", parents=[gas], help="unpause()")

    p_mint = sub.add_parser("mint", parents=[gas], help="mint(to, amount)")
    p_mint.add_argument("amount")
    p_mint.add_argument("to", nargs="?", help="default: the signer")
    p_mint.add_argument("--wei", action="store_true", help="amount is in smallest units")
    p_mint.add_argument("--require-owner", action="store_true", help="refuse unless owner() is the signer")

    p_burn = sub.add_parser("burn", parents=[gas], help="burn(amount)")
    p_burn.add_argument("amount")

    p_burn_from = sub.add_parser("burn-from", parents=[gas], help="burnFrom(owner, amount)")
    p_burn_from.add_argument("owner")
    p_burn_from.add_argument("amount")

    p_roles = sub.add_parser("roles", parents=[gas], help="Grant or revoke an AccessControl role")
    p_roles.add_argument("action", choices=["grant", "revoke"])
    p_roles.add_argument("--role", "-r", required=True, help="pauser, admin, default-admin or a 0x bytes32 id")
    p_roles.add_argument("--to", "-t", required=True, help="account receiving/losing the role")

    p_init = sub.add_parser("init-v3", parents=[gas], help="initializeV3(admin) after upgrade")
    p_init.add_argument("--admin", "-a", help="default: OWNER_ADDRESS")

    p_bal = sub.add_parser("balance", help="Token balance of an address")
    p_bal.add_argument("holder", nargs="?", help="default: MY_ADDRESS")

    p_eth = sub.add_parser("eth-balance", help="Native balance of an address")
    p_eth.add_argument("address", nargs="?", help="default: MY_ADDRESS")

    p_transfer = sub.add_parser("transfer", parents=[gas], help="transfer(recipient, amount)")
    p_transfer.add_argument("amount")
    p_transfer.add_argument("recipient", nargs="?", help="default: RECIPIENT")

    p_send = sub.add_parser("send-eth", parents=[gas], help="Send native currency")
    p_send.add_argument("amount", nargs="?", default=transfers.DEFAULT_ETH_AMOUNT)
    p_send.add_argument("recipient", nargs="?", help="default: RECIPIENT")

    p_wallet = sub.add_parser("wallet-new", help="Generate a mnemonic and derive an account")
    p_wallet.add_argument("--path", default=accounts.DEFAULT_DERIVATION_PATH)

    p_hash = sub.add_parser("hash", help="SHA-256 of a string")
    p_hash.add_argument("text", nargs="?", default=accounts.DEFAULT_HASH_TEXT)

    p_deploy = sub.add_parser("deploy", parents=[gas], help="Deploy a token from a Foundry artifact")
    p_deploy.add_argument("--artifact", default=deploy.DEFAULT_ARTIFACT)
    p_deploy.add_argument("--name", default=deploy.DEFAULT_NAME)
    p_deploy.add_argument("--symbol", default=deploy.DEFAULT_SYMBOL)
    p_deploy.add_argument("--supply", default=deploy.DEFAULT_SUPPLY)
    p_deploy.add_argument("--save-env", metavar="PATH", help="append TOKEN_ADDRESS=<addr> to this file")

    return parser


def signing_key(command: str, config: ToolkitConfig) -> Optional[str]:
    """
    Resolve the private key that signs for ``command``.

    Raises:
        ConfigError: If the command needs a key that is not configured.
    """
    kind = SIGNERS.get(command)
    if kind == "owner":
        if not config.owner_key:
            raise ConfigError("Missing env: OWNER_PRIVATE_KEY")
        return config.owner_key
    if kind == "spender":
        config.require("spender_private_key")
        return config.spender_private_key
    if kind == "admin":
        if not config.admin_key:
            raise ConfigError("Missing env: PRIVATE_KEY")
        return config.admin_key
    if kind == "admin?":
        return config.admin_key
    return None


def _fees(args: argparse.Namespace) -> Optional[GasOverrides]:
    gas, priority = getattr(args, "gas", None), getattr(args, "priority", None)
    if not gas and not priority:
        return None
    try:
        return GasOverrides.from_gwei(gas, priority)
    except ValueError as e:
        raise ConfigError(f"Invalid gas value: {e}") from e


async def run_command(
    args: argparse.Namespace,
    config: ToolkitConfig,
    client_factory: ClientFactory = ChainClient.from_config,
    echo: Callable[[str], Any] = print,
) -> Any:
    """Build the client for ``args.cmd`` and run the command."""
    cmd = args.cmd
    if cmd not in NO_TOKEN:
        config.require("token_address")
    key = signing_key(cmd, config)
    fees = _fees(args)
    ctx = CommandContext(config=config, client=client_factory(config, key), fees=fees, echo=echo)

    if cmd == "adjust":
        return await allowance.cmd_adjust(ctx, args.operation, args.amount, args.spender)
    if cmd == "allowance":
        return await allowance.cmd_allowance(ctx, args.token, args.owner, args.spender)
    if cmd == "permit-sign":
        return await permits.cmd_permit_sign(ctx, args.amount, args.ttl_minutes)
    if cmd == "permit-revoke":
        return await permits.cmd_permit_revoke(ctx, args.ttl_minutes)
    if cmd == "permit-spend":
        return await permits.cmd_permit_spend(ctx, args.amount, args.to)
    if cmd == "status":
        return await admin.cmd_status(ctx)
    if cmd == "pause":
        return await admin.cmd_pause(ctx)
    if cmd == "unpause":
        return await admin.cmd_unpause(ctx)
    if cmd == "mint":
        return await admin.cmd_mint(ctx, args.amount, args.to, raw=args.wei, require_owner=args.require_owner)
    if cmd == "burn":
        return await admin.cmd_burn(ctx, args.amount)
    if cmd == "burn-from":
        return await admin.cmd_burn_from(ctx, args.owner, args.amount)
    if cmd == "roles":
        return await roles.cmd_roles(ctx, args.action, args.role, args.to)
    if cmd == "init-v3":
        return await initialize.cmd_init_v3(ctx, args.admin)
    if cmd == "balance":
        return await transfers.cmd_balance(ctx, args.holder)
    if cmd == "eth-balance":
        return await transfers.cmd_eth_balance(ctx, args.address)
    if cmd == "transfer":
        return await transfers.cmd_transfer(ctx, args.amount, args.recipient)
    if cmd == "send-eth":
        return await transfers.cmd_send_eth(ctx, args.amount, args.recipient)
    if cmd == "deploy":
        return await deploy.cmd_deploy(ctx, args.artifact, args.name, args.symbol, args.supply, args.save_env)
    raise ConfigError(f"Unknown command: {cmd}")


def _to_json(result: Any) -> str:
    if isinstance(result, CanonicalModel):
        return result.to_canonical_json()
    return canonical_json(result if isinstance(result, dict) else {"result": result})


def _report_failure(error: SubmissionFailed) -> Tuple[int, str]:
    if error.needs_manual_intervention:
        return (
            CompensationFailed.exit_code,
            f"error: {error}; {error.compensation_error}. "
            f"Allowance left at 0, manual intervention required.",
        )
    if error.compensation == FallbackState.RESTORED:
        return error.exit_code, f"error: {error}; previous allowance restored."
    return error.exit_code, f"error: {error}"


def main(argv: Optional[List[str]] = None, *, client_factory: ClientFactory = ChainClient.from_config) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level or "WARNING", json_output=args.json)
    echo: Callable[[str], Any] = (lambda line: None) if args.json else print

    try:
        if args.cmd in OFFLINE:
            if args.cmd == "wallet-new":
                result = accounts.cmd_wallet_new(args.path, echo=echo)
            else:
                result = accounts.cmd_hash(args.text, echo=echo)
        else:
            config = load_config(args.env_file)
            if not args.log_level:
                setup_logging(config.log_level, json_output=args.json)
            result = asyncio.run(run_command(args, config, client_factory, echo))
    except SubmissionFailed as e:
        code, message = _report_failure(e)
        if args.json and e.report is not None:
            print(e.report.to_canonical_json())
        print(message, file=sys.stderr)
        return code
    except ToolkitError as e:
        print(f"error: {e}", file=sys.stderr)
        return e.exit_code
    except Exception as e:
        logger.debug("unexpected error", exc_info=True)
        print(f"error: {e.__class__.__name__}: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(_to_json(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
