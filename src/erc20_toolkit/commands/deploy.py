"""
Deploy a token from a Foundry build artifact.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .context import CommandContext
from ..engine.exceptions import ConfigError
from ..utils import logger

DEFAULT_ARTIFACT = "contracts/out/YansToken.sol/YansToken.json"
DEFAULT_NAME = "Yan's Token"
DEFAULT_SYMBOL = "YAN"
DEFAULT_SUPPLY = "1000000"


def load_artifact(path: str) -> Tuple[List[Dict[str, Any]], str]:
    """
    Read ``abi`` and creation bytecode from a Foundry (``forge build``) JSON artifact.

    Raises:
        ConfigError: If the file is missing or lacks ``abi`` / ``bytecode``.
    """
    try:
        artifact = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read artifact {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Artifact {path} is not valid JSON: {e}") from e

    abi = artifact.get("abi")
    bytecode = artifact.get("bytecode")
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if not isinstance(abi, list) or not bytecode:
        raise ConfigError(f"Artifact {path} has no abi/bytecode")
    if not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode
    return abi, bytecode


def append_env(path: str, key: str, value: str) -> None:
    """Append ``KEY=value`` to a dotenv file, starting a new line if needed."""
    env_path = Path(path)
    prefix = ""
    if env_path.exists():
        content = env_path.read_text(encoding="utf-8")
        if content and not content.endswith("\n"):
            prefix = "\n"
    with env_path.open("a", encoding="utf-8") as fh:
        fh.write(f"{prefix}{key}={value}\n")


async def cmd_deploy(
    ctx: CommandContext,
    artifact: str = DEFAULT_ARTIFACT,
    name: str = DEFAULT_NAME,
    symbol: str = DEFAULT_SYMBOL,
    supply: str = DEFAULT_SUPPLY,
    save_env: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Deploy ``(name, symbol, supply)``; ``supply`` is passed to the
    constructor as a whole-token integer.
    """
    try:
        initial_supply = int(supply)
    except ValueError:
        raise ConfigError(f"Supply must be an integer, got {supply!r}") from None

    abi, bytecode = load_artifact(artifact)
    confirmation = await ctx.client.deploy(abi, bytecode, (name, symbol, initial_supply), fees=ctx.fees)
    ctx.echo(f"deploy tx hash: {confirmation.tx_hash}")
    ctx.echo(f"contract address: {confirmation.contract_address}")

    if save_env and confirmation.contract_address:
        append_env(save_env, "TOKEN_ADDRESS", confirmation.contract_address)
        logger.info("TOKEN_ADDRESS written to %s", save_env)
        ctx.echo(f"TOKEN_ADDRESS saved to {save_env}")

    return {"tx_hash": confirmation.tx_hash, "contract_address": confirmation.contract_address}
