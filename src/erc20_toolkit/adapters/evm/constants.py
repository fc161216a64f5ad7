"""
EVM Configuration and Unit Conversion

Provides the explicit configuration object every command receives, built once
at the entry point from the process environment (optionally seeded from a
``.env`` file via python-dotenv), plus the canonical conversions between
human-readable token amounts and smallest-unit integers.
"""

import os
from typing import Dict, Optional, Mapping, Tuple, Any
from decimal import Decimal, InvalidOperation, localcontext

import dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from web3 import Web3

from ...engine.exceptions import ConfigError

#: Sepolia; every original deployment of the token lives there.
DEFAULT_CHAIN_ID: int = 11155111

#: Largest value a uint256 argument can carry.
MAX_UINT256: int = 2 ** 256 - 1

#: AccessControl's DEFAULT_ADMIN_ROLE.
DEFAULT_ADMIN_ROLE: str = "0x" + "00" * 32

_EVM_CHAINS_DATA: Dict[int, Dict[str, str]] = {
    1: {"name": "Ethereum Mainnet", "explorer_url": "https://etherscan.io"},
    11155111: {"name": "Sepolia Testnet", "explorer_url": "https://sepolia.etherscan.io"},
    17000: {"name": "Holesky Testnet", "explorer_url": "https://holesky.etherscan.io"},
    31337: {"name": "Local Anvil", "explorer_url": ""},
}

# Config field -> environment variables, first non-empty wins.
_ENV_FIELDS: Dict[str, Tuple[str, ...]] = {
    "rpc_url": ("NETWORK_RPC_URL", "INFURA_SEPOLIA"),
    "chain_id": ("CHAIN_ID",),
    "token_address": ("TOKEN_ADDRESS",),
    "private_key": ("PRIVATE_KEY",),
    "owner_private_key": ("OWNER_PRIVATE_KEY",),
    "owner_address": ("OWNER_ADDRESS",),
    "spender_address": ("SPENDER_ADDRESS",),
    "spender_private_key": ("SPENDER_PRIVATE_KEY",),
    "my_address": ("MY_ADDRESS",),
    "recipient": ("RECIPIENT",),
    "permit_signature": ("PERMIT_SIGNATURE",),
    "permit_value": ("PERMIT_VALUE",),
    "permit_deadline": ("PERMIT_DEADLINE",),
    "log_level": ("LOG_LEVEL",),
}


class ToolkitConfig(BaseModel):
    """
    Resolved runtime configuration.

    Every field is optional at construction time; each command states what it
    needs through :meth:`require`, which reports all missing variables at
    once using their environment names.
    """
    rpc_url: Optional[str] = Field(None, description="JSON-RPC endpoint URL")
    chain_id: int = Field(DEFAULT_CHAIN_ID, ge=1, description="EVM chain id")
    token_address: Optional[str] = Field(None, description="ERC-20 token (proxy) address")
    private_key: Optional[str] = Field(None, description="Admin / deployer signing key")
    owner_private_key: Optional[str] = Field(None, description="Token owner signing key")
    owner_address: Optional[str] = Field(None, description="Token owner address")
    spender_address: Optional[str] = Field(None, description="Default spender address")
    spender_private_key: Optional[str] = Field(None, description="Spender / relayer signing key")
    my_address: Optional[str] = Field(None, description="Default holder for balance reads")
    recipient: Optional[str] = Field(None, description="Default transfer recipient")
    permit_signature: Optional[str] = Field(None, description="Packed 65-byte permit signature")
    permit_value: Optional[int] = Field(None, ge=0, description="Permit value in smallest units")
    permit_deadline: Optional[int] = Field(None, ge=0, description="Permit deadline (unix)")
    log_level: str = Field("WARNING", description="Logging level name")

    @field_validator("token_address", "owner_address", "spender_address", "my_address", "recipient")
    @classmethod
    def _checksum(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return to_checksum(value)

    @field_validator("private_key", "owner_private_key", "spender_private_key")
    @classmethod
    def _normalize_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        key = value[2:] if value.startswith(("0x", "0X")) else value
        if len(key) != 64:
            raise ValueError("private key must be 32 bytes (64 hex chars)")
        try:
            int(key, 16)
        except ValueError:
            raise ValueError("private key is not valid hexadecimal")
        return "0x" + key

    def require(self, *fields: str) -> None:
        """
        Ensure the named fields are set.

        Raises:
            ConfigError: Naming the environment variable of every missing field.
        """
        missing = [_ENV_FIELDS.get(f, (f.upper(),))[0] for f in fields if getattr(self, f) in (None, "")]
        if missing:
            raise ConfigError(f"Missing env: {', '.join(missing)}")

    @property
    def owner_key(self) -> Optional[str]:
        """Key that owns the tokens (allowance and permit commands)."""
        return self.owner_private_key or self.private_key

    @property
    def admin_key(self) -> Optional[str]:
        """Key used for admin, role, mint, transfer and deploy commands."""
        return self.private_key or self.owner_private_key


def load_config(env_file: Optional[str] = ".env", environ: Optional[Mapping[str, str]] = None) -> ToolkitConfig:
    """
    Build a :class:`ToolkitConfig` from the environment.

    Args:
        env_file: ``.env`` file loaded into ``os.environ`` first (existing
            variables are not overwritten). ``None`` skips loading.
        environ: Mapping to read instead of ``os.environ`` (used by tests).

    Raises:
        ConfigError: If a present value is malformed.
    """
    if environ is None:
        if env_file:
            dotenv.load_dotenv(env_file, override=False)
        environ = os.environ

    raw: Dict[str, Any] = {}
    for field_name, names in _ENV_FIELDS.items():
        for name in names:
            value = (environ.get(name) or "").strip()
            if value:
                raw[field_name] = value
                break

    try:
        return ToolkitConfig(**raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{_ENV_FIELDS[str(err['loc'][0])][0]}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid environment: {problems}") from e


def to_checksum(address: str) -> str:
    """
    Validate and checksum an address.

    Raises:
        ValueError: If ``address`` is not a 20-byte hex address.
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return Web3.to_checksum_address(address)


def get_chain_name(chain_id: int) -> str:
    entry = _EVM_CHAINS_DATA.get(chain_id)
    return entry["name"] if entry else f"chain {chain_id}"


def explorer_tx_url(chain_id: int, tx_hash: str) -> Optional[str]:
    """Block explorer page for ``tx_hash``, ``None`` on chains without one."""
    entry = _EVM_CHAINS_DATA.get(chain_id)
    if not entry or not entry["explorer_url"]:
        return None
    return f"{entry['explorer_url']}/tx/{tx_hash}"


def amount_to_value(*, amount: int | str | Decimal, decimals: int) -> int:
    """Convert a human-readable token `amount` into smallest-unit integer `value`.

    This is the canonical conversion used by every command that accepts an amount.

    Args:
        amount: Human-readable amount (e.g. "1.5"). Accepts int/str/Decimal.
        decimals: Token decimals (e.g. 18).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if not dec_amount.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")

    if dec_amount < 0:
        raise ValueError("amount must be non-negative")

    # 10**78 > MAX_UINT256; rejects huge exponents before they can overflow the context
    if dec_amount and dec_amount.adjusted() + decimals >= 78:
        raise ValueError(f"amount {amount!r} does not fit in uint256")

    # scaleb rounds to the context precision; widen it so long inputs stay exact
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(dec_amount.as_tuple().digits))
        scaled = dec_amount.scaleb(decimals)

    # Require exact smallest-unit representability (no fractional smallest units)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    if scaled > MAX_UINT256:
        raise ValueError(f"amount {amount!r} does not fit in uint256")

    return int(scaled)


def value_to_amount(*, value: int, decimals: int) -> str:
    """Convert a smallest-unit integer `value` into a human-readable decimal string.

    Exact for any uint256: ``250000000000000000`` at 18 decimals is ``"0.25"``,
    ``2000000000000000000`` is ``"2"``.

    Raises:
        ValueError: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")
    if not isinstance(value, int) or value < 0:
        raise ValueError("value must be a non-negative integer in smallest units")

    whole, frac = divmod(value, 10 ** decimals)
    if frac == 0:
        return str(whole)
    return f"{whole}.{str(frac).rjust(decimals, '0').rstrip('0')}"


def gwei_to_wei(gwei: str | int | Decimal) -> int:
    """Parse a gwei amount such as ``"1.5"`` into wei."""
    return amount_to_value(amount=gwei, decimals=9)
