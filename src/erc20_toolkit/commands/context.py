"""
Shared state handed to every command.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..adapters.evm.client import ChainClient
from ..adapters.evm.constants import ToolkitConfig, amount_to_value, to_checksum, value_to_amount
from ..adapters.evm.schemas import GasOverrides
from ..engine.exceptions import ConfigError
from ..utils import logger

DEFAULT_DECIMALS = 18


@dataclass
class CommandContext:
    """
    Attributes:
        config: Resolved configuration
        client: Chain client; its signer depends on the command
        fees: Fee caps from ``--gas`` / ``--priority``
        echo: Sink for report lines (``print``; a no-op under ``--json``)
    """
    config: ToolkitConfig
    client: ChainClient
    fees: Optional[GasOverrides] = None
    echo: Callable[[str], Any] = field(default=print)

    async def decimals(self) -> int:
        """Token decimals, 18 when the token does not answer."""
        value = await self.client.try_read("decimals")
        if value is None:
            logger.warning("decimals() unavailable, assuming %d", DEFAULT_DECIMALS)
            return DEFAULT_DECIMALS
        return int(value)

    @staticmethod
    def parse_amount(amount: str, decimals: int) -> int:
        try:
            return amount_to_value(amount=amount, decimals=decimals)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    @staticmethod
    def format_amount(value: int, decimals: int) -> str:
        return value_to_amount(value=int(value), decimals=decimals)

    @staticmethod
    def address(value: Optional[str], what: str) -> str:
        """
        Checksum a user-supplied address.

        Raises:
            ConfigError: If ``value`` is missing or malformed; ``what`` names it.
        """
        if not value:
            raise ConfigError(f"Missing {what}")
        try:
            return to_checksum(value)
        except ValueError as e:
            raise ConfigError(f"{what}: {e}") from e
