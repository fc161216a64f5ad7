"""
ERC20 (+ Pausable, AccessControl, Ownable, EIP-2612) Contract Interface Module

The token surface the toolkit talks to is described once, as a table of typed
``AbiFunction`` entries.  The JSON ABI handed to web3.py is generated from
that table, and ``ChainClient`` checks every call it makes (function name and
argument count) against it before touching the network.

Not every function must exist on a given deployment; reads against optional
extensions (``paused``, ``owner``, ``PAUSER_ROLE`` ...) are guarded by the
callers.

Usage:
    from erc20_toolkit.adapters.evm.ERC20_ABI import get_token_abi, get_function

    contract = web3.eth.contract(address=token_address, abi=get_token_abi())
    allowance = await contract.functions.allowance(owner, spender).call()

    get_function("approve").inputs   # (("spender", "address"), ("amount", "uint256"))
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Tuple


@dataclass(frozen=True)
class AbiFunction:
    """
    One function of a contract interface.

    Attributes:
        name: Solidity function name
        inputs: ``(name, type)`` pairs, in call order
        outputs: ``(name, type)`` pairs
        state_mutability: ``view``, ``pure``, ``nonpayable`` or ``payable``
    """
    name: str
    inputs: Tuple[Tuple[str, str], ...] = ()
    outputs: Tuple[Tuple[str, str], ...] = ()
    state_mutability: str = "nonpayable"

    @property
    def is_read_only(self) -> bool:
        return self.state_mutability in ("view", "pure")

    @property
    def arity(self) -> int:
        return len(self.inputs)

    def to_abi(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": "function",
            "stateMutability": self.state_mutability,
            "inputs": [{"name": n, "type": t} for n, t in self.inputs],
            "outputs": [{"name": n, "type": t} for n, t in self.outputs],
        }


def _view(name: str, inputs=(), outputs=()) -> AbiFunction:
    return AbiFunction(name=name, inputs=tuple(inputs), outputs=tuple(outputs), state_mutability="view")


def _write(name: str, inputs=(), outputs=()) -> AbiFunction:
    return AbiFunction(name=name, inputs=tuple(inputs), outputs=tuple(outputs), state_mutability="nonpayable")


_ADDRESS = "address"
_UINT = "uint256"
_BOOL_OUT = (("", "bool"),)

TOKEN_FUNCTIONS: Dict[str, AbiFunction] = {
    fn.name: fn
    for fn in (
        # ERC20 metadata + state
        _view("name", outputs=(("", "string"),)),
        _view("symbol", outputs=(("", "string"),)),
        _view("decimals", outputs=(("", "uint8"),)),
        _view("totalSupply", outputs=(("", _UINT),)),
        _view("balanceOf", inputs=(("account", _ADDRESS),), outputs=(("", _UINT),)),
        _view("allowance", inputs=(("owner", _ADDRESS), ("spender", _ADDRESS)), outputs=(("", _UINT),)),
        # ERC20 writes
        _write("approve", inputs=(("spender", _ADDRESS), ("amount", _UINT)), outputs=_BOOL_OUT),
        _write("increaseAllowance", inputs=(("spender", _ADDRESS), ("addedValue", _UINT)), outputs=_BOOL_OUT),
        _write("decreaseAllowance", inputs=(("spender", _ADDRESS), ("subtractedValue", _UINT)), outputs=_BOOL_OUT),
        _write("transfer", inputs=(("to", _ADDRESS), ("value", _UINT)), outputs=_BOOL_OUT),
        _write("transferFrom", inputs=(("from", _ADDRESS), ("to", _ADDRESS), ("value", _UINT)), outputs=_BOOL_OUT),
        # Ownable
        _view("owner", outputs=(("", _ADDRESS),)),
        # Pausable
        _view("paused", outputs=(("", "bool"),)),
        _write("pause"),
        _write("unpause"),
        # Mint / Burn
        _write("mint", inputs=(("to", _ADDRESS), ("amount", _UINT))),
        _write("burn", inputs=(("amount", _UINT),)),
        _write("burnFrom", inputs=(("account", _ADDRESS), ("amount", _UINT))),
        # AccessControl
        _view("PAUSER_ROLE", outputs=(("", "bytes32"),)),
        _view("hasRole", inputs=(("role", "bytes32"), ("account", _ADDRESS)), outputs=(("", "bool"),)),
        _write("grantRole", inputs=(("role", "bytes32"), ("account", _ADDRESS))),
        _write("revokeRole", inputs=(("role", "bytes32"), ("account", _ADDRESS))),
        # UUPS v3 re-initializer
        _write("initializeV3", inputs=(("admin", _ADDRESS),)),
        # EIP-2612
        _view("nonces", inputs=(("owner", _ADDRESS),), outputs=(("", _UINT),)),
        _write(
            "permit",
            inputs=(
                ("owner", _ADDRESS),
                ("spender", _ADDRESS),
                ("value", _UINT),
                ("deadline", _UINT),
                ("v", "uint8"),
                ("r", "bytes32"),
                ("s", "bytes32"),
            ),
        ),
    )
}


def get_function(name: str) -> AbiFunction:
    """
    Look up a function of the token interface.

    Raises:
        ValueError: If the name is not part of the interface.
    """
    try:
        return TOKEN_FUNCTIONS[name]
    except KeyError:
        raise ValueError(f"Function '{name}' is not part of the token interface") from None


def get_token_abi() -> List[Dict[str, Any]]:
    """
    Get the full JSON ABI for the token interface.

    Returns:
        List[Dict[str, Any]]: ABI entries for every function in TOKEN_FUNCTIONS.

    Example:
        contract = web3.eth.contract(address=token_address, abi=get_token_abi())
    """
    return [fn.to_abi() for fn in TOKEN_FUNCTIONS.values()]


def get_allowance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `allowance(owner, spender)`.

    Example:
        contract = web3.eth.contract(address=token_address, abi=get_allowance_abi())
        allowance = await contract.functions.allowance(owner, spender).call()
    """
    return [TOKEN_FUNCTIONS["allowance"].to_abi()]
