from dataclasses import dataclass, field
from typing import Dict, Any, List


PERMIT_DOMAIN_VERSION = "1"

_EIP712_DOMAIN_FIELDS: List[Dict[str, str]] = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

_PERMIT_FIELDS: List[Dict[str, str]] = [
    {"name": "owner", "type": "address"},
    {"name": "spender", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "deadline", "type": "uint256"},
]


@dataclass
class EIP712Domain:
    """
    EIP-712 domain of a permit-capable token.

    ``name`` must equal the token's on-chain ``name()``; OpenZeppelin's
    ERC20Permit uses version ``"1"``.
    """
    name: str
    chainId: int
    verifyingContract: str
    version: str = PERMIT_DOMAIN_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


@dataclass
class PermitMessage:
    """
    Permit message as defined in EIP-2612.
    """
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


@dataclass
class EIP712TypedData:
    """
    EIP-712 ``Permit`` typed data, ready for ``Account.sign_typed_data``
    (``full_message=``) or ``eth_signTypedData_v4``.
    """
    domain: EIP712Domain
    message: PermitMessage

    primary_type: str = "Permit"

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": list(_EIP712_DOMAIN_FIELDS),
            "Permit": list(_PERMIT_FIELDS),
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }
