"""
Shared schema bases.

Everything the toolkit prints with ``--json`` or passes between the chain
layer and the commands is a pydantic model derived from one of these:

    - CanonicalModel: deterministic (sorted, compact) JSON rendering
    - BaseSignature / BasePermit: shape of an off-chain approval and its
      signature, specialised for EIP-2612 in ``adapters.evm.schemas``
    - TransactionStatus: what happened to a submitted transaction
    - BaseTransactionConfirmation: receipt summary returned by every write

Dependencies:
    - pydantic: validation and serialization
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    Model whose JSON form is stable across runs.

    Keys are sorted and separators carry no whitespace, so two runs that
    observe the same chain state print byte-identical reports.

    Example:
        class Point(CanonicalModel):
            y: int
            x: int

        Point(y=2, x=1).to_canonical_json()  # '{"x":1,"y":2}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        # mode="json" turns enums, datetimes and nested models into plain values
        return json.dumps(
            self.model_dump(mode="json"),
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False,
        )


class BaseSignature(CanonicalModel, ABC):
    """
    Signature over an off-chain approval.

    Attributes:
        signature_type: Signing standard, e.g. ``"EIP2612"``
        created_at: Local time the signature object was built
    """

    signature_type: str = Field(..., description="Signing standard, e.g. EIP2612")
    created_at: datetime = Field(default_factory=datetime.now, description="Local creation time")

    @abstractmethod
    def validate_format(self) -> bool:
        """
        Check the signature components.

        Raises:
            ValueError: Naming the first malformed component.
        """
        raise NotImplementedError


class BasePermit(CanonicalModel, ABC):
    """
    Off-chain approval: the owner signs, anyone may submit it on-chain.

    Attributes:
        permit_type: Approval standard, e.g. ``"EIP2612"``
        signature: Owner's signature, ``None`` until signed
        created_at: Local time the permit object was built
    """

    permit_type: str = Field(..., description="Approval standard, e.g. EIP2612")
    signature: Optional[BaseSignature] = Field(None, description="Owner signature")
    created_at: datetime = Field(default_factory=datetime.now, description="Local creation time")

    @abstractmethod
    def validate_structure(self) -> bool:
        """
        Check addresses, amounts and the attached signature.

        Raises:
            ValueError: Naming the first problem found.
        """
        raise NotImplementedError


class TransactionStatus(str, Enum):
    """
    Fate of a submitted transaction.

    PENDING until a receipt is seen; TIMEOUT when the wait budget ran out
    first.
    """
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    TIMEOUT = "timeout"


class BaseTransactionConfirmation(CanonicalModel, ABC):
    """
    Receipt summary of a submitted transaction.

    Attributes:
        confirmation_type: Chain family, e.g. ``"evm"``
        status: Outcome
        execution_time: Seconds spent waiting for the receipt
        error_message: Why it failed, when it did
        created_at: Local time the receipt was recorded
    """

    confirmation_type: str = Field(..., description="Chain family, e.g. evm")
    status: TransactionStatus = Field(..., description="Outcome")
    execution_time: Optional[float] = Field(None, ge=0, description="Receipt wait, seconds")
    error_message: Optional[str] = Field(None, description="Failure reason")
    created_at: datetime = Field(default_factory=datetime.now, description="Local record time")

    def is_success(self) -> bool:
        return self.status == TransactionStatus.SUCCESS

    def get_confirmation_status(self) -> str:
        """
        One-word status for report lines.

        Returns:
            str: ``"success"``, ``"pending"``, or ``"<status>: <reason>"``
            such as ``"failed: Transaction reverted on-chain"``.
        """
        if self.status in (TransactionStatus.SUCCESS, TransactionStatus.PENDING):
            return self.status.value
        return f"{self.status.value}: {self.error_message or 'no details'}"
