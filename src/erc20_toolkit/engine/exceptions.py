"""
Exception and Error Definitions Module

Defines the exception hierarchy for configuration handling, dry-run
simulation, transaction submission and the allowance fallback protocol.
All exceptions inherit from ToolkitError for unified handling at the CLI
entry point, which maps each family to its own exit code.

Exception Hierarchy:
    ToolkitError (root)
    ├── ConfigError
    ├── BlockchainInteractionError
    │   ├── SimulationRejected
    │   ├── SubmissionFailed
    │   └── CompensationFailed
    ├── PollTimeout
    ├── SignatureVerificationError
    └── InvalidTransition
"""

from typing import Any, Optional


class ToolkitError(Exception):
    """
    Root exception class for all project-specific exceptions.

    Each subclass carries an ``exit_code`` used by the CLI when the error
    reaches the top level.
    """
    exit_code: int = 1


class ConfigError(ToolkitError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing required environment variables
    - Malformed addresses or private keys
    - Unparseable amounts or unknown role aliases

    Raised before anything touches the chain.
    """
    exit_code = 2


class BlockchainInteractionError(ToolkitError):
    """
    Raised when a blockchain interaction (RPC call) fails.

    Attributes:
        function: Contract function that was called, when known
        reason: Error reason reported by the node or client library
    """

    def __init__(self, message: str, *, function: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.function = function
        self.reason = reason


class SimulationRejected(BlockchainInteractionError):
    """
    Raised when a pre-send dry run (``eth_call``) reverts.

    Nothing has been submitted when this is raised; on-chain state is
    unchanged.
    """
    exit_code = 3


class SubmissionFailed(BlockchainInteractionError):
    """
    Raised when a transaction was sent but reverted, was dropped, or its
    receipt did not arrive in time.

    Attributes:
        tx_hash: Transaction hash if the transaction was broadcast
        compensation: Terminal fallback state when a compensating call ran
            after this failure (``restored`` or ``restore_failed``)
        compensation_error: The CompensationFailed raised by the restore
            attempt, if it failed too
        report: Partial adjustment report at the time of failure
    """
    exit_code = 4

    def __init__(
        self,
        message: str,
        *,
        function: Optional[str] = None,
        reason: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(message, function=function, reason=reason)
        self.tx_hash = tx_hash
        self.compensation: Optional[Any] = None
        self.compensation_error: Optional["CompensationFailed"] = None
        self.report: Optional[Any] = None

    @property
    def needs_manual_intervention(self) -> bool:
        return self.compensation_error is not None


class CompensationFailed(BlockchainInteractionError):
    """
    Raised when the restoring ``approve(spender, before)`` of a partially
    applied fallback also fails.

    The allowance is left at 0 rather than at its previous value and the
    operator must intervene manually.

    Attributes:
        before: Allowance value the restore tried to put back
    """
    exit_code = 5

    def __init__(self, message: str, *, before: int, reason: Optional[str] = None):
        super().__init__(message, function="approve", reason=reason)
        self.before = before


class PollTimeout(ToolkitError):
    """
    Raised by the bounded retry primitive when its predicate never held.

    Attributes:
        attempts: Number of attempts made
        last_value: Value returned by the last attempt
    """

    def __init__(self, message: str, *, attempts: int, last_value: Any = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_value = last_value


class SignatureVerificationError(ToolkitError):
    """
    Raised when permit signature verification fails.

    Attributes:
        expected: Address the signature should recover to
        recovered: Address actually recovered from the signature
    """

    def __init__(self, message: str, *, expected: Optional[str] = None, recovered: Optional[str] = None):
        super().__init__(message)
        self.expected = expected
        self.recovered = recovered


class InvalidTransition(ToolkitError):
    """
    Raised when the allowance fallback state machine is asked to make a
    transition that is not valid from its current state.

    Attributes:
        current_state: State the machine was in
        requested_state: State that was requested
    """

    def __init__(self, current_state: Any, requested_state: Any):
        super().__init__(f"Invalid transition: {current_state} -> {requested_state}")
        self.current_state = current_state
        self.requested_state = requested_state
