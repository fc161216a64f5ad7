"""
Allowance adjustment.

``AllowanceAdjuster`` moves ``allowance(owner, spender)`` to a target value
through the cheapest path the token accepts:

1. ``increaseAllowance`` / ``decreaseAllowance`` when the operation is a
   relative change and its dry run passes (single step);
2. otherwise ``approve(spender, 0)`` followed by ``approve(spender, target)``,
   both simulated before either is sent (fallback);
3. if the second ``approve`` fails after the first was mined, one
   ``approve(spender, before)`` restores the previous value (compensation).

The fallback path is tracked by :class:`FallbackStateMachine` so that every
outcome maps to a named terminal state.
"""

import asyncio
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from pydantic import ConfigDict, Field, field_validator

from .exceptions import (
    BlockchainInteractionError,
    CompensationFailed,
    ConfigError,
    InvalidTransition,
    PollTimeout,
    SimulationRejected,
    SubmissionFailed,
)
from .retry import poll_until, Sleep
from ..adapters.evm.client import ChainClient
from ..adapters.evm.constants import MAX_UINT256, amount_to_value, to_checksum, value_to_amount
from ..adapters.evm.schemas import GasOverrides
from ..schemas.bases import CanonicalModel, TransactionStatus
from ..utils import logger


class AdjustmentOperation(str, Enum):
    INCREASE = "inc"
    DECREASE = "dec"
    SET = "set"

    @property
    def single_step_function(self) -> Optional[str]:
        """Token function that applies this operation in one call, if any."""
        return {
            AdjustmentOperation.INCREASE: "increaseAllowance",
            AdjustmentOperation.DECREASE: "decreaseAllowance",
        }.get(self)


class AdjustmentRequest(CanonicalModel):
    """
    A parsed ``adjust`` invocation. Immutable.

    Attributes:
        operation: inc, dec or set
        human_amount: Decimal string in whole tokens (e.g. ``"1.5"``)
        spender: Checksummed spender address
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    operation: AdjustmentOperation
    human_amount: str
    spender: str

    @field_validator("human_amount")
    @classmethod
    def _check_amount(cls, value: str) -> str:
        value = value.strip()
        try:
            parsed = Decimal(value)
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {value!r}") from None
        if not parsed.is_finite() or parsed < 0:
            raise ValueError(f"Invalid amount: {value!r}")
        return value

    @field_validator("spender")
    @classmethod
    def _check_spender(cls, value: str) -> str:
        return to_checksum(value)

    @classmethod
    def parse(cls, operation: str, human_amount: str, spender: Optional[str]) -> "AdjustmentRequest":
        """
        Build a request from raw CLI values.

        Raises:
            ConfigError: On an unknown operation, bad amount or missing/bad spender.
        """
        if not spender:
            raise ConfigError("Missing spender: pass it as an argument or set SPENDER_ADDRESS")
        try:
            op = AdjustmentOperation(operation)
        except ValueError:
            raise ConfigError(f"Unknown operation {operation!r}; expected inc, dec or set") from None
        try:
            return cls(operation=op, human_amount=human_amount, spender=spender)
        except ValueError as e:
            raise ConfigError(str(e)) from e


class AdjustmentPlan(CanonicalModel):
    """Allowance before the change, the target, and the parsed amount."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    before: int = Field(..., ge=0)
    target: int = Field(..., ge=0)
    delta: int = Field(..., ge=0)

    @classmethod
    def compute(cls, operation: AdjustmentOperation, before: int, delta: int) -> "AdjustmentPlan":
        """
        Raises:
            ConfigError: If an increase would push the allowance past uint256.
        """
        if operation is AdjustmentOperation.INCREASE:
            target = before + delta
            if target > MAX_UINT256:
                raise ConfigError(f"Increasing {before} by {delta} does not fit in uint256")
        elif operation is AdjustmentOperation.DECREASE:
            target = before - delta if before >= delta else 0
        else:
            target = delta
        return cls(before=before, target=target, delta=delta)

    @property
    def is_noop(self) -> bool:
        return self.before == self.target


class AdjustmentPath(str, Enum):
    NO_CHANGE = "no-change"
    SINGLE_STEP = "single-step"
    FALLBACK = "fallback"
    COMPENSATION = "compensation"


class FallbackState(str, Enum):
    IDLE = "idle"
    SIMULATING_BOTH = "simulating_both"
    STEP1_SENT = "step1_sent"
    STEP1_CONFIRMED = "step1_confirmed"
    STEP2_SENT = "step2_sent"
    STEP2_CONFIRMED = "step2_confirmed"
    STEP2_FAILED = "step2_failed"
    COMPENSATING = "compensating"
    RESTORED = "restored"
    RESTORE_FAILED = "restore_failed"


_TRANSITIONS: Dict[FallbackState, FrozenSet[FallbackState]] = {
    FallbackState.IDLE: frozenset({FallbackState.SIMULATING_BOTH}),
    FallbackState.SIMULATING_BOTH: frozenset({FallbackState.STEP1_SENT}),
    FallbackState.STEP1_SENT: frozenset({FallbackState.STEP1_CONFIRMED}),
    FallbackState.STEP1_CONFIRMED: frozenset({FallbackState.STEP2_SENT, FallbackState.STEP2_FAILED}),
    FallbackState.STEP2_SENT: frozenset({FallbackState.STEP2_CONFIRMED, FallbackState.STEP2_FAILED}),
    FallbackState.STEP2_FAILED: frozenset({FallbackState.COMPENSATING}),
    FallbackState.COMPENSATING: frozenset({FallbackState.RESTORED, FallbackState.RESTORE_FAILED}),
    FallbackState.STEP2_CONFIRMED: frozenset(),
    FallbackState.RESTORED: frozenset(),
    FallbackState.RESTORE_FAILED: frozenset(),
}


class FallbackStateMachine:
    """
    Progress of one zero-then-set fallback.

    Example:
        machine = FallbackStateMachine()
        machine.advance(FallbackState.SIMULATING_BOTH)
        machine.advance(FallbackState.STEP2_CONFIRMED)  # raises InvalidTransition
    """

    def __init__(self, on_change: Optional[Callable[[FallbackState], None]] = None):
        self.state = FallbackState.IDLE
        self.history: List[FallbackState] = [FallbackState.IDLE]
        self._on_change = on_change

    def can_advance(self, next_state: FallbackState) -> bool:
        return next_state in _TRANSITIONS[self.state]

    def advance(self, next_state: FallbackState) -> FallbackState:
        if not self.can_advance(next_state):
            raise InvalidTransition(self.state, next_state)
        logger.debug("fallback: %s -> %s", self.state.value, next_state.value)
        self.state = next_state
        self.history.append(next_state)
        if self._on_change is not None:
            self._on_change(next_state)
        return next_state

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]


class TxRecord(CanonicalModel):
    label: str
    tx_hash: str
    status: TransactionStatus = TransactionStatus.PENDING


class AdjustmentReport(CanonicalModel):
    """
    Outcome of an adjustment, printed by the CLI (or emitted as JSON).

    ``after`` is the last allowance observed by the final poll and
    ``converged`` whether it equals ``plan.target``.
    """
    token_symbol: str
    decimals: int
    owner: str
    spender: str
    operation: AdjustmentOperation
    plan: Optional[AdjustmentPlan] = None
    path: Optional[AdjustmentPath] = None
    transactions: List[TxRecord] = Field(default_factory=list)
    after: Optional[int] = None
    converged: bool = False
    fallback_state: Optional[FallbackState] = None

    def format(self, value: int) -> str:
        return f"{value} raw ({value_to_amount(value=value, decimals=self.decimals)} {self.token_symbol})"


class AllowanceAdjuster:
    """
    Apply an :class:`AdjustmentRequest` for the client's signer.

    Args:
        client: Chain client whose signer is the token owner.
        fees: Optional fee caps applied to every transaction sent.
        poll_attempts: Reads of the final allowance before giving up.
        poll_delay: Pause between those reads, seconds.
        sleep: Awaitable sleep used between reads.
        echo: Sink for human-readable progress lines.
    """

    def __init__(
        self,
        client: ChainClient,
        *,
        fees: Optional[GasOverrides] = None,
        poll_attempts: int = 5,
        poll_delay: float = 0.5,
        sleep: Sleep = asyncio.sleep,
        echo: Callable[[str], Any] = print,
    ):
        self.client = client
        self.fees = fees
        self.poll_attempts = poll_attempts
        self.poll_delay = poll_delay
        self._sleep = sleep
        self._echo = echo

    async def adjust(self, request: AdjustmentRequest) -> AdjustmentReport:
        """
        Move the allowance to the request's target.

        Returns:
            The report; ``path`` tells which route was taken.

        Raises:
            ConfigError: If the amount has more fractional digits than the token's
                decimals or the resulting allowance does not fit in uint256.
            SimulationRejected: If a fallback leg fails its dry run (nothing sent).
            SubmissionFailed: If a sent transaction fails. After a failed second
                ``approve`` its ``compensation`` names the restore outcome and
                ``report`` holds the partial report.
        """
        owner = self.client.address
        spender = request.spender

        decimals, symbol, before = await asyncio.gather(
            self.client.read("decimals"),
            self.client.read("symbol"),
            self.client.read("allowance", owner, spender),
        )
        decimals = int(decimals)
        before = int(before)

        try:
            delta = amount_to_value(amount=request.human_amount, decimals=decimals)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        plan = AdjustmentPlan.compute(request.operation, before, delta)
        report = AdjustmentReport(
            token_symbol=str(symbol),
            decimals=decimals,
            owner=owner,
            spender=spender,
            operation=request.operation,
            plan=plan,
        )

        self._echo(f"Token: {symbol}, decimals={decimals}")
        self._echo(f"Owner:  {owner}")
        self._echo(f"Spender:{spender}")
        self._echo(f"Allowance(before): {report.format(before)}")

        if plan.is_noop:
            self._echo("No change required: target equals current allowance.")
            report.path = AdjustmentPath.NO_CHANGE
            report.after = before
            report.converged = True
            return report

        try:
            await self._apply(report, request, plan)
        except SubmissionFailed as e:
            e.report = report
            raise

        await self._observe(report, owner, spender, plan.target)
        suffix = " (fallback path)" if report.path is AdjustmentPath.FALLBACK else ""
        self._echo(f"Allowance(after):  {report.format(report.after)}{suffix}")
        return report

    async def _apply(self, report: AdjustmentReport, request: AdjustmentRequest, plan: AdjustmentPlan) -> None:
        fn = request.operation.single_step_function
        if fn is not None:
            try:
                await self.client.simulate(fn, request.spender, plan.delta)
            except SimulationRejected as e:
                logger.info("%s rejected in simulation (%s); falling back to approve", fn, e.reason)
                self._echo("Single-step adjust reverted in simulation; using zero-then-set fallback (approve).")
            else:
                report.path = AdjustmentPath.SINGLE_STEP
                await self._send_and_wait(report, fn, fn, request.spender, plan.delta)
                return

        report.path = AdjustmentPath.FALLBACK
        await self._fallback(report, request.spender, plan)

    async def _fallback(self, report: AdjustmentReport, spender: str, plan: AdjustmentPlan) -> None:
        def track(state: FallbackState) -> None:
            report.fallback_state = state

        machine = FallbackStateMachine(on_change=track)
        machine.advance(FallbackState.SIMULATING_BOTH)
        await self.client.simulate("approve", spender, 0)
        await self.client.simulate("approve", spender, plan.target)

        record = await self._send(report, "approve(0)", "approve", spender, 0)
        machine.advance(FallbackState.STEP1_SENT)
        await self._wait(record, "approve")
        machine.advance(FallbackState.STEP1_CONFIRMED)

        try:
            record = await self._send(report, "approve(target)", "approve", spender, plan.target)
            machine.advance(FallbackState.STEP2_SENT)
            await self._wait(record, "approve")
        except SubmissionFailed as e:
            machine.advance(FallbackState.STEP2_FAILED)
            logger.error("approve(target) failed, attempting to restore previous allowance...")
            await self._compensate(machine, report, spender, plan.before, e)
            raise

        machine.advance(FallbackState.STEP2_CONFIRMED)

    async def _compensate(
        self,
        machine: FallbackStateMachine,
        report: AdjustmentReport,
        spender: str,
        before: int,
        error: SubmissionFailed,
    ) -> None:
        machine.advance(FallbackState.COMPENSATING)
        report.path = AdjustmentPath.COMPENSATION
        try:
            await self._send_and_wait(report, "restore approve(before)", "approve", spender, before)
        except BlockchainInteractionError as restore_error:
            machine.advance(FallbackState.RESTORE_FAILED)
            logger.error("Failed to restore previous allowance. Manual intervention may be required.")
            error.compensation_error = CompensationFailed(
                f"Restoring approve({before}) failed: {restore_error}",
                before=before,
                reason=restore_error.reason,
            )
        else:
            machine.advance(FallbackState.RESTORED)
            self._echo(f"Previous allowance restored: {report.format(before)}")
        error.compensation = machine.state

    async def _send(self, report: AdjustmentReport, label: str, fn: str, *args: Any) -> TxRecord:
        tx_hash = await self.client.send(fn, *args, fees=self.fees)
        record = TxRecord(label=label, tx_hash=tx_hash)
        report.transactions.append(record)
        self._echo(f"{label} tx: {tx_hash}")
        return record

    async def _wait(self, record: TxRecord, fn: str) -> None:
        try:
            await self.client.wait_for_receipt(record.tx_hash, function=fn)
        except SubmissionFailed as e:
            record.status = (
                TransactionStatus.TIMEOUT if e.reason == TransactionStatus.TIMEOUT.value else TransactionStatus.FAILED
            )
            raise
        record.status = TransactionStatus.SUCCESS

    async def _send_and_wait(self, report: AdjustmentReport, label: str, fn: str, *args: Any) -> None:
        record = await self._send(report, label, fn, *args)
        await self._wait(record, fn)

    async def _observe(self, report: AdjustmentReport, owner: str, spender: str, target: int) -> None:
        async def fetch() -> int:
            return int(await self.client.read("allowance", owner, spender))

        try:
            report.after = await poll_until(
                fetch,
                lambda value: value == target,
                attempts=self.poll_attempts,
                delay=self.poll_delay,
                sleep=self._sleep,
            )
            report.converged = True
        except PollTimeout as e:
            logger.warning("Allowance did not reach %d after %d reads; last seen %r", target, e.attempts, e.last_value)
            report.after = e.last_value
            report.converged = False
