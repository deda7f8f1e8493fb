"""
Guarded Operation Executor

Runs state-changing ledger operations under a reentrancy guard, in
checks-effects-interactions order:

    guard -> validate -> apply -> outbound transfer -> release -> notify

A withdrawal's outbound transfer runs inside Ledger.debit(), so a failed
transfer rolls back that one debit before TransferFailed reaches
the caller. Anything that re-enters the custodian while an operation is
in flight (typically the transfer callback) is refused with
ReentrancyRejected and changes nothing.
"""

import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .errors import LedgerRejection, ReentrancyRejected, TransferFailed
from .events import DomainEvent, EventDispatcher, create_operation_event
from .guard import GuardState, ReentrancyGuard
from .ledger import AccountHistory, Ledger, LedgerStats, require_principal
from .logging_config import get_logger, log_action


Transfer = Callable[[str, int], Any]


class OperationType(Enum):
    """Kinds of state-changing operations"""
    DEPOSIT = "deposit"
    RECEIVE = "receive"   # Unsolicited inbound value, handled as a deposit
    WITHDRAW = "withdraw"


class OperationPhase(Enum):
    """Where the current (or last) operation stands"""
    IDLE = "idle"
    VALIDATING = "validating"
    REJECTED = "rejected"
    MUTATING = "mutating"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAULTED = "faulted"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a successful operation"""
    operation_id: str
    operation: OperationType
    principal: str
    amount: int
    balance: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation": self.operation.value,
            "principal": self.principal,
            "amount": self.amount,
            "balance": self.balance
        }


class Custodian:
    """
    Entry point for deposits and withdrawals against one Ledger

    Args:
        ledger: The ledger to operate on
        transfer: Callable delivering value out of custody; must raise on failure
        dispatcher: Optional event dispatcher notified after each completed operation
    """

    def __init__(
        self,
        ledger: Ledger,
        transfer: Transfer,
        dispatcher: Optional[EventDispatcher] = None
    ):
        self.ledger = ledger
        self._transfer = transfer
        self._dispatcher = dispatcher
        self._guard = ReentrancyGuard()
        self._phase = OperationPhase.IDLE
        self._last_phase = OperationPhase.IDLE
        self.logger = get_logger("custody_ledger.executor")

    @property
    def guard_state(self) -> GuardState:
        return self._guard.state

    @property
    def phase(self) -> OperationPhase:
        """Phase of the operation in flight; IDLE when none is"""
        return self._phase

    @property
    def last_phase(self) -> OperationPhase:
        """Terminal phase of the most recent operation"""
        return self._last_phase

    # ---------- operations ----------

    def deposit(self, principal: str, amount: int) -> OperationResult:
        """
        Credit amount that has already been received into custody

        Raises:
            ReentrancyRejected, InvalidAmount, ZeroAmount, CapacityExceeded
        """
        return self._credit(OperationType.DEPOSIT, principal, amount)

    def receive(self, principal: str, amount: int) -> OperationResult:
        """Credit value that arrived without an explicit operation"""
        return self._credit(OperationType.RECEIVE, principal, amount)

    def withdraw(self, principal: str, amount: int) -> OperationResult:
        """
        Debit amount from principal and transfer it out of custody

        Raises:
            ReentrancyRejected, InvalidAmount, ZeroAmount,
            WithdrawLimitExceeded, InsufficientBalance
            TransferFailed: The transfer failed; the debit was rolled back
        """
        require_principal(principal)
        operation = OperationType.WITHDRAW
        operation_id = str(uuid.uuid4())

        try:
            with self._operation(operation, operation_id, principal, amount):
                self._validate(operation, operation_id, principal, amount,
                               lambda: self.ledger.validate_withdraw(principal, amount))
                self._phase = OperationPhase.MUTATING
                with self.ledger.debit(principal, amount) as balance:
                    self._phase = OperationPhase.TRANSFERRING
                    self._send(principal, amount)
        except TransferFailed as e:
            # Guard is released and the debit restored at this point
            balance = self.ledger.balance_of(principal)
            log_action(
                self.logger, "error", f"Withdrawal transfer failed, debit rolled back: {e.reason}",
                principal=principal, action=operation.value, operation_id=operation_id,
                extra={"amount": amount, "balance": balance}
            )
            if self._dispatcher:
                self._dispatcher.publish(create_operation_event(
                    DomainEvent.WITHDRAWAL_FAILED,
                    operation_id=operation_id,
                    principal=principal,
                    amount=amount,
                    balance=balance,
                    operation=operation.value,
                    reason=e.reason
                ))
            raise

        return self._complete(operation, operation_id, principal, amount, balance)

    # ---------- read-only pass-throughs ----------

    def balance_of(self, principal: str) -> int:
        return self.ledger.balance_of(principal)

    def remaining_capacity(self) -> int:
        return self.ledger.remaining_capacity()

    def global_stats(self) -> LedgerStats:
        return self.ledger.global_stats()

    def history_of(self, caller: Optional[str], principal: str) -> AccountHistory:
        return self.ledger.history_of(caller, principal)

    # ---------- internals ----------

    def _credit(self, operation: OperationType, principal: str, amount: int) -> OperationResult:
        require_principal(principal)
        operation_id = str(uuid.uuid4())

        with self._operation(operation, operation_id, principal, amount):
            self._validate(operation, operation_id, principal, amount,
                           lambda: self.ledger.validate_deposit(amount))
            self._phase = OperationPhase.MUTATING
            balance = self.ledger.apply_deposit(principal, amount)

        return self._complete(operation, operation_id, principal, amount, balance)

    @contextmanager
    def _operation(self, operation: OperationType, operation_id: str, principal: str, amount: int):
        """Hold the guard for one operation and record its terminal phase"""
        try:
            self._guard.acquire(operation.value)
        except ReentrancyRejected as e:
            self._log_rejection(operation, operation_id, principal, amount, e)
            raise

        self._phase = OperationPhase.VALIDATING
        try:
            yield
        except LedgerRejection:
            self._phase = OperationPhase.REJECTED
            raise
        except BaseException:
            self._phase = OperationPhase.FAULTED
            raise
        else:
            self._phase = OperationPhase.COMPLETED
        finally:
            self._last_phase = self._phase
            self._phase = OperationPhase.IDLE
            self._guard.release()

    def _validate(self, operation: OperationType, operation_id: str, principal: str,
                  amount: Any, check: Callable[[], None]) -> None:
        try:
            check()
        except LedgerRejection as e:
            self._log_rejection(operation, operation_id, principal, amount, e)
            raise

    def _send(self, principal: str, amount: int) -> None:
        try:
            self._transfer(principal, amount)
        except Exception as e:
            raise TransferFailed(to=principal, amount=amount, reason=str(e) or type(e).__name__) from e

    def _complete(self, operation: OperationType, operation_id: str, principal: str,
                  amount: int, balance: int) -> OperationResult:
        result = OperationResult(
            operation_id=operation_id,
            operation=operation,
            principal=principal,
            amount=amount,
            balance=balance
        )
        log_action(
            self.logger, "info", f"{operation.value} of {amount} completed",
            principal=principal, action=operation.value, operation_id=operation_id,
            extra={"amount": amount, "balance": balance}
        )
        if operation == OperationType.WITHDRAW:
            self._publish(DomainEvent.WITHDRAWAL_COMPLETED, result)
        else:
            self._publish(DomainEvent.DEPOSIT_COMPLETED, result)
        return result

    def _publish(self, event_type: DomainEvent, result: OperationResult) -> None:
        if not self._dispatcher:
            return
        event = create_operation_event(
            event_type,
            operation_id=result.operation_id,
            principal=result.principal,
            amount=result.amount,
            balance=result.balance,
            operation=result.operation.value
        )
        self._dispatcher.publish(event)

    def _log_rejection(self, operation: OperationType, operation_id: str, principal: str,
                       amount: Any, error: LedgerRejection) -> None:
        log_action(
            self.logger, "warning", f"{operation.value} rejected: {error.message}",
            principal=principal, action=operation.value, operation_id=operation_id,
            extra={"amount": amount, "error": error.code, **error.details()}
        )
