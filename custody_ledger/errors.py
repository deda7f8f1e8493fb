"""
Ledger Error Taxonomy

Structured exceptions for every decision the ledger can refuse. Each error
carries the values that produced the decision (attempted amount vs. the
limit or balance it was measured against) so callers can reconstruct why
an operation was rejected.

All LedgerRejection subclasses are raised before any state is mutated.
TransferFailed is raised after the debit has been rolled back.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger errors"""
    code = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses and log records"""
        return {
            "error": self.code,
            "message": self.message,
            "detail": self.details()
        }


class LedgerRejection(LedgerError):
    """An operation was refused before any state changed"""
    code = "rejected"


class ZeroAmount(LedgerRejection):
    code = "zero_amount"

    def __init__(self):
        super().__init__("Amount must be greater than zero")


class InvalidAmount(LedgerRejection):
    """Amount is not a non-negative integer of the smallest value unit"""
    code = "invalid_amount"

    def __init__(self, amount: Any):
        super().__init__(f"Amount must be a non-negative integer, got {amount!r}")
        self.amount = amount

    def details(self) -> Dict[str, Any]:
        return {"amount": repr(self.amount)}


class CapacityExceeded(LedgerRejection):
    code = "capacity_exceeded"

    def __init__(self, attempted: int, remaining_capacity: int):
        super().__init__(
            f"Deposit of {attempted} exceeds remaining capacity {remaining_capacity}"
        )
        self.attempted = attempted
        self.remaining_capacity = remaining_capacity

    def details(self) -> Dict[str, Any]:
        return {"attempted": self.attempted, "remaining_capacity": self.remaining_capacity}


class InsufficientBalance(LedgerRejection):
    code = "insufficient_balance"

    def __init__(self, available: int, requested: int):
        super().__init__(f"Insufficient balance: available {available}, requested {requested}")
        self.available = available
        self.requested = requested

    def details(self) -> Dict[str, Any]:
        return {"available": self.available, "requested": self.requested}


class WithdrawLimitExceeded(LedgerRejection):
    code = "withdraw_limit_exceeded"

    def __init__(self, requested: int, limit: int):
        super().__init__(f"Withdrawal of {requested} exceeds per-operation limit {limit}")
        self.requested = requested
        self.limit = limit

    def details(self) -> Dict[str, Any]:
        return {"requested": self.requested, "limit": self.limit}


class ReentrancyRejected(LedgerRejection):
    """Another operation is already in progress on this ledger"""
    code = "reentrancy_rejected"

    def __init__(self, operation: Optional[str] = None):
        message = "Operation rejected: ledger is busy with an operation in progress"
        if operation:
            message = f"{operation} rejected: ledger is busy with an operation in progress"
        super().__init__(message)
        self.operation = operation

    def details(self) -> Dict[str, Any]:
        return {"operation": self.operation}


class NotAuthorized(LedgerRejection):
    code = "not_authorized"

    def __init__(self, caller: Optional[str], principal: str):
        super().__init__(f"{caller!r} is not authorized to read history of {principal!r}")
        self.caller = caller
        self.principal = principal

    def details(self) -> Dict[str, Any]:
        return {"caller": self.caller, "principal": self.principal}


class TransferFailed(LedgerError):
    """
    The outbound transfer of a withdrawal failed.

    By the time this is raised the debit applied for the withdrawal has been
    rolled back, so balances and counters match their pre-call values.
    """
    code = "transfer_failed"

    def __init__(self, to: str, amount: int, reason: Optional[str] = None):
        message = f"Transfer of {amount} to {to} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.to = to
        self.amount = amount
        self.reason = reason

    def details(self) -> Dict[str, Any]:
        return {"to": self.to, "amount": self.amount}


class LedgerInvariantError(LedgerError):
    """Internal accounting invariant violated; indicates a bug, never a user error"""
    code = "invariant_violated"
