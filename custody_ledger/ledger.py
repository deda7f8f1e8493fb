"""
Custodial Ledger Core

Holds per-account balances and aggregate counters for a single fungible
value unit, and decides whether a deposit or withdrawal is admissible.
Validation and application are separate steps so that an executor can
place an external transfer between them; this module itself performs no
I/O and never calls out.

Amounts are integers in the smallest indivisible unit. Arithmetic fails
closed: a result that would break a balance or capacity invariant raises
LedgerInvariantError instead of being stored.

Capacity policy: the capacity limit bounds the value currently HELD
(total deposited minus total withdrawn), not cumulative lifetime deposits.
Funds that have been withdrawn free capacity for new deposits.
"""

import copy
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import (
    CapacityExceeded, InsufficientBalance, InvalidAmount, LedgerInvariantError,
    NotAuthorized, WithdrawLimitExceeded, ZeroAmount
)


@dataclass
class Account:
    """
    Balance and activity of a single principal
    Created implicitly on first deposit, never deleted
    """
    principal: str
    balance: int = 0
    deposit_count: int = 0
    withdraw_count: int = 0
    deposits: List[int] = field(default_factory=list)
    withdrawals: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class LedgerStats:
    """Aggregate counters reported by global_stats()"""
    total_deposit_operations: int
    total_withdraw_operations: int
    held_balance: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_deposit_operations": self.total_deposit_operations,
            "total_withdraw_operations": self.total_withdraw_operations,
            "held_balance": self.held_balance
        }


@dataclass(frozen=True)
class AccountHistory:
    """Ordered past amounts of one principal, deposits and withdrawals kept apart"""
    principal: str
    deposits: Tuple[int, ...]
    withdrawals: Tuple[int, ...]


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time copy of all mutable ledger state"""
    accounts: Dict[str, Account]
    total_deposited: int
    total_withdrawn: int
    total_deposit_operations: int
    total_withdraw_operations: int


def require_principal(principal) -> str:
    """Validate a principal identifier"""
    if not isinstance(principal, str) or not principal:
        raise ValueError("Principal must be a non-empty string")
    return principal


def _require_amount(amount) -> int:
    # bool is an int subclass but never a valid amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(amount)
    if amount < 0:
        raise InvalidAmount(amount)
    if amount == 0:
        raise ZeroAmount()
    return amount


class Ledger:
    """
    Bounded custodial ledger

    Construct once and pass the instance to whatever invokes operations;
    there is no module-level ledger.
    """

    def __init__(self, capacity_limit: int, withdraw_limit: int, owner: Optional[str] = None):
        """
        Args:
            capacity_limit: Maximum aggregate value held at once (> 0)
            withdraw_limit: Maximum value removable by a single withdrawal,
                            0 < withdraw_limit < capacity_limit
            owner: Principal allowed to read any account's history

        Raises:
            ValueError: If the limits are not positive integers or the
                        withdraw limit is not strictly below the capacity
        """
        for name, value in (("capacity_limit", capacity_limit), ("withdraw_limit", withdraw_limit)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer")
            if value <= 0:
                raise ValueError(f"{name} must be positive")
        if withdraw_limit >= capacity_limit:
            raise ValueError("withdraw_limit must be less than capacity_limit")

        self._capacity_limit = capacity_limit
        self._withdraw_limit = withdraw_limit
        self._owner = owner

        self._accounts: Dict[str, Account] = {}
        self._total_deposited = 0
        self._total_withdrawn = 0
        self._total_deposit_operations = 0
        self._total_withdraw_operations = 0

    @property
    def capacity_limit(self) -> int:
        return self._capacity_limit

    @property
    def withdraw_limit(self) -> int:
        return self._withdraw_limit

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @property
    def total_deposited(self) -> int:
        return self._total_deposited

    @property
    def total_withdrawn(self) -> int:
        return self._total_withdrawn

    # ---------- validation ----------

    def validate_deposit(self, amount: int) -> None:
        """
        Check that a deposit of amount is admissible

        Raises:
            InvalidAmount: amount is not a non-negative integer
            ZeroAmount: amount is zero
            CapacityExceeded: held balance would exceed the capacity limit
        """
        _require_amount(amount)
        remaining = self.remaining_capacity()
        if amount > remaining:
            raise CapacityExceeded(attempted=amount, remaining_capacity=remaining)

    def validate_withdraw(self, principal: str, amount: int) -> None:
        """
        Check that principal may withdraw amount

        Raises:
            InvalidAmount: amount is not a non-negative integer
            ZeroAmount: amount is zero
            WithdrawLimitExceeded: amount is above the per-operation limit
            InsufficientBalance: amount is above the principal's balance
        """
        _require_amount(amount)
        if amount > self._withdraw_limit:
            raise WithdrawLimitExceeded(requested=amount, limit=self._withdraw_limit)
        available = self.balance_of(principal)
        if amount > available:
            raise InsufficientBalance(available=available, requested=amount)

    # ---------- mutation ----------

    def apply_deposit(self, principal: str, amount: int) -> int:
        """
        Credit a validated deposit and return the principal's new balance

        Callers must have run validate_deposit() with no intervening mutation.
        """
        if self.held_balance() + amount > self._capacity_limit:
            raise LedgerInvariantError(
                f"Deposit of {amount} would exceed capacity {self._capacity_limit}"
            )

        account = self._accounts.get(principal)
        if account is None:
            account = Account(principal=principal)
            self._accounts[principal] = account

        account.balance += amount
        account.deposit_count += 1
        account.deposits.append(amount)
        self._total_deposited += amount
        self._total_deposit_operations += 1
        return account.balance

    def apply_withdraw(self, principal: str, amount: int) -> int:
        """
        Debit a validated withdrawal and return the principal's new balance

        Must complete before the outbound transfer starts, so anything that
        observes the ledger during the transfer sees the debited balance.
        """
        account = self._accounts.get(principal)
        if account is None or account.balance < amount:
            available = account.balance if account else 0
            raise LedgerInvariantError(
                f"Withdrawal of {amount} would leave {principal} below zero (balance {available})"
            )

        account.balance -= amount
        account.withdraw_count += 1
        account.withdrawals.append(amount)
        self._total_withdrawn += amount
        self._total_withdraw_operations += 1
        return account.balance

    # ---------- queries ----------

    def balance_of(self, principal: str) -> int:
        """Balance of principal; unknown principals hold 0"""
        account = self._accounts.get(principal)
        return account.balance if account else 0

    def held_balance(self) -> int:
        """Value currently held on behalf of all principals"""
        held = self._total_deposited - self._total_withdrawn
        if held < 0:
            raise LedgerInvariantError(
                f"Withdrawn total {self._total_withdrawn} exceeds deposited total {self._total_deposited}"
            )
        return held

    def remaining_capacity(self) -> int:
        """Value that may still be deposited before the capacity limit is hit"""
        remaining = self._capacity_limit - self.held_balance()
        if remaining < 0:
            raise LedgerInvariantError(
                f"Held balance exceeds capacity limit {self._capacity_limit}"
            )
        return remaining

    def global_stats(self) -> LedgerStats:
        return LedgerStats(
            total_deposit_operations=self._total_deposit_operations,
            total_withdraw_operations=self._total_withdraw_operations,
            held_balance=self.held_balance()
        )

    def history_of(self, caller: Optional[str], principal: str) -> AccountHistory:
        """
        Past deposit and withdrawal amounts of principal, oldest first

        Only the principal itself or the ledger owner may read a history.

        Raises:
            NotAuthorized: caller is neither principal nor owner
        """
        is_owner = self._owner is not None and caller == self._owner
        if caller != principal and not is_owner:
            raise NotAuthorized(caller=caller, principal=principal)

        account = self._accounts.get(principal)
        if account is None:
            return AccountHistory(principal=principal, deposits=(), withdrawals=())
        return AccountHistory(
            principal=principal,
            deposits=tuple(account.deposits),
            withdrawals=tuple(account.withdrawals)
        )

    def get_account(self, principal: str) -> Optional[Account]:
        """Copy of the account record, or None if principal never deposited"""
        account = self._accounts.get(principal)
        return copy.deepcopy(account) if account else None

    def accounts(self) -> Dict[str, int]:
        """Map of principal -> balance for every known account"""
        return {principal: account.balance for principal, account in self._accounts.items()}

    # ---------- consistency ----------

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            accounts=copy.deepcopy(self._accounts),
            total_deposited=self._total_deposited,
            total_withdrawn=self._total_withdrawn,
            total_deposit_operations=self._total_deposit_operations,
            total_withdraw_operations=self._total_withdraw_operations
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """Replace all mutable state with the contents of snapshot"""
        self._accounts = copy.deepcopy(snapshot.accounts)
        self._total_deposited = snapshot.total_deposited
        self._total_withdrawn = snapshot.total_withdrawn
        self._total_deposit_operations = snapshot.total_deposit_operations
        self._total_withdraw_operations = snapshot.total_withdraw_operations

    @contextmanager
    def atomic(self):
        """Context manager for all-or-nothing mutation; restores state on error"""
        snapshot = self.snapshot()
        try:
            yield
        except BaseException:
            self.restore(snapshot)
            raise

    @contextmanager
    def debit(self, principal: str, amount: int):
        """
        Apply a withdrawal for the duration of the block, yielding the new balance

        If the block raises, only the fields the withdrawal touched are put
        back: the account's balance, withdraw counter and history, and the
        aggregate withdrawal totals. Other accounts are never read or copied.
        """
        account = self._accounts.get(principal)
        prior_balance = account.balance if account else 0
        prior_count = account.withdraw_count if account else 0
        prior_history = len(account.withdrawals) if account else 0
        prior_withdrawn = self._total_withdrawn
        prior_operations = self._total_withdraw_operations

        balance = self.apply_withdraw(principal, amount)
        try:
            yield balance
        except BaseException:
            account = self._accounts[principal]
            account.balance = prior_balance
            account.withdraw_count = prior_count
            del account.withdrawals[prior_history:]
            self._total_withdrawn = prior_withdrawn
            self._total_withdraw_operations = prior_operations
            raise

    def check_invariants(self) -> None:
        """
        Verify conservation, non-negativity and capacity

        Raises:
            LedgerInvariantError: describing the first violation found
        """
        if self._total_deposited < 0 or self._total_withdrawn < 0:
            raise LedgerInvariantError("Aggregate totals must be non-negative")

        negative = [a.principal for a in self._accounts.values() if a.balance < 0]
        if negative:
            raise LedgerInvariantError(f"Negative balance for {negative[0]}")

        held = sum(a.balance for a in self._accounts.values())
        if self._total_deposited - self._total_withdrawn != held:
            raise LedgerInvariantError(
                f"Conservation broken: deposited {self._total_deposited} - "
                f"withdrawn {self._total_withdrawn} != held {held}"
            )

        if held > self._capacity_limit:
            raise LedgerInvariantError(
                f"Held balance {held} exceeds capacity limit {self._capacity_limit}"
            )

        deposit_ops = sum(a.deposit_count for a in self._accounts.values())
        withdraw_ops = sum(a.withdraw_count for a in self._accounts.values())
        if deposit_ops != self._total_deposit_operations or withdraw_ops != self._total_withdraw_operations:
            raise LedgerInvariantError("Per-account counters disagree with global counters")
