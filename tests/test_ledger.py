"""
Test suite for ledger module

Tests admissibility rules, state application, authorization of history
reads and the accounting invariants of the custodial ledger.
CRITICAL: Validates conservation (deposited - withdrawn == held) and the capacity cap.
"""

import random
from unittest.mock import patch

import pytest

from custody_ledger.errors import (
    CapacityExceeded, InsufficientBalance, InvalidAmount, LedgerInvariantError,
    NotAuthorized, WithdrawLimitExceeded, ZeroAmount
)
from custody_ledger.ledger import Ledger, LedgerStats, require_principal


class TestLedgerConstruction:
    """Test configuration validation at construction"""

    def test_valid_limits(self):
        """Test construction with valid limits"""
        ledger = Ledger(capacity_limit=1000, withdraw_limit=100, owner="owner")

        assert ledger.capacity_limit == 1000
        assert ledger.withdraw_limit == 100
        assert ledger.owner == "owner"
        assert ledger.held_balance() == 0
        assert ledger.remaining_capacity() == 1000

    @pytest.mark.parametrize("capacity,withdraw", [(0, 1), (-5, 1), (100, 0), (100, -1)])
    def test_non_positive_limits_rejected(self, capacity, withdraw):
        """Test that non-positive limits raise"""
        with pytest.raises(ValueError, match="must be positive"):
            Ledger(capacity_limit=capacity, withdraw_limit=withdraw)

    def test_withdraw_limit_must_be_below_capacity(self):
        """Test that the withdraw limit must be strictly below capacity"""
        with pytest.raises(ValueError, match="less than capacity_limit"):
            Ledger(capacity_limit=100, withdraw_limit=100)

    def test_non_integer_limits_rejected(self):
        """Test that limits must be integers"""
        with pytest.raises(ValueError, match="must be an integer"):
            Ledger(capacity_limit=100.0, withdraw_limit=10)
        with pytest.raises(ValueError, match="must be an integer"):
            Ledger(capacity_limit=100, withdraw_limit=True)


class TestDeposits:
    """Test deposit validation and application"""

    def setup_method(self):
        self.ledger = Ledger(capacity_limit=1000, withdraw_limit=100)

    def test_zero_amount_rejected(self):
        with pytest.raises(ZeroAmount):
            self.ledger.validate_deposit(0)

    @pytest.mark.parametrize("amount", [-1, 1.5, "10", None, True])
    def test_invalid_amounts_rejected(self, amount):
        """Test that anything but a non-negative int is rejected"""
        with pytest.raises(InvalidAmount):
            self.ledger.validate_deposit(amount)

    def test_apply_deposit_creates_account(self):
        """Test first deposit creates the account implicitly"""
        assert self.ledger.get_account("alice") is None

        balance = self.ledger.apply_deposit("alice", 600)

        assert balance == 600
        account = self.ledger.get_account("alice")
        assert account.balance == 600
        assert account.deposit_count == 1
        assert account.withdraw_count == 0
        assert account.deposits == [600]
        assert self.ledger.total_deposited == 600

    def test_capacity_exceeded_reports_remaining(self):
        """Test rejection carries attempted amount and remaining capacity"""
        self.ledger.apply_deposit("alice", 600)

        with pytest.raises(CapacityExceeded) as exc_info:
            self.ledger.validate_deposit(500)

        assert exc_info.value.attempted == 500
        assert exc_info.value.remaining_capacity == 400
        assert exc_info.value.to_dict()["detail"] == {"attempted": 500, "remaining_capacity": 400}

    def test_deposit_up_to_exact_capacity(self):
        """Test a deposit filling capacity exactly is admissible"""
        self.ledger.apply_deposit("alice", 600)
        self.ledger.validate_deposit(400)
        self.ledger.apply_deposit("bob", 400)

        assert self.ledger.remaining_capacity() == 0
        with pytest.raises(CapacityExceeded):
            self.ledger.validate_deposit(1)

    def test_capacity_bounds_held_not_cumulative(self):
        """Test withdrawn funds free capacity for new deposits"""
        self.ledger.apply_deposit("alice", 1000)
        self.ledger.apply_withdraw("alice", 100)

        # Cumulative deposits become 1100, held stays at 1000
        self.ledger.validate_deposit(100)
        self.ledger.apply_deposit("bob", 100)

        assert self.ledger.total_deposited == 1100
        assert self.ledger.held_balance() == 1000

    def test_apply_deposit_fails_closed_over_capacity(self):
        """Test that an unvalidated over-capacity deposit is refused"""
        self.ledger.apply_deposit("alice", 900)

        with pytest.raises(LedgerInvariantError):
            self.ledger.apply_deposit("bob", 200)

        assert self.ledger.balance_of("bob") == 0
        assert self.ledger.held_balance() == 900


class TestWithdrawals:
    """Test withdrawal validation and application"""

    def setup_method(self):
        self.ledger = Ledger(capacity_limit=1000, withdraw_limit=100)
        self.ledger.apply_deposit("alice", 600)

    def test_zero_amount_rejected(self):
        with pytest.raises(ZeroAmount):
            self.ledger.validate_withdraw("alice", 0)

    def test_withdraw_limit_exceeded(self):
        with pytest.raises(WithdrawLimitExceeded) as exc_info:
            self.ledger.validate_withdraw("alice", 150)

        assert exc_info.value.requested == 150
        assert exc_info.value.limit == 100

    def test_limit_checked_before_balance(self):
        """Test an over-limit request from an empty account reports the limit"""
        with pytest.raises(WithdrawLimitExceeded):
            self.ledger.validate_withdraw("nobody", 150)

    def test_insufficient_balance(self):
        self.ledger.apply_deposit("bob", 50)

        with pytest.raises(InsufficientBalance) as exc_info:
            self.ledger.validate_withdraw("bob", 80)

        assert exc_info.value.available == 50
        assert exc_info.value.requested == 80

    def test_unknown_principal_has_nothing_to_withdraw(self):
        with pytest.raises(InsufficientBalance) as exc_info:
            self.ledger.validate_withdraw("nobody", 1)

        assert exc_info.value.available == 0

    def test_apply_withdraw(self):
        balance = self.ledger.apply_withdraw("alice", 100)

        assert balance == 500
        account = self.ledger.get_account("alice")
        assert account.withdraw_count == 1
        assert account.withdrawals == [100]
        assert self.ledger.total_withdrawn == 100
        assert self.ledger.held_balance() == 500

    def test_withdraw_entire_balance(self):
        """Test a zero balance is a valid state, not a deletion"""
        for _ in range(6):
            self.ledger.apply_withdraw("alice", 100)

        assert self.ledger.balance_of("alice") == 0
        assert self.ledger.get_account("alice") is not None
        assert "alice" in self.ledger.accounts()

    def test_apply_withdraw_fails_closed_below_zero(self):
        """Test that an unvalidated overdraft never underflows"""
        with pytest.raises(LedgerInvariantError):
            self.ledger.apply_withdraw("alice", 601)
        with pytest.raises(LedgerInvariantError):
            self.ledger.apply_withdraw("nobody", 1)

        assert self.ledger.balance_of("alice") == 600
        assert self.ledger.total_withdrawn == 0


class TestQueries:
    """Test read-only queries"""

    def setup_method(self):
        self.ledger = Ledger(capacity_limit=1000, withdraw_limit=100, owner="owner")
        self.ledger.apply_deposit("alice", 300)
        self.ledger.apply_deposit("alice", 200)
        self.ledger.apply_withdraw("alice", 50)
        self.ledger.apply_deposit("bob", 100)

    def test_balance_of_unknown_principal(self):
        assert self.ledger.balance_of("carol") == 0

    def test_global_stats(self):
        stats = self.ledger.global_stats()

        assert stats == LedgerStats(
            total_deposit_operations=3,
            total_withdraw_operations=1,
            held_balance=550
        )
        assert stats.to_dict()["held_balance"] == 550

    def test_remaining_capacity(self):
        assert self.ledger.remaining_capacity() == 450

    def test_history_of_self(self):
        """Test a principal can read its own history in order"""
        history = self.ledger.history_of("alice", "alice")

        assert history.deposits == (300, 200)
        assert history.withdrawals == (50,)

    def test_history_of_by_owner(self):
        """Test the owner can read any history"""
        history = self.ledger.history_of("owner", "bob")

        assert history.deposits == (100,)
        assert history.withdrawals == ()

    def test_history_of_unauthorized(self):
        with pytest.raises(NotAuthorized) as exc_info:
            self.ledger.history_of("bob", "alice")

        assert exc_info.value.caller == "bob"
        assert exc_info.value.principal == "alice"

    def test_history_without_owner_is_self_only(self):
        ledger = Ledger(capacity_limit=1000, withdraw_limit=100)
        ledger.apply_deposit("alice", 10)

        with pytest.raises(NotAuthorized):
            ledger.history_of(None, "alice")
        assert ledger.history_of("alice", "alice").deposits == (10,)

    def test_history_of_unknown_principal_is_empty(self):
        history = self.ledger.history_of("owner", "carol")

        assert history.deposits == ()
        assert history.withdrawals == ()

    def test_get_account_returns_copy(self):
        """Test callers cannot mutate ledger state through returned records"""
        account = self.ledger.get_account("alice")
        account.balance = 10 ** 9
        account.deposits.append(1)

        assert self.ledger.balance_of("alice") == 450
        assert self.ledger.history_of("alice", "alice").deposits == (300, 200)

    def test_require_principal(self):
        assert require_principal("alice") == "alice"
        with pytest.raises(ValueError):
            require_principal("")
        with pytest.raises(ValueError):
            require_principal(42)


class TestAtomicity:
    """Test snapshot, restore and atomic blocks"""

    def setup_method(self):
        self.ledger = Ledger(capacity_limit=1000, withdraw_limit=100)
        self.ledger.apply_deposit("alice", 500)

    def test_atomic_commits_on_success(self):
        with self.ledger.atomic():
            self.ledger.apply_withdraw("alice", 100)

        assert self.ledger.balance_of("alice") == 400

    def test_atomic_restores_on_error(self):
        """Test every account and counter is rolled back"""
        before = self.ledger.global_stats()

        with pytest.raises(RuntimeError):
            with self.ledger.atomic():
                self.ledger.apply_withdraw("alice", 100)
                self.ledger.apply_deposit("bob", 50)
                raise RuntimeError("boom")

        assert self.ledger.balance_of("alice") == 500
        assert self.ledger.balance_of("bob") == 0
        assert self.ledger.get_account("bob") is None
        assert self.ledger.global_stats() == before
        assert self.ledger.history_of("alice", "alice").withdrawals == ()
        self.ledger.check_invariants()

    def test_atomic_restores_on_interrupt(self):
        with pytest.raises(KeyboardInterrupt):
            with self.ledger.atomic():
                self.ledger.apply_withdraw("alice", 100)
                raise KeyboardInterrupt()

        assert self.ledger.balance_of("alice") == 500
        assert self.ledger.total_withdrawn == 0

    def test_debit_commits_on_success(self):
        with self.ledger.debit("alice", 100) as balance:
            assert balance == 400
            assert self.ledger.balance_of("alice") == 400

        assert self.ledger.balance_of("alice") == 400
        assert self.ledger.history_of("alice", "alice").withdrawals == (100,)

    def test_debit_undoes_only_its_withdrawal(self):
        """Test rollback restores the one account and leaves the rest alone"""
        self.ledger.apply_deposit("bob", 200)
        with self.ledger.debit("alice", 50):
            pass
        snapshot = self.ledger.snapshot()

        with patch("custody_ledger.ledger.copy.deepcopy") as deepcopy:
            with pytest.raises(RuntimeError):
                with self.ledger.debit("alice", 100):
                    raise RuntimeError("transfer failed")

        deepcopy.assert_not_called()
        assert self.ledger.snapshot() == snapshot
        assert self.ledger.history_of("alice", "alice").withdrawals == (50,)
        assert self.ledger.balance_of("bob") == 200
        self.ledger.check_invariants()

    def test_debit_rolls_back_on_interrupt(self):
        with pytest.raises(SystemExit):
            with self.ledger.debit("alice", 100):
                raise SystemExit(1)

        assert self.ledger.balance_of("alice") == 500
        assert self.ledger.global_stats().total_withdraw_operations == 0

    def test_debit_rejects_overdraft(self):
        with pytest.raises(LedgerInvariantError):
            with self.ledger.debit("alice", 600):
                pass

        assert self.ledger.balance_of("alice") == 500

    def test_snapshot_is_independent(self):
        snapshot = self.ledger.snapshot()
        self.ledger.apply_deposit("alice", 100)

        assert snapshot.accounts["alice"].balance == 500

        self.ledger.restore(snapshot)
        assert self.ledger.balance_of("alice") == 500
        assert self.ledger.total_deposited == 500


class TestInvariants:
    """Test invariants hold over arbitrary operation sequences"""

    def test_random_sequence_preserves_invariants(self):
        """Conservation, cap, ceiling and counters at every observation point"""
        rng = random.Random(1234)
        ledger = Ledger(capacity_limit=1000, withdraw_limit=100)
        principals = ["alice", "bob", "carol", "dave"]

        for _ in range(2000):
            principal = rng.choice(principals)
            amount = rng.randint(0, 250)
            stats_before = ledger.global_stats()

            if rng.random() < 0.5:
                try:
                    ledger.validate_deposit(amount)
                except (ZeroAmount, CapacityExceeded):
                    assert ledger.global_stats() == stats_before
                    continue
                ledger.apply_deposit(principal, amount)
                stats_after = ledger.global_stats()
                assert stats_after.total_deposit_operations == stats_before.total_deposit_operations + 1
                assert stats_after.total_withdraw_operations == stats_before.total_withdraw_operations
            else:
                try:
                    ledger.validate_withdraw(principal, amount)
                except (ZeroAmount, WithdrawLimitExceeded, InsufficientBalance):
                    assert ledger.global_stats() == stats_before
                    continue
                assert amount <= ledger.withdraw_limit
                ledger.apply_withdraw(principal, amount)
                stats_after = ledger.global_stats()
                assert stats_after.total_withdraw_operations == stats_before.total_withdraw_operations + 1
                assert stats_after.total_deposit_operations == stats_before.total_deposit_operations

            ledger.check_invariants()
            balances = ledger.accounts()
            assert all(balance >= 0 for balance in balances.values())
            assert ledger.total_deposited - ledger.total_withdrawn == sum(balances.values())
            assert sum(balances.values()) <= ledger.capacity_limit

    def test_check_invariants_detects_corruption(self):
        ledger = Ledger(capacity_limit=1000, withdraw_limit=100)
        ledger.apply_deposit("alice", 100)
        ledger.check_invariants()

        ledger._accounts["alice"].balance += 1

        with pytest.raises(LedgerInvariantError, match="Conservation"):
            ledger.check_invariants()

    def test_check_invariants_detects_counter_drift(self):
        ledger = Ledger(capacity_limit=1000, withdraw_limit=100)
        ledger.apply_deposit("alice", 100)

        ledger._accounts["alice"].deposit_count += 1

        with pytest.raises(LedgerInvariantError, match="counters"):
            ledger.check_invariants()
