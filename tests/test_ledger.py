"""
Tests for the custodial ledger.

This module tests native and token deposits/withdrawals, overdraft
protection, transaction rollback and the conservation invariant.
"""

import unittest
from decimal import Decimal

from token_exchange.core.amounts import MAX_AMOUNT
from token_exchange.core.assets import NATIVE, Asset
from token_exchange.core.errors import (
    ArithmeticOverflow,
    ConservationError,
    InsufficientBalance,
    InvalidAsset,
    TransferNotApproved,
    Unauthorized,
)
from token_exchange.core.ledger import Ledger
from token_exchange.core.token import InMemoryNativeGateway, InMemoryToken, NativeGateway

TOKEN_ADDRESS = "0x" + "11" * 20
ETHER = 10 ** 18


def tokens(n):
    return int(Decimal(str(n)) * 10 ** 18)


class FailingGateway(NativeGateway):
    """Gateway whose value transport is down."""

    def release(self, account, amount):
        raise RuntimeError("native transport unavailable")


class ReentrantGateway(NativeGateway):
    """Gateway that tries to withdraw again while value is being released."""

    def __init__(self):
        self.ledger = None
        self.released = 0
        self.reentry_errors = []

    def release(self, account, amount):
        self.released += amount
        if not self.reentry_errors:
            try:
                self.ledger.withdraw_native(account, amount)
            except InsufficientBalance as e:
                self.reentry_errors.append(e)


class RefusingToken(InMemoryToken):
    """Token that reports failure instead of raising."""

    def transfer_from(self, spender, owner, recipient, amount):
        return False

    def transfer(self, sender, recipient, amount):
        if sender == "exchange":
            return False
        return super().transfer(sender, recipient, amount)


class StuckCustodyToken(InMemoryToken):
    """Token whose custody account cannot send anything back out."""

    def transfer(self, sender, recipient, amount):
        if sender == "exchange":
            raise RuntimeError("custody wallet frozen")
        return super().transfer(sender, recipient, amount)


class LedgerTestCase(unittest.TestCase):
    """Shared fixtures: one registered token and a recording native gateway."""

    def setUp(self):
        self.token_asset = Asset.token(TOKEN_ADDRESS)
        self.token = InMemoryToken(TOKEN_ADDRESS, deployer="deployer")
        self.token.transfer("deployer", "user1", tokens(100))
        self.gateway = InMemoryNativeGateway()
        self.ledger = Ledger(tokens={self.token_asset: self.token}, native_gateway=self.gateway)

    def deposit_tokens(self, account, amount):
        self.token.approve(account, self.ledger.custody_account, amount)
        return self.ledger.deposit_token(self.token_asset, account, amount)


class TestNativeValue(LedgerTestCase):
    """Native deposits and withdrawals."""

    def test_deposit_tracks_balance(self):
        balance = self.ledger.deposit_native("user1", ETHER)

        self.assertEqual(balance, ETHER)
        self.assertEqual(self.ledger.balance_of(NATIVE, "user1"), ETHER)
        self.assertEqual(self.ledger.custodied(NATIVE), ETHER)

    def test_deposit_emits_event(self):
        self.ledger.deposit_native("user1", ETHER)

        event = self.ledger.notifier.last_event
        self.assertEqual(event.name, "Deposit")
        self.assertEqual(event.asset, NATIVE)
        self.assertEqual(event.account, "user1")
        self.assertEqual(event.amount, ETHER)
        self.assertEqual(event.balance, ETHER)

    def test_withdraw_releases_value(self):
        self.ledger.deposit_native("user1", ETHER)

        balance = self.ledger.withdraw_native("user1", ETHER)

        self.assertEqual(balance, 0)
        self.assertEqual(self.ledger.balance_of(NATIVE, "user1"), 0)
        self.assertEqual(self.gateway.wallet_of("user1"), ETHER)
        self.assertEqual(self.ledger.custodied(NATIVE), 0)

        event = self.ledger.notifier.last_event
        self.assertEqual(event.name, "Withdraw")
        self.assertEqual(event.amount, ETHER)
        self.assertEqual(event.balance, 0)

    def test_withdraw_more_than_balance_fails(self):
        self.ledger.deposit_native("user1", ETHER)

        with self.assertRaises(InsufficientBalance) as ctx:
            self.ledger.withdraw_native("user1", 100 * ETHER)

        self.assertEqual(ctx.exception.requested, 100 * ETHER)
        self.assertEqual(ctx.exception.available, ETHER)
        self.assertEqual(self.ledger.balance_of(NATIVE, "user1"), ETHER)
        self.assertEqual(self.gateway.wallet_of("user1"), 0)
        self.assertEqual(len(self.ledger.notifier.events_of("Withdraw")), 0)

    def test_deposit_then_withdraw_restores_balance(self):
        self.ledger.deposit_native("user1", 3)
        before = self.ledger.balance_of(NATIVE, "user1")

        self.ledger.deposit_native("user1", 7)
        self.ledger.withdraw_native("user1", 7)

        self.assertEqual(self.ledger.balance_of(NATIVE, "user1"), before)

    def test_gateway_failure_restores_balance(self):
        ledger = Ledger(native_gateway=FailingGateway())
        ledger.deposit_native("user1", ETHER)

        with self.assertRaises(RuntimeError):
            ledger.withdraw_native("user1", ETHER)

        self.assertEqual(ledger.balance_of(NATIVE, "user1"), ETHER)
        self.assertEqual(ledger.custodied(NATIVE), ETHER)
        self.assertEqual(len(ledger.notifier.events_of("Withdraw")), 0)

    def test_reentrant_withdrawal_sees_debited_balance(self):
        gateway = ReentrantGateway()
        ledger = Ledger(native_gateway=gateway)
        gateway.ledger = ledger
        ledger.deposit_native("attacker", ETHER)

        ledger.withdraw_native("attacker", ETHER)

        self.assertEqual(gateway.released, ETHER)
        self.assertEqual(len(gateway.reentry_errors), 1)
        self.assertEqual(gateway.reentry_errors[0].available, 0)
        self.assertEqual(ledger.balance_of(NATIVE, "attacker"), 0)
        self.assertEqual(ledger.custodied(NATIVE), 0)
        ledger.verify_conservation(NATIVE)

    def test_overflow_is_rejected(self):
        self.ledger.deposit_native("user1", MAX_AMOUNT)

        with self.assertRaises(ArithmeticOverflow):
            self.ledger.deposit_native("user1", 1)

        self.assertEqual(self.ledger.balance_of(NATIVE, "user1"), MAX_AMOUNT)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            self.ledger.deposit_native("user1", -1)
        with self.assertRaises(ValueError):
            self.ledger.deposit_native("user1", 1.5)
        with self.assertRaises(ValueError):
            self.ledger.deposit_native("", 1)


class TestTokens(LedgerTestCase):
    """Token deposits and withdrawals through the token contract."""

    def test_deposit_moves_tokens_into_custody(self):
        balance = self.deposit_tokens("user1", tokens(10))

        self.assertEqual(balance, tokens(10))
        self.assertEqual(self.token.balance_of("exchange"), tokens(10))
        self.assertEqual(self.token.balance_of("user1"), tokens(90))
        self.assertEqual(self.ledger.balance_of(self.token_asset, "user1"), tokens(10))

        event = self.ledger.notifier.last_event
        self.assertEqual(event.name, "Deposit")
        self.assertEqual(event.asset, self.token_asset)
        self.assertEqual(event.balance, tokens(10))

    def test_deposit_rejects_native_asset(self):
        with self.assertRaises(InvalidAsset):
            self.ledger.deposit_token(NATIVE, "user1", tokens(10))

    def test_deposit_rejects_unknown_token(self):
        with self.assertRaises(InvalidAsset):
            self.ledger.deposit_token(Asset.token("0x" + "99" * 20), "user1", tokens(10))

    def test_deposit_without_approval_fails(self):
        with self.assertRaises(TransferNotApproved):
            self.ledger.deposit_token(self.token_asset, "user1", tokens(10))

        self.assertEqual(self.ledger.balance_of(self.token_asset, "user1"), 0)
        self.assertEqual(self.token.balance_of("user1"), tokens(100))
        self.assertEqual(len(self.ledger.notifier), 0)

    def test_deposit_refused_by_contract(self):
        token = RefusingToken(TOKEN_ADDRESS, deployer="user1")
        ledger = Ledger(tokens={self.token_asset: token})

        with self.assertRaises(TransferNotApproved):
            ledger.deposit_token(self.token_asset, "user1", 1)

        self.assertEqual(ledger.balance_of(self.token_asset, "user1"), 0)

    def test_withdraw_returns_tokens(self):
        self.deposit_tokens("user1", tokens(10))

        balance = self.ledger.withdraw_token(self.token_asset, "user1", tokens(10))

        self.assertEqual(balance, 0)
        self.assertEqual(self.token.balance_of("user1"), tokens(100))
        self.assertEqual(self.token.balance_of("exchange"), 0)
        self.assertEqual(self.ledger.notifier.last_event.name, "Withdraw")

    def test_withdraw_rejects_native_asset(self):
        self.deposit_tokens("user1", tokens(10))

        with self.assertRaises(InvalidAsset):
            self.ledger.withdraw_token(NATIVE, "user1", tokens(10))

    def test_withdraw_more_than_balance_fails(self):
        self.deposit_tokens("user1", tokens(10))

        with self.assertRaises(InsufficientBalance):
            self.ledger.withdraw_token(self.token_asset, "user1", tokens(100))

        self.assertEqual(self.ledger.balance_of(self.token_asset, "user1"), tokens(10))
        self.assertEqual(self.token.balance_of("exchange"), tokens(10))

    def test_withdraw_refused_by_contract_restores_balance(self):
        token = RefusingToken(TOKEN_ADDRESS, deployer="user1")
        ledger = Ledger(tokens={self.token_asset: token})
        with ledger.atomic():
            # Seed a custodied balance directly
            token.transfer("user1", "exchange", 5)
            ledger._credit(self.token_asset, "user1", 5)

        with self.assertRaises(TransferNotApproved):
            ledger.withdraw_token(self.token_asset, "user1", 5)

        self.assertEqual(ledger.balance_of(self.token_asset, "user1"), 5)

    def test_registry_rejects_native_key(self):
        with self.assertRaises(ValueError):
            Ledger(tokens={NATIVE: self.token})


class TestTransactions(LedgerTestCase):
    """Journaled transactions and internal transfers."""

    def setUp(self):
        super().setUp()
        self.ledger.deposit_native("a", 10)

    def test_transfer_internal(self):
        self.ledger.transfer_internal(NATIVE, "a", "b", 4)

        self.assertEqual(self.ledger.balance_of(NATIVE, "a"), 6)
        self.assertEqual(self.ledger.balance_of(NATIVE, "b"), 4)
        self.assertEqual(self.token.balance_of("exchange"), 0)

    def test_transfer_internal_insufficient(self):
        with self.assertRaises(InsufficientBalance):
            self.ledger.transfer_internal(NATIVE, "a", "b", 11)

        self.assertEqual(self.ledger.balance_of(NATIVE, "a"), 10)
        self.assertEqual(self.ledger.balance_of(NATIVE, "b"), 0)

    def test_failed_transaction_rolls_back_every_write(self):
        with self.assertRaises(InsufficientBalance):
            with self.ledger.atomic():
                self.ledger.transfer_internal(NATIVE, "a", "b", 5)
                self.ledger.transfer_internal(NATIVE, "a", "c", 100)

        self.assertEqual(self.ledger.balance_of(NATIVE, "a"), 10)
        self.assertEqual(self.ledger.balance_of(NATIVE, "b"), 0)
        self.assertEqual(self.ledger.balance_of(NATIVE, "c"), 0)
        self.assertFalse(self.ledger.in_transaction)

    def test_nested_scope_is_a_savepoint(self):
        with self.ledger.atomic():
            self.ledger.transfer_internal(NATIVE, "a", "b", 5)
            try:
                with self.ledger.atomic():
                    self.ledger.transfer_internal(NATIVE, "a", "c", 3)
                    raise ValueError("abort inner")
            except ValueError:
                pass

        self.assertEqual(self.ledger.balance_of(NATIVE, "a"), 5)
        self.assertEqual(self.ledger.balance_of(NATIVE, "b"), 5)
        self.assertEqual(self.ledger.balance_of(NATIVE, "c"), 0)

    def test_events_wait_for_commit(self):
        events_before = len(self.ledger.notifier)

        with self.ledger.atomic():
            self.ledger.deposit_native("b", 1)
            self.assertEqual(len(self.ledger.notifier), events_before)

        self.assertEqual(len(self.ledger.notifier), events_before + 1)

    def test_rolled_back_events_are_dropped(self):
        events_before = len(self.ledger.notifier)

        with self.assertRaises(RuntimeError):
            with self.ledger.atomic():
                self.ledger.deposit_native("b", 1)
                raise RuntimeError("abort")

        self.assertEqual(len(self.ledger.notifier), events_before)
        self.assertEqual(self.ledger.balance_of(NATIVE, "b"), 0)
        self.assertEqual(self.ledger.custodied(NATIVE), 10)

    def test_rolled_back_token_deposit_returns_tokens(self):
        self.token.approve("user1", "exchange", tokens(10))

        with self.assertRaises(RuntimeError):
            with self.ledger.atomic():
                self.ledger.deposit_token(self.token_asset, "user1", tokens(10))
                raise RuntimeError("abort")

        self.assertEqual(self.token.balance_of("user1"), tokens(100))
        self.assertEqual(self.token.balance_of("exchange"), 0)
        self.assertEqual(self.ledger.balance_of(self.token_asset, "user1"), 0)

    def test_failed_undo_step_does_not_stop_rollback(self):
        token = StuckCustodyToken(TOKEN_ADDRESS, deployer="user1")
        ledger = Ledger(tokens={self.token_asset: token})
        token.approve("user1", "exchange", 10)

        with self.assertLogs("token_exchange.core.ledger", level="CRITICAL"):
            with self.assertRaises(KeyError):
                with ledger.atomic():
                    ledger.deposit_native("a", 5)
                    ledger.deposit_token(self.token_asset, "user1", 10)
                    raise KeyError("abort")

        self.assertEqual(ledger.balance_of(NATIVE, "a"), 0)
        self.assertEqual(ledger.custodied(NATIVE), 0)
        self.assertEqual(ledger.balance_of(self.token_asset, "user1"), 0)
        self.assertFalse(ledger.in_transaction)
        self.assertEqual(ledger.notifier.events, [])


class TestCustodyAccount(LedgerTestCase):
    """The custody account never holds a ledger balance of its own."""

    def test_custody_cannot_deposit_tokens_to_itself(self):
        self.deposit_tokens("user1", tokens(10))
        self.token.transfer("user1", "exchange", tokens(10))
        self.token.approve("exchange", "exchange", tokens(20))

        for _ in range(2):
            with self.assertRaises(Unauthorized):
                self.ledger.deposit_token(self.token_asset, "exchange", tokens(10))

        self.assertEqual(self.ledger.balance_of(self.token_asset, "exchange"), 0)
        self.assertEqual(self.ledger.total_balance(self.token_asset), tokens(10))
        self.assertEqual(self.token.balance_of("exchange"), tokens(20))
        self.ledger.verify_conservation(self.token_asset, strict=False)

    def test_custody_cannot_withdraw_tokens(self):
        self.deposit_tokens("user1", tokens(10))

        with self.assertRaises(Unauthorized):
            self.ledger.withdraw_token(self.token_asset, "exchange", tokens(1))

        self.assertEqual(self.token.balance_of("exchange"), tokens(10))
        self.ledger.verify_conservation(self.token_asset)

    def test_custody_cannot_move_native_value(self):
        with self.assertRaises(Unauthorized):
            self.ledger.deposit_native("exchange", ETHER)
        with self.assertRaises(Unauthorized):
            self.ledger.withdraw_native("exchange", 0)

        self.assertEqual(self.ledger.custodied(NATIVE), 0)

    def test_custody_cannot_take_part_in_internal_transfers(self):
        self.ledger.deposit_native("user1", 5)

        with self.assertRaises(Unauthorized):
            self.ledger.transfer_internal(NATIVE, "user1", "exchange", 1)
        with self.assertRaises(Unauthorized):
            self.ledger.transfer_internal(NATIVE, "exchange", "user1", 0)

        self.assertEqual(self.ledger.balance_of(NATIVE, "user1"), 5)
        self.assertEqual(self.ledger.balance_of(NATIVE, "exchange"), 0)


class TestConservation(LedgerTestCase):
    """Internal balances stay backed by custody."""

    def test_balances_match_custody(self):
        self.ledger.deposit_native("user1", ETHER)
        self.ledger.deposit_native("user2", 2 * ETHER)
        self.deposit_tokens("user1", tokens(10))
        self.ledger.transfer_internal(self.token_asset, "user1", "user2", tokens(4))
        self.ledger.withdraw_native("user2", ETHER)

        for asset in self.ledger.assets():
            self.ledger.verify_conservation(asset)
        self.assertEqual(self.ledger.total_balance(NATIVE), 2 * ETHER)
        self.assertEqual(self.ledger.balances_for(self.token_asset), {"user1": tokens(6), "user2": tokens(4)})

    def test_tokens_sent_outside_deposit(self):
        self.deposit_tokens("user1", tokens(10))
        self.token.transfer("user1", "exchange", tokens(1))

        with self.assertRaises(ConservationError):
            self.ledger.verify_conservation(self.token_asset)
        self.ledger.verify_conservation(self.token_asset, strict=False)


if __name__ == '__main__':
    unittest.main()
