"""
Custodial balance ledger.

The ledger maps (asset, account) to a non-negative integer balance and owns
every write to that mapping. Writes made inside ``Ledger.atomic()`` are
journaled so a failing operation can be undone in full, which gives every
public operation all-or-nothing semantics.
"""

import logging
import threading
from contextlib import contextmanager
from functools import partial
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Set, Tuple

from .amounts import checked_add, validate_amount
from .assets import NATIVE, Asset
from .errors import (
    ConservationError,
    InsufficientBalance,
    InvalidAsset,
    TransferNotApproved,
    Unauthorized,
)
from .events import DepositEvent, EventNotifier, ExchangeEvent, WithdrawEvent
from .token import InMemoryNativeGateway, NativeGateway, TokenContract

logger = logging.getLogger(__name__)

BalanceKey = Tuple[Asset, str]


def validate_account(account) -> str:
    """Reject empty account handles."""
    if not account or not isinstance(account, str):
        raise ValueError(f"Account must be a non-empty string, got: {account!r}")
    return account


def _restore(store: dict, key, old: Optional[int]) -> None:
    if old is None:
        store.pop(key, None)
    else:
        store[key] = old


class Ledger:
    """
    Balance book for native value and fungible tokens.

    Features:
    - Overdraft protection on every debit
    - Debit-before-release ordering on withdrawals
    - Journaled transactions with savepoints for nested scopes
    - Events deferred until the outermost transaction commits
    """

    def __init__(
        self,
        tokens: Optional[Mapping[Asset, TokenContract]] = None,
        native_gateway: Optional[NativeGateway] = None,
        notifier: Optional[EventNotifier] = None,
        custody_account: str = "exchange",
        lock: Optional[threading.RLock] = None,
    ):
        """
        Initialize the ledger.

        Args:
            tokens: Token contracts keyed by their token asset
            native_gateway: Releases withdrawn native value
            notifier: Event notifier for Deposit/Withdraw events
            custody_account: Account under which the ledger holds tokens
            lock: Serialization lock shared with the order book
        """
        self.custody_account = validate_account(custody_account)
        self.native_gateway = native_gateway or InMemoryNativeGateway()
        self.notifier = notifier or EventNotifier()
        self.lock = lock or threading.RLock()

        self._tokens: Dict[Asset, TokenContract] = {}
        for asset, contract in (tokens or {}).items():
            if not isinstance(asset, Asset) or not asset.is_token:
                raise ValueError(f"Token registry keys must be token assets, got: {asset!r}")
            self._tokens[asset] = contract

        self._balances: Dict[BalanceKey, int] = {}
        # Native value held in custody; tokens are held by the contracts
        self._reserves: Dict[Asset, int] = {}

        self._journal: Optional[List[Callable[[], None]]] = None
        self._pending_events: List[ExchangeEvent] = []

        logger.info(f"Ledger initialized with {len(self._tokens)} token(s), custody account {self.custody_account}")

    # ---------- transactions ----------

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Run a block as one transaction.

        Every balance write inside the block is undone in reverse order if
        the block raises. Nested scopes act as savepoints of the outer one.
        """
        with self.lock:
            outermost = self._journal is None
            if outermost:
                self._journal = []
                self._pending_events = []
            journal_mark = len(self._journal)
            events_mark = len(self._pending_events)
            try:
                yield
            except BaseException:
                self._rollback_to(journal_mark)
                del self._pending_events[events_mark:]
                raise
            finally:
                if outermost:
                    self._journal = None

            if outermost:
                events, self._pending_events = self._pending_events, []
                for event in events:
                    self.notifier.emit(event)

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    def record_undo(self, undo: Callable[[], None]) -> None:
        """Register a compensating action for the current transaction."""
        if self._journal is not None:
            self._journal.append(undo)

    def publish(self, event: ExchangeEvent) -> None:
        """Emit an event once the current transaction commits."""
        if self._journal is not None:
            self._pending_events.append(event)
        else:
            self.notifier.emit(event)

    def _rollback_to(self, mark: int) -> None:
        # Keep undoing past a failed step; the caller re-raises the original error
        while len(self._journal) > mark:
            undo = self._journal.pop()
            try:
                undo()
            except Exception as e:
                logger.critical(f"Rollback step failed, ledger may be unbacked: {str(e)}")
        logger.debug(f"Rolled back ledger transaction to savepoint {mark}")

    def _write(self, store: dict, key, value: int) -> None:
        if self._journal is not None:
            self._journal.append(partial(_restore, store, key, store.get(key)))
        if value:
            store[key] = value
        else:
            store.pop(key, None)

    # ---------- balance primitives (lock required) ----------

    def _credit(self, asset: Asset, account: str, amount: int) -> int:
        new_balance = checked_add(self._balances.get((asset, account), 0), amount)
        self._write(self._balances, (asset, account), new_balance)
        return new_balance

    def _debit(self, asset: Asset, account: str, amount: int) -> int:
        available = self._balances.get((asset, account), 0)
        if amount > available:
            raise InsufficientBalance(asset, account, amount, available)
        new_balance = available - amount
        self._write(self._balances, (asset, account), new_balance)
        return new_balance

    def _token_contract(self, asset: Asset) -> TokenContract:
        if not isinstance(asset, Asset):
            raise InvalidAsset(f"Not an asset: {asset!r}")
        if asset.is_native:
            raise InvalidAsset("Native value must use the native deposit/withdraw path")
        contract = self._tokens.get(asset)
        if contract is None:
            raise InvalidAsset(f"Unknown token: {asset}")
        return contract

    def _validate_holder(self, account: str) -> str:
        validate_account(account)
        if account == self.custody_account:
            raise Unauthorized(f"Custody account {account} cannot hold a ledger balance")
        return account

    # ---------- native value ----------

    def deposit_native(self, account: str, amount: int) -> int:
        """
        Credit native value attached by ``account``.

        Returns:
            The account's new native balance
        """
        self._validate_holder(account)
        validate_amount(amount)

        with self.atomic():
            balance = self._credit(NATIVE, account, amount)
            self._write(self._reserves, NATIVE, checked_add(self._reserves.get(NATIVE, 0), amount))
            self.publish(DepositEvent(NATIVE, account, amount, balance))

        logger.info(f"Deposited {amount} {NATIVE} for {account}, balance {balance}")
        return balance

    def withdraw_native(self, account: str, amount: int) -> int:
        """
        Debit native value and release it to ``account``.

        The ledger is debited before the gateway is called, so a reentrant
        withdrawal observes the reduced balance.

        Returns:
            The account's new native balance

        Raises:
            InsufficientBalance: If the balance is below ``amount``
        """
        self._validate_holder(account)
        validate_amount(amount)

        try:
            with self.atomic():
                balance = self._debit(NATIVE, account, amount)
                self._write(self._reserves, NATIVE, self._reserves.get(NATIVE, 0) - amount)
                self.native_gateway.release(account, amount)
                self.publish(WithdrawEvent(NATIVE, account, amount, balance))
        except InsufficientBalance as e:
            logger.warning(f"Rejected native withdrawal: {str(e)}")
            raise

        logger.info(f"Withdrew {amount} {NATIVE} for {account}, balance {balance}")
        return balance

    # ---------- tokens ----------

    def deposit_token(self, asset: Asset, account: str, amount: int) -> int:
        """
        Pull tokens from ``account`` into custody and credit them.

        ``account`` must have approved the custody account on the token
        contract for at least ``amount``.

        Returns:
            The account's new token balance

        Raises:
            InvalidAsset: For the native asset or an unregistered token
            TransferNotApproved: If the token contract refuses the transfer
            Unauthorized: If ``account`` is the custody account
        """
        contract = self._token_contract(asset)
        self._validate_holder(account)
        validate_amount(amount)

        with self.atomic():
            # Fail on overflow before any tokens move
            checked_add(self._balances.get((asset, account), 0), amount)
            try:
                ok = contract.transfer_from(self.custody_account, account, self.custody_account, amount)
            except TransferNotApproved as e:
                logger.warning(f"Rejected {asset} deposit for {account}: {str(e)}")
                raise
            if not ok:
                logger.warning(f"Rejected {asset} deposit for {account}: transfer_from returned False")
                raise TransferNotApproved(f"Token contract refused transfer of {amount} from {account}")
            self.record_undo(partial(contract.transfer, self.custody_account, account, amount))

            balance = self._credit(asset, account, amount)
            self.publish(DepositEvent(asset, account, amount, balance))

        logger.info(f"Deposited {amount} {asset} for {account}, balance {balance}")
        return balance

    def withdraw_token(self, asset: Asset, account: str, amount: int) -> int:
        """
        Debit tokens and transfer them out of custody to ``account``.

        Returns:
            The account's new token balance

        Raises:
            InvalidAsset: For the native asset or an unregistered token
            InsufficientBalance: If the balance is below ``amount``
            TransferNotApproved: If the token contract refuses the transfer
        """
        contract = self._token_contract(asset)
        self._validate_holder(account)
        validate_amount(amount)

        try:
            with self.atomic():
                balance = self._debit(asset, account, amount)
                if not contract.transfer(self.custody_account, account, amount):
                    raise TransferNotApproved(f"Token contract refused transfer of {amount} to {account}")
                self.publish(WithdrawEvent(asset, account, amount, balance))
        except (InsufficientBalance, TransferNotApproved) as e:
            logger.warning(f"Rejected {asset} withdrawal for {account}: {str(e)}")
            raise

        logger.info(f"Withdrew {amount} {asset} for {account}, balance {balance}")
        return balance

    # ---------- internal movement ----------

    def transfer_internal(self, asset: Asset, sender: str, recipient: str, amount: int) -> None:
        """
        Move ``amount`` of ``asset`` between two accounts inside the ledger.

        Never touches a token contract.

        Raises:
            InsufficientBalance: If ``sender`` holds less than ``amount``
            Unauthorized: If either side is the custody account
        """
        self._validate_holder(sender)
        self._validate_holder(recipient)
        validate_amount(amount)

        with self.atomic():
            self._debit(asset, sender, amount)
            self._credit(asset, recipient, amount)

    # ---------- reads ----------

    def balance_of(self, asset: Asset, account: str) -> int:
        """Return the balance for (asset, account); 0 if never credited."""
        with self.lock:
            return self._balances.get((asset, account), 0)

    def assets(self) -> Set[Asset]:
        """Assets that have a registered contract or a non-zero balance."""
        with self.lock:
            held = {asset for asset, _ in self._balances}
            return held | set(self._tokens) | set(self._reserves)

    def balances_for(self, asset: Asset) -> Dict[str, int]:
        """Non-zero balances of ``asset`` keyed by account."""
        with self.lock:
            return {account: amount for (a, account), amount in self._balances.items() if a == asset}

    def total_balance(self, asset: Asset) -> int:
        with self.lock:
            return sum(amount for (a, _), amount in self._balances.items() if a == asset)

    def custodied(self, asset: Asset) -> int:
        """Value actually held in custody for ``asset``."""
        with self.lock:
            if asset.is_native:
                return self._reserves.get(NATIVE, 0)
            return self._token_contract(asset).balance_of(self.custody_account)

    def verify_conservation(self, asset: Asset, strict: bool = True) -> None:
        """
        Check that internal balances are backed by custodied value.

        Args:
            asset: Asset to check
            strict: Require equality; otherwise only require full backing,
                which tolerates tokens sent to custody outside a deposit

        Raises:
            ConservationError: If the invariant does not hold
        """
        with self.lock:
            total = self.total_balance(asset)
            held = self.custodied(asset)
            if total > held or (strict and total != held):
                logger.critical(f"Conservation violated for {asset}: balances {total}, custodied {held}")
                raise ConservationError(f"Balances of {asset} total {total} but custody holds {held}")

    def __repr__(self) -> str:
        return f"Ledger(entries={len(self._balances)}, tokens={len(self._tokens)})"
