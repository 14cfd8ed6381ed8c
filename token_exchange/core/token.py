"""
Collaborator interfaces consumed by the ledger.

The exchange never implements token accounting itself. It calls a
``TokenContract`` for delegated transfers into custody and transfers out of
custody, and a ``NativeGateway`` to release withdrawn native value.

``InMemoryToken`` and ``InMemoryNativeGateway`` are simulation doubles for
tests, benchmarks and the demo session; production deployments plug in
implementations backed by the real token and value transport.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Tuple

from .amounts import checked_add, validate_amount
from .errors import TransferNotApproved

logger = logging.getLogger(__name__)


class TokenContract(ABC):
    """Standard fungible-token capability with delegated transfers."""

    @abstractmethod
    def balance_of(self, account: str) -> int:
        """Return the token balance held by ``account``."""

    @abstractmethod
    def allowance(self, owner: str, spender: str) -> int:
        """Return how much ``spender`` may still move on behalf of ``owner``."""

    @abstractmethod
    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Authorize ``spender`` to move up to ``amount`` of ``owner``'s tokens."""

    @abstractmethod
    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move ``amount`` from ``sender`` to ``recipient``."""

    @abstractmethod
    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        """
        Move ``amount`` from ``owner`` to ``recipient`` using ``spender``'s allowance.

        Implementations either return False or raise TransferNotApproved
        when the allowance or the owner's balance is insufficient.
        """


class NativeGateway(ABC):
    """Releases native value held in custody back to an account."""

    @abstractmethod
    def release(self, account: str, amount: int) -> None:
        """Send ``amount`` of native value to ``account``."""


class InMemoryToken(TokenContract):
    """
    Thread-safe in-memory token.

    Mirrors the behavior of a standard fungible token: the whole supply is
    minted to the deployer, transfers require sufficient balance and
    delegated transfers consume the spender's allowance.
    """

    def __init__(
        self,
        address: str,
        deployer: str,
        total_supply: int = 1_000_000 * 10 ** 18,
        name: str = "Rated Crypto",
        symbol: str = "RATED",
        decimals: int = 18,
    ):
        self.address = address
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.total_supply = validate_amount(total_supply, "total_supply")

        self._balances: Dict[str, int] = {deployer: self.total_supply}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            return self._allowances.get((owner, spender), 0)

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        validate_amount(amount)
        if not spender:
            raise ValueError("Spender cannot be empty")
        with self._lock:
            self._allowances[(owner, spender)] = amount
        logger.debug(f"{self.symbol} approval: {owner} -> {spender} for {amount}")
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        validate_amount(amount)
        with self._lock:
            self._move(sender, recipient, amount)
        return True

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        validate_amount(amount)
        with self._lock:
            allowed = self._allowances.get((owner, spender), 0)
            if amount > allowed:
                raise TransferNotApproved(
                    f"{spender} is approved for {allowed} {self.symbol} of {owner}, needs {amount}"
                )
            self._move(owner, recipient, amount)
            self._allowances[(owner, spender)] = allowed - amount
        return True

    def mint(self, account: str, amount: int) -> None:
        """Create new supply for ``account``; simulation helper."""
        validate_amount(amount)
        with self._lock:
            self.total_supply = checked_add(self.total_supply, amount)
            self._balances[account] = self._balances.get(account, 0) + amount

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        # Caller holds the lock
        if not recipient:
            raise ValueError("Recipient cannot be empty")
        available = self._balances.get(sender, 0)
        if amount > available:
            raise TransferNotApproved(
                f"{sender} holds {available} {self.symbol}, cannot transfer {amount}"
            )
        self._balances[sender] = available - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount

    def __repr__(self) -> str:
        return f"InMemoryToken(symbol={self.symbol}, address={self.address}, supply={self.total_supply})"


class InMemoryNativeGateway(NativeGateway):
    """Records native value released to each account."""

    def __init__(self):
        self.wallets: Dict[str, int] = {}
        self._lock = threading.Lock()

    def release(self, account: str, amount: int) -> None:
        with self._lock:
            self.wallets[account] = self.wallets.get(account, 0) + amount

    def wallet_of(self, account: str) -> int:
        with self._lock:
            return self.wallets.get(account, 0)
