"""
Asset identifiers for the exchange ledger.

An asset is either the native value of the host environment or a fungible
token identified by its contract address. Both kinds share one frozen,
hashable type so they can key balances and orders uniformly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# Conventional all-zero address that external callers use for native value
NATIVE_ADDRESS = "0x" + "00" * 20


class AssetKind(Enum):
    """
    Kinds of assets held by the exchange.

    - NATIVE: The host environment's native value
    - TOKEN: A fungible token reached through its contract
    """
    NATIVE = "native"
    TOKEN = "token"


@dataclass(frozen=True)
class Asset:
    """
    Tagged asset identifier.

    Use ``Asset.native()`` or ``Asset.token(address)`` rather than the
    constructor so the address invariant is always respected.
    """

    kind: AssetKind
    address: Optional[str] = None

    def __post_init__(self):
        """Validate the kind/address pairing."""
        if self.kind == AssetKind.NATIVE:
            if self.address is not None:
                raise ValueError("Native asset cannot carry a token address")
        elif self.kind == AssetKind.TOKEN:
            if not self.address or not isinstance(self.address, str):
                raise ValueError("Token asset requires a non-empty address")
            if self.address == NATIVE_ADDRESS:
                raise ValueError("Native address cannot identify a token")
        else:
            raise ValueError(f"Unknown asset kind: {self.kind}")

    @classmethod
    def native(cls) -> "Asset":
        return cls(AssetKind.NATIVE)

    @classmethod
    def token(cls, address: str) -> "Asset":
        return cls(AssetKind.TOKEN, address)

    @classmethod
    def from_address(cls, address: str) -> "Asset":
        """
        Build an asset from an external address string.

        Args:
            address: Token contract address, or NATIVE_ADDRESS for native value

        Returns:
            Matching Asset instance
        """
        if address == NATIVE_ADDRESS:
            return cls.native()
        return cls.token(address)

    @property
    def is_native(self) -> bool:
        return self.kind == AssetKind.NATIVE

    @property
    def is_token(self) -> bool:
        return self.kind == AssetKind.TOKEN

    def to_address(self) -> str:
        """Return the external address form of this asset."""
        return NATIVE_ADDRESS if self.is_native else self.address

    def __str__(self) -> str:
        return "NATIVE" if self.is_native else f"TOKEN:{self.address}"


NATIVE = Asset.native()
