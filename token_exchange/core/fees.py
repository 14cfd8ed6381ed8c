"""
Fee schedule applied to order fills.

The fee is charged to the filler, in the asset the filler pays, on top of the
order's stated amount. Rates are whole percentages of ``FEE_SCALE``.
"""

from dataclasses import dataclass

from .amounts import checked_mul, validate_amount


# fee_percent is expressed in hundredths: 10 means 10 %
FEE_SCALE = 100


@dataclass(frozen=True)
class FeeSchedule:
    """Immutable fee configuration: who collects fees and at what rate."""

    fee_account: str
    fee_percent: int

    def __post_init__(self):
        if not self.fee_account or not isinstance(self.fee_account, str):
            raise ValueError(f"Fee account must be a non-empty string, got: {self.fee_account!r}")
        if isinstance(self.fee_percent, bool) or not isinstance(self.fee_percent, int):
            raise ValueError(f"Fee percent must be an integer, got: {self.fee_percent!r}")
        if not 0 <= self.fee_percent <= FEE_SCALE:
            raise ValueError(f"Fee percent must be between 0 and {FEE_SCALE}: {self.fee_percent}")

    def fee_for(self, amount: int) -> int:
        """
        Fee owed on ``amount``, truncated toward zero.

        Raises:
            ArithmeticOverflow: If the intermediate product overflows
        """
        validate_amount(amount)
        return checked_mul(amount, self.fee_percent) // FEE_SCALE

    @property
    def rate(self) -> float:
        """Fee as a fraction, for display only."""
        return self.fee_percent / FEE_SCALE
