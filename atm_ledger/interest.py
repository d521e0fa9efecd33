"""
Interest Calculator Module

Simple interest projection on a balance: principal * rate * years / 100.
All arithmetic uses Decimal and results are rounded half-up to two places.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from .errors import InvalidAmountError, YEARS_MESSAGE


DEFAULT_RATE = Decimal("4.0")
TWO_PLACES = Decimal("0.01")


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InterestQuote:
    """Projected simple interest for a balance"""
    principal: Decimal
    rate: Decimal
    years: int
    interest: Decimal
    estimated_balance: Decimal

    def to_dict(self) -> dict:
        return {
            "principal": f"{self.principal:.2f}",
            "rate": f"{self.rate:.2f}",
            "years": self.years,
            "interest": f"{self.interest:.2f}",
            "estimated_balance": f"{self.estimated_balance:.2f}",
        }

    def render(self) -> str:
        """Multi-line report shown to the account holder"""
        return (
            f"Principal: Rs{self.principal:.2f}\n"
            f"Rate: {self.rate:.2f}% per annum\n"
            f"Years: {self.years}\n"
            f"Interest: Rs{self.interest:.2f}\n"
            f"Estimated balance: Rs{self.estimated_balance:.2f}"
        )


def calculate_simple_interest(
    principal: Union[int, Decimal],
    years: int,
    rate: Union[str, Decimal] = DEFAULT_RATE,
) -> InterestQuote:
    """
    Calculate simple interest.

    Args:
        principal: Balance the interest is computed on
        years: Positive whole number of years
        rate: Annual rate in percent

    Returns:
        InterestQuote with every amount rounded to two decimal places

    Raises:
        InvalidAmountError: If years is not a positive integer
    """
    if isinstance(years, bool) or not isinstance(years, int) or years <= 0:
        raise InvalidAmountError(YEARS_MESSAGE, years)

    principal = Decimal(str(principal))
    rate = Decimal(str(rate))
    interest = principal * rate * years / Decimal("100")

    return InterestQuote(
        principal=_quantize(principal),
        rate=_quantize(rate),
        years=years,
        interest=_quantize(interest),
        estimated_balance=_quantize(principal + interest),
    )
