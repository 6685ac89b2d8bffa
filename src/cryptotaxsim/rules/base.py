from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence, Tuple

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from cryptotaxsim.schemas import CamelModel, Money

_FROZEN = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Bracket(CamelModel):
    """One row of a rate table. max=None marks the open-ended top bracket."""

    model_config = _FROZEN

    rate: Money
    min: Money
    max: Optional[Money] = None

    def contains(self, amount: Decimal) -> bool:
        return amount >= self.min and (self.max is None or amount <= self.max)


class TaxRule(CamelModel):
    """
    Capital-gains rules for one jurisdiction. Static data, never mutated.

    short_term_duration: a disposal is long-term only when held strictly longer (days).
    taxable_percentage: share of a gain that is taxable (50 = half inclusion).
    max_loss_carry_forward: years; None = indefinitely. Descriptive only.
    """

    model_config = _FROZEN

    short_term_rates: Tuple[Bracket, ...]
    long_term_rates: Tuple[Bracket, ...]
    short_term_duration: int = Field(..., ge=0)
    taxable_percentage: Money = Field(..., ge=0, le=100)
    allow_losses: bool = True
    max_loss_carry_forward: Optional[int] = None
    has_tax_free_allowance: bool = False
    tax_free_allowance: Money = Decimal("0")

    def rates_for(self, is_long_term: bool) -> Tuple[Bracket, ...]:
        return self.long_term_rates if is_long_term else self.short_term_rates

    def is_long_term(self, holding_period_days: int) -> bool:
        return holding_period_days > self.short_term_duration

    def taxable_portion(self, gain: Decimal) -> Decimal:
        return gain * self.taxable_percentage / Decimal("100")


def rate_for_amount(amount: Decimal, brackets: Sequence[Bracket]) -> Decimal:
    """
    Return the rate of the first bracket whose [min, max] range contains `amount`.

    This is a lookup, not a progressive integration: the whole amount is taxed at
    the single rate found. Amounts that fall outside every bracket (negative
    amounts, or the gaps between integer bounds such as 9950.5 in the US table)
    get a rate of 0.
    """
    for bracket in brackets:
        if bracket.contains(amount):
            return bracket.rate
    return Decimal("0")
