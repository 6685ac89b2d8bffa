# fifo_engine.py
"""
Deterministic FIFO lot matcher for one tax year.

Goal:
- Track buy lots per asset, strictly in the order they were acquired.
- For every sell, consume the oldest lots of the same asset first and emit one
  MatchedDisposal per (sell, lot) pair, with holding period, proceeds, cost basis,
  gain, allowance consumption, rate and tax.

Assumptions (kept deliberately simple and auditable):
- Only transactions dated inside the tax year take part, buys included. A lot
  bought in an earlier year is not visible to a sell in this year.
- Sell fees are prorated over the whole sell quantity; buy fees are added to the
  lot's cost and spread over what is left of the lot at the time of each match.
- Selling more than the available lots leaves the excess unmatched: no disposal
  is recorded for it, no error is raised, and a warning is emitted.

Design:
- Pure logic (no DB, no HTTP). Input transactions are never mutated; lots are
  private copies holding the remaining quantity.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, getcontext
from typing import Iterable, List

from .rules.base import TaxRule, rate_for_amount
from .schemas import MatchedDisposal, Transaction

# Enough precision for prorating sub-satoshi quantities.
getcontext().prec = 28

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_SECONDS_PER_DAY = 86400


@dataclass
class Lot:
    """
    An acquisition lot. `remaining` is the only field that changes, and it
    never goes below zero.
    """

    tx: Transaction
    remaining: Decimal

    @property
    def asset(self) -> str:
        return self.tx.asset

    def cost_of(self, qty: Decimal) -> Decimal:
        # Whole remaining lot cost (price + full buy fee), prorated to qty.
        return (qty / self.remaining) * (self.remaining * self.tx.price + self.tx.fees)


@dataclass
class AllowanceTracker:
    """Running tax-free allowance for one calculation; never goes negative."""

    enabled: bool
    remaining: Decimal

    def consume(self, taxable_gain: Decimal) -> Decimal:
        """Use up allowance against a gain and return how much was used."""
        if not self.enabled or self.remaining <= 0 or taxable_gain <= 0:
            return _ZERO
        used = min(taxable_gain, self.remaining)
        self.remaining -= used
        return used


@dataclass
class MatchResult:
    disposals: List[MatchedDisposal] = field(default_factory=list)
    remaining_allowance: Decimal = _ZERO
    warnings: List[str] = field(default_factory=list)


def year_bounds(year: int) -> tuple[datetime, datetime]:
    start = datetime(year, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    end = datetime(year, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
    return start, end


def transactions_in_year(transactions: Iterable[Transaction], year: int) -> List[Transaction]:
    """Chronological (stable) list of the transactions dated within `year`."""
    start, end = year_bounds(year)
    ordered = sorted(transactions, key=lambda t: t.date)
    return [t for t in ordered if start <= t.date <= end]


def holding_period_days(acquired: datetime, disposed: datetime) -> int:
    """Whole days between acquisition and disposal, rounded down."""
    return math.floor((disposed - acquired).total_seconds() / _SECONDS_PER_DAY)


def match_disposals(transactions: Iterable[Transaction], rule: TaxRule, year: int) -> MatchResult:
    """
    Core FIFO matcher:
      - BUY: becomes a lot (in date order).
      - SELL: consumes lots of the same asset oldest-first until the sell is covered
        or the lots run out.

    Per matched portion:
      proceeds   = matched / sell.quantity * (sell.quantity * sell.price - sell.fees)
      cost_basis = matched / lot.remaining * (lot.remaining * buy.price + buy.fees)
      gain       = proceeds - cost_basis
      taxable    = gain * taxable_percentage / 100
      adjusted   = taxable - allowance consumed by this portion
      rate       = bracket lookup of `adjusted` in the long- or short-term table
      tax        = adjusted * rate
    """
    year_txs = transactions_in_year(transactions, year)
    lots = [Lot(tx=t, remaining=t.quantity) for t in year_txs if t.type == "buy"]
    sells = [t for t in year_txs if t.type == "sell"]

    allowance = AllowanceTracker(
        enabled=rule.has_tax_free_allowance, remaining=rule.tax_free_allowance
    )
    result = MatchResult()

    for sell in sells:
        remaining_to_sell = sell.quantity
        sell_proceeds = sell.quantity * sell.price - sell.fees

        for lot in lots:
            if remaining_to_sell <= 0:
                break
            if lot.asset != sell.asset or lot.remaining <= 0:
                continue

            days = holding_period_days(lot.tx.date, sell.date)
            long_term = rule.is_long_term(days)

            take = min(remaining_to_sell, lot.remaining)
            cost_basis = lot.cost_of(take)
            proceeds = (take / sell.quantity) * sell_proceeds
            gain = proceeds - cost_basis

            remaining_to_sell -= take
            lot.remaining -= take

            taxable_gain = rule.taxable_portion(gain)
            used = allowance.consume(taxable_gain)
            adjusted = taxable_gain - used

            rate = rate_for_amount(adjusted, rule.rates_for(long_term))
            tax_amount = adjusted * rate
            if tax_amount == 0:
                tax_amount = _ZERO  # no "-0" for losses

            result.disposals.append(
                MatchedDisposal(
                    id=sell.id,
                    acquired_from=lot.tx.id,
                    asset=sell.asset,
                    quantity=take,
                    acquired_date=lot.tx.date,
                    disposal_date=sell.date,
                    holding_period=days,
                    is_long_term=long_term,
                    proceeds=proceeds,
                    cost_basis=cost_basis,
                    gain=gain,
                    taxable_gain=taxable_gain,
                    allowance_used=used,
                    adjusted_taxable_gain=adjusted,
                    tax_rate=rate,
                    tax_amount=tax_amount,
                )
            )

        if remaining_to_sell > 0:
            msg = (
                f"Selling {sell.quantity} {sell.asset} ({sell.id}) but only "
                f"{sell.quantity - remaining_to_sell} available in {year} lots; "
                f"{remaining_to_sell} {sell.asset} left unmatched."
            )
            logger.warning(msg)
            result.warnings.append(msg)

    result.remaining_allowance = allowance.remaining
    return result
