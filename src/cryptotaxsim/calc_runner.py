from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Tuple

from .config import get_settings
from .errors import EmptyTransactionHistoryError
from .fifo_engine import match_disposals
from .rules import get_rule, rate_for_amount
from .rules.base import TaxRule
from .schemas import TaxCalculationRequest, TaxCalculationResult, Transaction

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


def calculate_taxes(
    transactions: Iterable[Transaction],
    rule: TaxRule,
    income: Decimal,
    year: int,
) -> TaxCalculationResult:
    """
    Match disposals for `year` and roll them up into year-level figures.

    The year-level taxable gain applies the inclusion percentage and the *full*
    tax-free allowance to the total gain, independently of the running allowance
    the matcher consumed per disposal. The effective rate is looked up in the
    short-term table for (income + taxable gain), whatever the long/short mix.
    """
    matched = match_disposals(transactions, rule, year)

    total_gain = _ZERO
    short_term_gains = _ZERO
    long_term_gains = _ZERO
    for d in matched.disposals:
        total_gain += d.gain
        if d.is_long_term:
            long_term_gains += d.gain
        else:
            short_term_gains += d.gain

    taxable_gain = rule.taxable_portion(total_gain)
    if rule.has_tax_free_allowance:
        taxable_gain = max(_ZERO, taxable_gain - rule.tax_free_allowance)

    tax_rate = _ZERO
    if taxable_gain > 0:
        tax_rate = rate_for_amount(income + taxable_gain, rule.short_term_rates)

    tax_amount = taxable_gain * tax_rate
    if tax_amount == 0:
        tax_amount = _ZERO

    return TaxCalculationResult(
        total_gain=total_gain,
        taxable_gain=taxable_gain,
        tax_amount=tax_amount,
        tax_rate=tax_rate,
        short_term_gains=short_term_gains,
        long_term_gains=long_term_gains,
        remaining_tax_free_allowance=matched.remaining_allowance,
        transactions=matched.disposals,
        warnings=matched.warnings,
    )


def resolve_request(req: TaxCalculationRequest) -> Tuple[str, Decimal, int]:
    """Fill in configured defaults for country, income and year."""
    settings = get_settings()
    country = (req.country or settings.default_country).strip().lower()
    income = req.income if req.income is not None else settings.default_income
    year = req.year if req.year is not None else settings.default_year
    return country, income, year


def run_calculation(req: TaxCalculationRequest) -> TaxCalculationResult:
    """
    Validate a request and run it:
      1) reject a missing/empty transaction list
      2) resolve the jurisdiction (UnknownJurisdictionError if not in the catalog)
      3) match and aggregate
    """
    if not req.transactions:
        raise EmptyTransactionHistoryError()

    country, income, year = resolve_request(req)
    rule = get_rule(country)

    result = calculate_taxes(req.transactions, rule, income, year)
    logger.info(
        "Tax calculation: country=%s year=%s transactions=%d disposals=%d",
        country,
        year,
        len(req.transactions),
        len(result.transactions),
    )
    return result
