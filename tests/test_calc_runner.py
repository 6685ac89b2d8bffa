from __future__ import annotations

from decimal import Decimal

import pytest

from cryptotaxsim.calc_runner import calculate_taxes, run_calculation
from cryptotaxsim.errors import EmptyTransactionHistoryError, UnknownJurisdictionError
from cryptotaxsim.rules import Bracket, TaxRule, get_rule
from cryptotaxsim.schemas import TaxCalculationRequest


@pytest.fixture
def btc_round_trip(tx):
    return [
        tx("1", "buy", "BTC", 1, 10000, "2024-01-01"),
        tx("2", "sell", "BTC", 1, 15000, "2024-06-01", fees=10),
    ]


def test_round_trip_us(btc_round_trip):
    result = calculate_taxes(btc_round_trip, get_rule("us"), Decimal("50000"), 2024)

    assert len(result.transactions) == 1
    d = result.transactions[0]
    assert d.holding_period == 152
    assert d.is_long_term is False
    assert d.proceeds == Decimal("14990")
    assert d.cost_basis == Decimal("10000")
    assert d.gain == Decimal("4990")
    # per-disposal lookup on the gain alone
    assert d.tax_rate == Decimal("0.1")
    assert d.tax_amount == Decimal("499")

    assert result.total_gain == Decimal("4990")
    assert result.short_term_gains == Decimal("4990")
    assert result.long_term_gains == 0
    assert result.taxable_gain == Decimal("4990")
    # year level: short-term bracket covering income + gain = 54990
    assert result.tax_rate == Decimal("0.22")
    assert result.tax_amount == Decimal("1097.8")
    assert result.remaining_tax_free_allowance == 0


def test_singapore_never_taxes(btc_round_trip, tx):
    txs = btc_round_trip + [
        tx("3", "buy", "ETH", 10, 100, "2024-02-01"),
        tx("4", "sell", "ETH", 10, 900, "2024-09-01"),
    ]
    result = calculate_taxes(txs, get_rule("singapore"), Decimal("1000000"), 2024)

    assert result.total_gain == Decimal("12990")
    assert result.taxable_gain == 0
    assert result.tax_amount == 0
    assert all(d.taxable_gain == 0 and d.tax_amount == 0 for d in result.transactions)


def test_year_level_allowance_is_applied_independently(tx):
    # Per disposal: the 12300 allowance is used up by the first gain, the
    # later loss gives nothing back. Year level: the full allowance is taken
    # off the net gain again.
    txs = [
        tx("b1", "buy", "BTC", 1, 10000, "2024-01-01"),
        tx("s1", "sell", "BTC", 1, 25000, "2024-02-01"),
        tx("b2", "buy", "BTC", 1, 10000, "2024-03-01"),
        tx("s2", "sell", "BTC", 1, 5000, "2024-04-01"),
    ]
    result = calculate_taxes(txs, get_rule("uk"), Decimal("30000"), 2024)

    d1, d2 = result.transactions
    assert d1.adjusted_taxable_gain == Decimal("2700")
    assert d2.gain == Decimal("-5000")
    assert result.remaining_tax_free_allowance == 0

    assert result.total_gain == Decimal("10000")
    assert result.taxable_gain == 0
    assert result.tax_rate == 0
    assert result.tax_amount == 0


def test_year_level_allowance_floors_at_zero_then_taxes_excess(tx):
    txs = [
        tx("b1", "buy", "BTC", 1, 10000, "2024-01-01"),
        tx("s1", "sell", "BTC", 1, 30000, "2024-02-01"),
    ]
    result = calculate_taxes(txs, get_rule("uk"), Decimal("30000"), 2024)

    assert result.taxable_gain == Decimal("7700")
    # 30000 + 7700 = 37700 -> 10% band
    assert result.tax_rate == Decimal("0.1")
    assert result.tax_amount == Decimal("770")


def test_effective_rate_always_uses_short_term_table(tx):
    # NOTE: long-term disposals still get the short-term table at year level.
    rule = TaxRule(
        short_term_rates=(Bracket(rate=Decimal("0.3"), min=Decimal("0")),),
        long_term_rates=(Bracket(rate=Decimal("0"), min=Decimal("0")),),
        short_term_duration=30,
        taxable_percentage=Decimal("100"),
    )
    txs = [
        tx("b1", "buy", "BTC", 1, 100, "2024-01-01"),
        tx("s1", "sell", "BTC", 1, 200, "2024-06-01"),
    ]
    result = calculate_taxes(txs, rule, Decimal("0"), 2024)

    d = result.transactions[0]
    assert d.is_long_term is True
    assert d.tax_amount == 0
    assert result.long_term_gains == Decimal("100")
    assert result.short_term_gains == 0
    assert result.tax_rate == Decimal("0.3")
    assert result.tax_amount == Decimal("30")


def test_inclusion_rate_halves_year_level_taxable_gain(tx):
    txs = [
        tx("b1", "buy", "BTC", 1, 1000, "2024-01-01"),
        tx("s1", "sell", "BTC", 1, 3000, "2024-05-01"),
    ]
    result = calculate_taxes(txs, get_rule("australia"), Decimal("40000"), 2024)

    assert result.total_gain == Decimal("2000")
    assert result.taxable_gain == Decimal("1000")
    # 41000 -> 19% band
    assert result.tax_rate == Decimal("0.19")
    assert result.tax_amount == Decimal("190")


def test_net_loss_is_not_taxed(tx):
    txs = [
        tx("b1", "buy", "BTC", 1, 10000, "2024-01-01"),
        tx("s1", "sell", "BTC", 1, 8000, "2024-05-01"),
    ]
    result = calculate_taxes(txs, get_rule("us"), Decimal("50000"), 2024)

    assert result.total_gain == Decimal("-2000")
    assert result.taxable_gain == Decimal("-2000")
    assert result.tax_rate == 0
    assert result.tax_amount == 0


def test_no_disposals_in_year(tx):
    txs = [tx("b1", "buy", "BTC", 1, 10000, "2024-01-01")]
    result = calculate_taxes(txs, get_rule("us"), Decimal("50000"), 2024)

    assert result.transactions == []
    assert result.total_gain == 0
    assert result.tax_amount == 0


def test_run_calculation_requires_transactions():
    with pytest.raises(EmptyTransactionHistoryError):
        run_calculation(TaxCalculationRequest(transactions=[]))
    with pytest.raises(EmptyTransactionHistoryError):
        run_calculation(TaxCalculationRequest())


def test_run_calculation_rejects_unknown_country(btc_round_trip):
    with pytest.raises(UnknownJurisdictionError):
        run_calculation(TaxCalculationRequest(transactions=btc_round_trip, country="atlantis"))


def test_run_calculation_uses_defaults(btc_round_trip):
    # defaults: country us, income 50000, year 2024
    result = run_calculation(TaxCalculationRequest(transactions=btc_round_trip))
    assert result.tax_rate == Decimal("0.22")
    assert result.tax_amount == Decimal("1097.8")


def test_run_calculation_country_is_case_insensitive(btc_round_trip):
    result = run_calculation(
        TaxCalculationRequest(transactions=btc_round_trip, country="US", income=0, year=2024)
    )
    # 0 + 4990 -> 10% band
    assert result.tax_rate == Decimal("0.1")
