from .base import Bracket, TaxRule, rate_for_amount
from .catalog import (
    Jurisdiction,
    available_countries,
    catalog_version,
    country_name,
    get_catalog,
    get_jurisdiction,
    get_rule,
    load_catalog,
    rule_summary,
)

__all__ = [
    "Bracket",
    "TaxRule",
    "rate_for_amount",
    "Jurisdiction",
    "available_countries",
    "catalog_version",
    "country_name",
    "get_catalog",
    "get_jurisdiction",
    "get_rule",
    "load_catalog",
    "rule_summary",
]
