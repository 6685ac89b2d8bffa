# catalog.py
"""
Jurisdiction catalog: country code -> TaxRule.

The tables live in a JSON file (rules/jurisdictions.json by default, or the file
named by CRYPTOTAXSIM_RULES_PATH). The file is read once and exposed as a
read-only mapping of frozen TaxRule models. Adding a jurisdiction means adding
an entry to the file; nothing in the engine is country-specific.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping

from cryptotaxsim.config import get_settings
from cryptotaxsim.errors import UnknownJurisdictionError

from .base import TaxRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Jurisdiction:
    code: str
    name: str
    rule: TaxRule


def load_catalog(path: Path) -> Mapping[str, Jurisdiction]:
    """Parse a jurisdictions file. Floats are read as Decimal so rates stay exact."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"), parse_float=Decimal)
    entries: Dict[str, Jurisdiction] = {}
    for code, entry in raw.items():
        entry = dict(entry)
        key = code.strip().lower()
        name = entry.pop("name", None) or key.upper()
        entries[key] = Jurisdiction(code=key, name=name, rule=TaxRule.model_validate(entry))
    logger.debug("Loaded %d jurisdictions from %s", len(entries), path)
    return MappingProxyType(entries)


@lru_cache(maxsize=1)
def get_catalog() -> Mapping[str, Jurisdiction]:
    return load_catalog(get_settings().rules_path)


@lru_cache(maxsize=1)
def catalog_version() -> str:
    """Short content hash of the rules file, recorded with every stored run."""
    return hashlib.sha256(Path(get_settings().rules_path).read_bytes()).hexdigest()[:12]


def get_jurisdiction(country: str) -> Jurisdiction:
    key = (country or "").strip().lower()
    try:
        return get_catalog()[key]
    except KeyError:
        raise UnknownJurisdictionError(country) from None


def get_rule(country: str) -> TaxRule:
    return get_jurisdiction(country).rule


def country_name(country: str) -> str:
    try:
        return get_jurisdiction(country).name
    except UnknownJurisdictionError:
        return country.upper()


def available_countries() -> List[Dict[str, str]]:
    return [{"code": j.code, "name": j.name} for j in get_catalog().values()]


def rule_summary(country: str, rule: TaxRule) -> str:
    """Plain-language description of a jurisdiction's treatment of crypto gains."""
    name = country_name(country)

    if rule.taxable_percentage == 0:
        return f"{name} does not tax capital gains from cryptocurrency trading."

    parts = [f"{name} taxes cryptocurrency as capital gains."]

    if rule.taxable_percentage < 100:
        parts.append(f"Only {rule.taxable_percentage.normalize():f}% of gains are taxable.")

    if rule.has_tax_free_allowance:
        parts.append(
            f"There is a tax-free allowance of {rule.tax_free_allowance.normalize():f} per year."
        )

    if rule.short_term_duration > 0:
        parts.append(
            f"Gains on assets held for more than {rule.short_term_duration} days "
            f"qualify for long-term capital gains rates."
        )

    if rule.allow_losses:
        parts.append("Losses can be used to offset gains.")
        if rule.max_loss_carry_forward:
            parts.append(
                f"Unused losses can be carried forward for up to {rule.max_loss_carry_forward} years."
            )
        else:
            parts.append("Unused losses can be carried forward indefinitely.")

    return " ".join(parts)
