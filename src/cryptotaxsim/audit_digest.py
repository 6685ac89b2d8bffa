# audit_digest.py
from __future__ import annotations
import json, hashlib
from decimal import Decimal
from typing import Any, Dict

from .schemas import TaxCalculationResult, Transaction, dec_to_str


def _json_c14n(obj: Any) -> str:
    """
    Canonical JSON dump:
      - sort keys
      - no spaces (compact separators)
      - decimals rendered as plain strings
    """
    def normalize(o: Any):
        if isinstance(o, dict):
            return {k: normalize(o[k]) for k in sorted(o.keys())}
        elif isinstance(o, (list, tuple)):
            return [normalize(v) for v in o]
        elif isinstance(o, Decimal):
            return dec_to_str(o)
        else:
            return o
    return json.dumps(normalize(obj), sort_keys=True, separators=(",", ":"), default=str)


def _sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def build_run_manifest(
    country: str,
    year: int,
    income: Decimal,
    rule_version: str,
    transactions: list[Transaction],
    result: TaxCalculationResult,
) -> Dict[str, Any]:
    """
    Canonical manifest of one calculation:
      - parameters (country, year, income, rule file version)
      - INPUT SET: transactions in the order received
      - OUTPUT SET: the year-level figures and every matched disposal
    """
    return {
        "params": {
            "country": country,
            "year": year,
            "income": income,
            "rule_version": rule_version,
            "lot_method": "FIFO",
        },
        "inputs": [t.model_dump(mode="json") for t in transactions],
        "outputs": result.model_dump(mode="json"),
    }


def compute_digests(manifest: Dict[str, Any]) -> Dict[str, str]:
    """
    Compute:
      - input_hash: hash over params + input transactions
      - output_hash: hash over the result
      - manifest_hash: hash over the full manifest
    Same inputs and rule file always give the same input_hash/output_hash.
    """
    inputs_part = {"params": manifest["params"], "inputs": manifest["inputs"]}
    return {
        "input_hash": _sha256_hex(_json_c14n(inputs_part)),
        "output_hash": _sha256_hex(_json_c14n(manifest["outputs"])),
        "manifest_hash": _sha256_hex(_json_c14n(manifest)),
    }
