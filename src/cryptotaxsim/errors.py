# errors.py
"""
Exceptions raised by the calculator and the history store.

The HTTP layer (app.py) maps them to status codes:
  - UnknownJurisdictionError, EmptyTransactionHistoryError -> 400
  - RunNotFoundError                                         -> 404
"""

from __future__ import annotations


class TaxSimError(Exception):
    """Base class for all errors raised on purpose by cryptotaxsim."""


class UnknownJurisdictionError(TaxSimError, KeyError):
    def __init__(self, country: str):
        self.country = country
        super().__init__(country)

    def __str__(self) -> str:
        return f"Tax rules for {self.country} are not available"


class EmptyTransactionHistoryError(TaxSimError, ValueError):
    def __init__(self) -> None:
        super().__init__("Transaction history is required")


class RunNotFoundError(TaxSimError, LookupError):
    def __init__(self, run_id: int):
        self.run_id = run_id
        super().__init__(f"Calculation run {run_id} not found")
