from __future__ import annotations

"""
Pydantic schemas (data models) used by the calculator and the API.
- These define the structure, types, and validation rules for the data we accept/return.
- Field names are snake_case in Python and camelCase on the wire (alias generator),
  so the JSON matches what the simulator front-end sends and reads.

Core ideas:
- Money and quantities are Decimal end-to-end. JSON output renders them as plain
  decimal strings (8 dp max, trailing zeros stripped) to avoid float noise.
- Transactions are frozen: the lot matcher never mutates its input.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_EVEN, localcontext
from typing import Annotated, Any, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

_Q8 = Decimal("0.00000001")


def dec_to_str(x: Decimal) -> str:
    """Render a Decimal as a plain string: 8 dp max, no exponent, no trailing zeros."""
    if not x.is_finite():
        return str(x)
    # quantize needs every integer digit plus 8 decimals to fit in the context
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, x.adjusted() + 10)
        q = x.quantize(_Q8, rounding=ROUND_HALF_EVEN)
    if q == 0:
        return "0"
    s = format(q, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s


# Decimal that serializes to a string in JSON mode only; model_dump() keeps Decimal.
Money = Annotated[Decimal, PlainSerializer(dec_to_str, return_type=str, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Transaction(CamelModel):
    """
    One buy or sell event.

    Fields:
      id: caller-provided identifier (echoed back in matched disposals).
      type: "buy" or "sell" (case-insensitive on input).
      asset: symbol, e.g. BTC. Normalized to upper case; lots match by symbol only.
      quantity, price, fees: non-negative Decimals. Fees default to 0.
      date: ISO-8601 timestamp. Naive timestamps are taken as UTC.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    type: Literal["buy", "sell"]
    asset: str = Field(..., min_length=1, max_length=32)
    quantity: Money = Field(..., ge=0)
    price: Money = Field(..., ge=0)
    date: datetime
    fees: Money = Field(default=Decimal("0"), ge=0)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("asset", mode="before")
    @classmethod
    def _upper_asset(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("fees", mode="before")
    @classmethod
    def _fees_default(cls, v: Any) -> Any:
        return Decimal("0") if v is None or v == "" else v

    @field_validator("date")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class TaxCalculationRequest(CamelModel):
    """
    Body of POST /api/tax/calculate.
    Missing country/income/year fall back to the configured defaults (us / 50000 / 2024).
    `transactions` is optional here so the API can answer with its own 400 message.
    """

    transactions: Optional[List[Transaction]] = None
    country: Optional[str] = None
    income: Optional[Decimal] = None
    year: Optional[int] = Field(default=None, ge=1970, le=9999)


class MatchedDisposal(CamelModel):
    """
    A sell (or a portion of one) paired with a single buy lot.

    taxable_gain is the gain after the jurisdiction's inclusion percentage;
    adjusted_taxable_gain is what is left after the tax-free allowance, and is
    the amount the rate and tax are computed on.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    acquired_from: str
    asset: str
    quantity: Money
    acquired_date: datetime
    disposal_date: datetime
    holding_period: int
    is_long_term: bool
    proceeds: Money
    cost_basis: Money
    gain: Money
    taxable_gain: Money
    allowance_used: Money
    adjusted_taxable_gain: Money
    tax_rate: Money
    tax_amount: Money


class TaxCalculationResult(CamelModel):
    total_gain: Money
    taxable_gain: Money
    tax_amount: Money
    tax_rate: Money
    short_term_gains: Money
    long_term_gains: Money
    remaining_tax_free_allowance: Money
    transactions: List[MatchedDisposal]
    warnings: List[str] = Field(default_factory=list)


class CountryOut(BaseModel):
    code: str
    name: str


class CSVPreviewResponse(BaseModel):
    """
    API response model for /api/tax/upload/csv (preview only).
    """

    filename: str
    total_valid: int
    total_errors: int
    preview_first_5: List[Transaction]
    errors: List[Any]


class CalcRunOut(CamelModel):
    id: int
    created_at: datetime
    country: str
    year: int
    income: Money
    total_gain: Money
    taxable_gain: Money
    tax_amount: Money
    tax_rate: Money
    disposal_count: int
    input_hash: Optional[str] = None
    output_hash: Optional[str] = None
    manifest_hash: Optional[str] = None


class CalcRunDetail(CalcRunOut):
    result: TaxCalculationResult


T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Success wrapper: {"status": "success", "data": ...}."""

    status: Literal["success"] = "success"
    data: T


class ErrorEnvelope(BaseModel):
    status: Literal["error"] = "error"
    message: str
    error: Optional[str] = None
