from __future__ import annotations
import datetime
from decimal import Decimal
from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Boolean, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

# ---------- Base ----------
class Base(DeclarativeBase):
    pass

# ---------- Decimal helper (exact, stored as text) ----------
class DecimalString(TypeDecorator):
    """SQLite has no exact decimal type; keep the full Decimal as a plain string."""
    impl = String(64)
    cache_ok = True
    def process_bind_param(self, value, dialect):
        if value is None: return None
        return format(Decimal(value), "f")
    def process_result_value(self, value, dialect):
        if value is None: return None
        return Decimal(value)

def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None, microsecond=0)

# ---------- ORM models ----------
class CalcRun(Base):
    """One POST /api/tax/calculate (or /calculate/csv) call and its year-level figures."""
    __tablename__ = "calc_runs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # naive UTC
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=_utcnow, index=True)
    country: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    income: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)

    total_gain: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    taxable_gain: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    disposal_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    input_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    output_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    manifest_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    request_json: Mapped[str] = mapped_column(Text, nullable=False)
    result_json: Mapped[str] = mapped_column(Text, nullable=False)

    disposals: Mapped[list["RealizedDisposal"]] = relationship(
        back_populates="run", cascade="all, delete-orphan", order_by="RealizedDisposal.id"
    )

# Persisted matched disposals per calculation run
class RealizedDisposal(Base):
    __tablename__ = "realized_disposals"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("calc_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    sell_id: Mapped[str] = mapped_column(String(128), nullable=False)
    buy_id: Mapped[str] = mapped_column(String(128), nullable=False)
    asset: Mapped[str] = mapped_column(String(32), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    acquired_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    disposed_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    holding_days: Mapped[int] = mapped_column(Integer, nullable=False)
    is_long_term: Mapped[bool] = mapped_column(Boolean, nullable=False)
    proceeds: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    cost_basis: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    gain: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    taxable_gain: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    adjusted_taxable_gain: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(DecimalString, nullable=False)

    run: Mapped[CalcRun] = relationship(back_populates="disposals")

Index("idx_realized_disposals_asset", RealizedDisposal.asset)
