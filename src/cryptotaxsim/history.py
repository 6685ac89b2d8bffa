# history.py
"""
Calculation history: every calculation can be stored as a CalcRun with its
matched disposals and audit digests, then listed, reloaded, or exported.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from .audit_digest import build_run_manifest, compute_digests
from .errors import RunNotFoundError
from .models import CalcRun, RealizedDisposal
from .rules import catalog_version
from .schemas import (
    CalcRunDetail,
    CalcRunOut,
    TaxCalculationRequest,
    TaxCalculationResult,
    Transaction,
)

logger = logging.getLogger(__name__)


def _naive_utc(dt):
    return dt.replace(tzinfo=None)


def save_run(
    session: Session,
    country: str,
    year: int,
    income: Decimal,
    transactions: List[Transaction],
    result: TaxCalculationResult,
) -> CalcRun:
    """Persist a finished calculation with its disposals; flushes so run.id is set."""
    manifest = build_run_manifest(country, year, income, catalog_version(), transactions, result)
    digests = compute_digests(manifest)

    request = TaxCalculationRequest(
        transactions=transactions, country=country, income=income, year=year
    )
    run = CalcRun(
        country=country,
        year=year,
        income=income,
        total_gain=result.total_gain,
        taxable_gain=result.taxable_gain,
        tax_amount=result.tax_amount,
        tax_rate=result.tax_rate,
        disposal_count=len(result.transactions),
        input_hash=digests["input_hash"],
        output_hash=digests["output_hash"],
        manifest_hash=digests["manifest_hash"],
        request_json=request.model_dump_json(by_alias=True),
        result_json=result.model_dump_json(by_alias=True),
    )
    for d in result.transactions:
        run.disposals.append(
            RealizedDisposal(
                sell_id=d.id,
                buy_id=d.acquired_from,
                asset=d.asset,
                quantity=d.quantity,
                acquired_at=_naive_utc(d.acquired_date),
                disposed_at=_naive_utc(d.disposal_date),
                holding_days=d.holding_period,
                is_long_term=d.is_long_term,
                proceeds=d.proceeds,
                cost_basis=d.cost_basis,
                gain=d.gain,
                taxable_gain=d.taxable_gain,
                adjusted_taxable_gain=d.adjusted_taxable_gain,
                tax_rate=d.tax_rate,
                tax_amount=d.tax_amount,
            )
        )
    session.add(run)
    session.flush()
    logger.info("Stored calculation run %s (%s %s)", run.id, country, year)
    return run


def to_run_out(run: CalcRun) -> CalcRunOut:
    return CalcRunOut(
        id=run.id,
        created_at=run.created_at,
        country=run.country,
        year=run.year,
        income=run.income,
        total_gain=run.total_gain,
        taxable_gain=run.taxable_gain,
        tax_amount=run.tax_amount,
        tax_rate=run.tax_rate,
        disposal_count=run.disposal_count,
        input_hash=run.input_hash,
        output_hash=run.output_hash,
        manifest_hash=run.manifest_hash,
    )


def list_runs(session: Session, limit: int = 50) -> List[CalcRunOut]:
    rows = session.scalars(select(CalcRun).order_by(CalcRun.id.desc()).limit(limit)).all()
    return [to_run_out(r) for r in rows]


def get_run(session: Session, run_id: int) -> CalcRun:
    run = session.get(CalcRun, run_id)
    if run is None:
        raise RunNotFoundError(run_id)
    return run


def get_run_detail(session: Session, run_id: int) -> CalcRunDetail:
    run = get_run(session, run_id)
    result = TaxCalculationResult.model_validate(json.loads(run.result_json))
    return CalcRunDetail(**to_run_out(run).model_dump(), result=result)


def get_run_disposals(session: Session, run_id: int) -> List[RealizedDisposal]:
    return list(get_run(session, run_id).disposals)
