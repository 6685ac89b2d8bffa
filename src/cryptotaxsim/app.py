# app.py
"""
Main FastAPI application.

This file wires together:
- the web server (FastAPI + Uvicorn)
- the tax calculator (FIFO lot matcher + aggregator) and the jurisdiction catalog
- CSV import of transaction histories
- the calculation history (SQLAlchemy) with CSV / PDF exports

Endpoints:
  GET  /health                                  → liveness check
  GET  /version                                 → app version metadata
  POST /api/tax/calculate                       → compute gains and tax for one tax year
  POST /api/tax/calculate/csv                   → same, from an uploaded CSV
  POST /api/tax/upload/csv                      → parse CSV and PREVIEW (no calculation)
  GET  /api/tax/countries                       → supported jurisdictions
  GET  /api/tax/info/{country}                  → rule tables + plain-language summary
  GET  /api/tax/history                         → recent stored calculations
  GET  /api/tax/history/{run_id}                → one stored calculation
  GET  /api/tax/history/{run_id}/disposals.csv  → its matched disposals as CSV
  GET  /api/tax/history/{run_id}/report.pdf     → its PDF report

Every JSON answer is wrapped: {"status": "success", "data": ...} or
{"status": "error", "message": "..."}.

  Command to start the server: uvicorn cryptotaxsim.app:app --reload
"""

import csv
import io
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .__about__ import __title__, __version__
from .calc_runner import resolve_request, run_calculation
from .config import get_settings
from .csv_normalizer import parse_csv
from .db import db_session, init_db
from .errors import (
    RunNotFoundError,
    TaxSimError,
    UnknownJurisdictionError,
)
from .history import get_run_detail, get_run_disposals, list_runs, save_run
from .logging_setup import setup_logging
from .report_pdf import build_tax_report_pdf
from .rules import available_countries, country_name, get_jurisdiction, rule_summary
from .schemas import (
    CalcRunDetail,
    CalcRunOut,
    CountryOut,
    CSVPreviewResponse,
    Envelope,
    ErrorEnvelope,
    TaxCalculationRequest,
    TaxCalculationResult,
    dec_to_str,
)

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Application factory & startup
# -----------------------------------------------------------------------------
app = FastAPI(
    title=__title__,
    version=__version__,
    description="Crypto capital-gains tax simulator: FIFO lot matching with per-country rate tables.",
)


@app.on_event("startup")
def on_startup() -> None:
    """
    Runs when the server starts.
    - Configures logging from settings.
    - Ensures database tables exist (idempotent).
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    init_db()
    logger.info("%s %s started", __title__, __version__)


# -----------------------------------------------------------------------------
# Error envelope
# -----------------------------------------------------------------------------
def _error(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    body = ErrorEnvelope(message=message, error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Bad input is a client error (400), not FastAPI's default 422.
    problems = []
    for err in exc.errors()[:5]:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return _error(400, "Invalid request: " + "; ".join(problems))


@app.exception_handler(RunNotFoundError)
async def run_not_found_handler(request: Request, exc: RunNotFoundError) -> JSONResponse:
    return _error(404, str(exc))


@app.exception_handler(TaxSimError)
async def taxsim_error_handler(request: Request, exc: TaxSimError) -> JSONResponse:
    return _error(400, str(exc))


# -----------------------------------------------------------------------------
# Health + version endpoints (simple sanity checks)
# -----------------------------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    """Quick liveness check for monitoring or manual testing."""
    return {"status": "ok"}


@app.get("/version")
def version() -> Dict[str, str]:
    """Show the backend name and version (useful to confirm deployments)."""
    return {"name": __title__, "version": __version__}


# -----------------------------------------------------------------------------
# Tax calculation
# -----------------------------------------------------------------------------
def _calculate_and_store(req: TaxCalculationRequest) -> Dict[str, Any]:
    """
    Run the calculator, render the envelope, then persist the run when enabled.
    Input errors propagate as TaxSimError (→ 400); a failure in any later step is a 500.
    """
    run_id: Optional[int] = None
    try:
        result = run_calculation(req)
        payload = Envelope[TaxCalculationResult](data=result).model_dump(mode="json", by_alias=True)
        if get_settings().persist_runs:
            country, income, year = resolve_request(req)
            with db_session() as session:
                run_id = save_run(session, country, year, income, list(req.transactions), result).id
    except TaxSimError:
        raise
    except Exception as e:
        logger.exception("Tax calculation error")
        return _error(500, "Failed to calculate taxes", error=str(e))

    payload["runId"] = run_id
    return payload


@app.post("/api/tax/calculate")
def calculate_taxes(req: TaxCalculationRequest):
    """
    Compute gains and estimated tax for one tax year.

    Body: {transactions: [...], country: "us", income: 50000, year: 2024}
    Returns the year-level figures plus one entry per matched (sell, buy lot) pair,
    and the id of the stored run.
    """
    return _calculate_and_store(req)


@app.post("/api/tax/calculate/csv")
async def calculate_taxes_csv(
    file: UploadFile = File(...),
    country: Optional[str] = Form(None),
    income: Optional[Decimal] = Form(None),
    year: Optional[int] = Form(None),
):
    """
    Same as /api/tax/calculate, with the transaction history uploaded as CSV
    (columns: id,type,asset,quantity,price,date,fees). Rows that fail validation
    are skipped and reported in `warnings`.
    """
    valid_rows, errors = await _parse_csv_upload(file)
    if not valid_rows:
        detail = errors[0]["error"] if errors and errors[0]["row_number"] == 0 else "Transaction history is required"
        raise HTTPException(status_code=400, detail=str(detail))

    req = TaxCalculationRequest(transactions=valid_rows, country=country, income=income, year=year)
    payload = _calculate_and_store(req)
    if isinstance(payload, dict) and errors:
        payload["data"]["warnings"].append(f"{len(errors)} CSV row(s) skipped due to validation errors.")
    return payload


# -----------------------------------------------------------------------------
# Jurisdictions
# -----------------------------------------------------------------------------
@app.get("/api/tax/countries", response_model=Envelope[List[CountryOut]])
def get_available_countries():
    """List the country codes the calculator has rules for."""
    return {"status": "success", "data": available_countries()}


@app.get("/api/tax/info/{country}")
def get_tax_info(country: str):
    """Rule tables and a plain-language summary for one jurisdiction."""
    try:
        j = get_jurisdiction(country)
    except UnknownJurisdictionError:
        raise HTTPException(status_code=400, detail=f"Tax information for {country} is not available")

    return {
        "status": "success",
        "data": {
            "country": country,
            "name": j.name,
            "rules": j.rule.model_dump(mode="json", by_alias=True),
            "summary": rule_summary(j.code, j.rule),
        },
    }


# -----------------------------------------------------------------------------
# CSV preview
# -----------------------------------------------------------------------------
async def _parse_csv_upload(file: UploadFile):
    """Basic checks (extension, non-empty, UTF-8), then parse_csv."""
    filename = file.filename or ""
    if not filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Please upload a .csv file")

    data = await file.read()
    if len(data) == 0:
        raise HTTPException(status_code=400, detail="Empty file")

    try:
        return parse_csv(data)
    except UnicodeDecodeError as e:
        raise HTTPException(status_code=400, detail=f"CSV must be UTF-8 encoded: {e!s}")


@app.post("/api/tax/upload/csv", response_model=Envelope[CSVPreviewResponse])
async def upload_csv(file: UploadFile = File(...)) -> Dict[str, Any]:
    """
    Accept a CSV upload, parse & validate it, and return a PREVIEW (no calculation).

    Why preview? Users can see what's parsed and fix errors before calculating.
    """
    valid_rows, errors = await _parse_csv_upload(file)
    return {
        "status": "success",
        "data": {
            "filename": file.filename,
            "total_valid": len(valid_rows),
            "total_errors": len(errors),
            "preview_first_5": valid_rows[:5],
            "errors": errors[:5],  # only the first few to keep the response small
        },
    }


# -----------------------------------------------------------------------------
# History + exports
# -----------------------------------------------------------------------------
@app.get("/api/tax/history", response_model=Envelope[List[CalcRunOut]])
def history_list(limit: Optional[int] = Query(None, ge=1, le=500)):
    """Most recent stored calculations, newest first."""
    with db_session() as session:
        runs = list_runs(session, limit or get_settings().history_limit)
    return {"status": "success", "data": runs}


@app.get("/api/tax/history/{run_id}", response_model=Envelope[CalcRunDetail])
def history_get(run_id: int):
    with db_session() as session:
        detail = get_run_detail(session, run_id)
    return {"status": "success", "data": detail}


@app.get("/api/tax/history/{run_id}/disposals.csv", summary="Download a run's matched disposals as CSV")
def history_disposals_csv(run_id: int) -> Response:
    buf = io.StringIO()
    w = csv.writer(buf)
    w.writerow([
        "sell_id", "buy_id", "asset", "quantity", "acquired_at", "disposed_at", "holding_days",
        "is_long_term", "proceeds", "cost_basis", "gain", "taxable_gain",
        "adjusted_taxable_gain", "tax_rate", "tax_amount",
    ])
    with db_session() as session:
        for d in get_run_disposals(session, run_id):
            w.writerow([
                d.sell_id,
                d.buy_id,
                d.asset,
                dec_to_str(d.quantity),
                d.acquired_at.isoformat(timespec="seconds"),
                d.disposed_at.isoformat(timespec="seconds"),
                d.holding_days,
                "true" if d.is_long_term else "false",
                dec_to_str(d.proceeds),
                dec_to_str(d.cost_basis),
                dec_to_str(d.gain),
                dec_to_str(d.taxable_gain),
                dec_to_str(d.adjusted_taxable_gain),
                dec_to_str(d.tax_rate),
                dec_to_str(d.tax_amount),
            ])

    return Response(
        content=buf.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="run_{run_id}_disposals.csv"'},
    )


@app.get("/api/tax/history/{run_id}/report.pdf", summary="Download a run's PDF report")
def history_report_pdf(run_id: int) -> Response:
    with db_session() as session:
        detail = get_run_detail(session, run_id)

    pdf = build_tax_report_pdf(
        detail.result, country_name(detail.country), detail.year, run_id=detail.id
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="tax_report_{run_id}.pdf"'},
    )
