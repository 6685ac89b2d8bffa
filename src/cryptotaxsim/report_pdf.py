import io
from typing import Any, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .schemas import TaxCalculationResult, dec_to_str

DISPOSAL_HEADER = [
    "Sell",
    "Lot",
    "Asset",
    "Qty",
    "Acquired",
    "Disposed",
    "Days",
    "Term",
    "Proceeds",
    "Cost Basis",
    "Gain",
    "Taxable",
    "Rate",
    "Tax",
]


def _make_wrapped_table(data: List[List[Any]], styles, page_width_pts: float) -> Table:
    """
    Create a wrapped table that fits the page width.
    - data[0] is the header row.
    - Column widths follow the text length of the header + up to 50 body rows,
      clamped to readable bounds.
    """
    wrap_style = ParagraphStyle(
        "WrapSmall",
        parent=styles["Normal"],
        fontSize=8,
        leading=10,
        wordWrap="CJK",
    )

    # Paragraph parses a mini-markup, so escape &, <, >
    wrapped: List[List[Paragraph]] = [
        [Paragraph(escape("" if c is None else str(c)), wrap_style) for c in row] for row in data
    ]

    ncols = len(data[0]) if data else 0
    if ncols == 0:
        t = Table(wrapped, hAlign="LEFT")
        t.setStyle(TableStyle([("GRID", (0, 0), (-1, -1), 0.25, colors.black)]))
        return t

    weights = [0] * ncols
    for row in data[:51]:
        for i, cell in enumerate(row):
            weights[i] += max(1, min(len("" if cell is None else str(cell)), 80))

    total_w = sum(weights) or ncols
    usable_width = page_width_pts - (0.8 * inch)
    min_w = 0.45 * inch
    max_w = 1.8 * inch

    col_widths = [max(min_w, min(max_w, (w / total_w) * usable_width)) for w in weights]
    scale = usable_width / sum(col_widths)
    col_widths = [cw * scale for cw in col_widths]

    t = Table(wrapped, hAlign="LEFT", colWidths=col_widths, repeatRows=1)
    t.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#F0F0F0")),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("LEADING", (0, 0), (-1, -1), 10),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
                ("TOPPADDING", (0, 0), (-1, -1), 3),
            ]
        )
    )
    return t


def _pct(rate) -> str:
    return f"{dec_to_str(rate * 100)}%"


def build_tax_report_pdf(
    result: TaxCalculationResult,
    country_name: str,
    year: int,
    run_id: Optional[int] = None,
) -> bytes:
    """
    Generate a PDF report for one tax calculation:
      - title with country, year and (when stored) the run id
      - year-level summary (gains, taxable gain, rate, tax, allowance left)
      - one row per matched disposal
      - warnings about unmatched sell quantity, if any
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
    )
    styles = getSampleStyleSheet()
    page_width = doc.width + doc.leftMargin + doc.rightMargin
    story = []

    title = f"Crypto Tax Estimate – {country_name} {year}"
    story.append(Paragraph(escape(title), styles["Title"]))
    if run_id is not None:
        story.append(Paragraph(f"Calculation run #{run_id}", styles["Normal"]))
    story.append(Spacer(1, 12))

    story.append(Paragraph("Summary", styles["Heading2"]))
    summary = [
        ["Field", "Value"],
        ["Total gain", dec_to_str(result.total_gain)],
        ["Short-term gains", dec_to_str(result.short_term_gains)],
        ["Long-term gains", dec_to_str(result.long_term_gains)],
        ["Taxable gain", dec_to_str(result.taxable_gain)],
        ["Tax rate", _pct(result.tax_rate)],
        ["Estimated tax", dec_to_str(result.tax_amount)],
        ["Remaining tax-free allowance", dec_to_str(result.remaining_tax_free_allowance)],
    ]
    story.append(_make_wrapped_table(summary, styles, page_width_pts=page_width / 2))
    story.append(Spacer(1, 12))

    story.append(Paragraph("Matched Disposals (FIFO)", styles["Heading2"]))
    if result.transactions:
        data = [DISPOSAL_HEADER]
        for d in result.transactions:
            data.append(
                [
                    d.id,
                    d.acquired_from,
                    d.asset,
                    dec_to_str(d.quantity),
                    d.acquired_date.strftime("%Y-%m-%d"),
                    d.disposal_date.strftime("%Y-%m-%d"),
                    d.holding_period,
                    "long" if d.is_long_term else "short",
                    dec_to_str(d.proceeds),
                    dec_to_str(d.cost_basis),
                    dec_to_str(d.gain),
                    dec_to_str(d.adjusted_taxable_gain),
                    _pct(d.tax_rate),
                    dec_to_str(d.tax_amount),
                ]
            )
        story.append(_make_wrapped_table(data, styles, page_width_pts=page_width))
    else:
        story.append(Paragraph("No disposals in this tax year.", styles["Normal"]))

    if result.warnings:
        story.append(Spacer(1, 10))
        story.append(Paragraph("Warnings", styles["Heading2"]))
        for w in result.warnings[:20]:
            story.append(Paragraph(escape(w), styles["Normal"]))

    doc.build(story)
    return buffer.getvalue()
