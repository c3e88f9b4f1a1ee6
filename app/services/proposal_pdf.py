# app/services/proposal_pdf.py
"""Render an estimate as a client-facing PDF proposal."""
import io
from datetime import datetime, timezone
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor, white
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.logging_config import logger
from app.models import Estimate
from app.services.estimates import money

NAVY = HexColor("#1E3A5F")
LGRAY = HexColor("#F1F5F9")
MGRAY = HexColor("#CBD5E1")

TITLE = ParagraphStyle("title", fontName="Helvetica-Bold", fontSize=18, textColor=NAVY, spaceAfter=4)
SECTION = ParagraphStyle("section", fontName="Helvetica-Bold", fontSize=12, textColor=NAVY, spaceBefore=10, spaceAfter=6)
BODY = ParagraphStyle("body", fontName="Helvetica", fontSize=9.5, leading=13)
CELL = ParagraphStyle("cell", fontName="Helvetica", fontSize=9, leading=11)
SMALL = ParagraphStyle("small", fontName="Helvetica", fontSize=8, leading=10, textColor=HexColor("#475569"))


def _usd(value) -> str:
    return f"${money(value):,.2f}"


def _p(text, style=BODY) -> Paragraph:
    return Paragraph(escape(str(text)), style)


def proposal_filename(estimate: Estimate) -> str:
    return f"proposal-{estimate.id[:8]}.pdf"


def _line_item_table(line_items: list) -> Table:
    rows = [["Category", "Description", "Qty", "Unit", "Unit cost", "Total"]]
    for item in line_items:
        rows.append([
            _p(item.get("category", ""), CELL),
            _p(item.get("description", ""), CELL),
            f"{item.get('quantity', 0):g}",
            item.get("unit", ""),
            _usd(item.get("unitCost", 0)),
            _usd(item.get("totalCost", 0)),
        ])

    table = Table(rows, colWidths=[1.1 * inch, 2.6 * inch, 0.5 * inch, 0.6 * inch, 0.9 * inch, 0.9 * inch], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), NAVY),
        ("TEXTCOLOR", (0, 0), (-1, 0), white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (2, 1), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [white, LGRAY]),
        ("LINEBELOW", (0, 0), (-1, -1), 0.25, MGRAY),
    ]))
    return table


def _totals_table(estimate: Estimate) -> Table:
    subtotal = Decimal(estimate.subtotal)
    margin = subtotal * Decimal(estimate.margin) / 100
    contingency = subtotal * Decimal(estimate.contingency) / 100
    rows = [
        ["Subtotal", _usd(subtotal)],
        [f"Margin ({Decimal(estimate.margin):g}%)", _usd(margin)],
        [f"Contingency ({Decimal(estimate.contingency):g}%)", _usd(contingency)],
        ["Total", _usd(estimate.total)],
    ]
    table = Table(rows, colWidths=[1.8 * inch, 1.2 * inch], hAlign="RIGHT")
    table.setStyle(TableStyle([
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("LINEABOVE", (0, -1), (-1, -1), 1, NAVY),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
    ]))
    return table


def render_proposal_pdf(estimate: Estimate) -> bytes:
    lead = estimate.lead
    contractor = estimate.contractor

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=f"Proposal for {lead.homeowner_name}",
        author=contractor.company_name,
    )

    contact = " | ".join(v for v in (contractor.email, contractor.phone) if v)
    story = [
        _p(contractor.company_name, TITLE),
        _p(contact, SMALL),
        Spacer(1, 12),
        _p("Project Proposal", SECTION),
        _p(f"Prepared for: {lead.homeowner_name}"),
        _p(f"Project address: {lead.address}"),
        _p(f"Trade: {lead.trade_type}"),
        _p(f"Date: {datetime.now(timezone.utc):%B %d, %Y}"),
    ]
    if estimate.expires_at is not None:
        story.append(_p(f"Valid until: {estimate.expires_at:%B %d, %Y}"))

    story += [
        _p("Scope and Pricing", SECTION),
        _line_item_table(estimate.line_items or []),
        Spacer(1, 10),
        _totals_table(estimate),
        Spacer(1, 14),
    ]

    deposit_pct = Decimal(contractor.deposit_percentage)
    if deposit_pct > 0:
        deposit = Decimal(estimate.total) * deposit_pct / 100
        story.append(_p(
            f"A deposit of {deposit_pct:g}% ({_usd(deposit)}) is due at acceptance to schedule the work."
        ))

    doc.build(story)
    pdf = buffer.getvalue()
    logger.info("proposal_rendered", estimate_id=estimate.id, size=len(pdf))
    return pdf
