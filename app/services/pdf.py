"""
Invoice PDF rendering.

HTML from a jinja2 template, converted to PDF with WeasyPrint.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

logger = structlog.get_logger()

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "invoice"

jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)

_ONES = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten",
    "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen",
    "Eighteen", "Nineteen",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]


def _below_hundred(n: int) -> str:
    if n < 20:
        return _ONES[n]
    return (_TENS[n // 10] + " " + _ONES[n % 10]).strip()


def _below_thousand(n: int) -> str:
    hundreds, rest = divmod(n, 100)
    parts = []
    if hundreds:
        parts.append(f"{_ONES[hundreds]} Hundred")
    if rest:
        parts.append(_below_hundred(rest))
    return " ".join(parts)


def amount_in_words(amount: Decimal) -> str:
    """Rupees and paise in words, Indian numbering (lakh, crore)."""
    amount = Decimal(amount).quantize(Decimal("0.01"))
    rupees = int(amount)
    paise = int((amount - rupees) * 100)

    if rupees == 0:
        words = "Zero"
    else:
        parts = []
        crore, rupees = divmod(rupees, 10_000_000)
        lakh, rupees = divmod(rupees, 100_000)
        thousand, rupees = divmod(rupees, 1000)
        if crore:
            parts.append(f"{_below_thousand(crore)} Crore")
        if lakh:
            parts.append(f"{_below_hundred(lakh)} Lakh")
        if thousand:
            parts.append(f"{_below_hundred(thousand)} Thousand")
        if rupees:
            parts.append(_below_thousand(rupees))
        words = " ".join(parts)

    result = f"Rupees {words}"
    if paise:
        result += f" and {_below_hundred(paise)} Paise"
    return result


def render_invoice_html(context: dict[str, Any]) -> str:
    return jinja_env.get_template("invoice.html").render(**context)


def render_invoice_pdf(context: dict[str, Any]) -> bytes:
    """Render the invoice to PDF bytes. Blocking; run it in a worker thread."""
    from weasyprint import HTML

    html = render_invoice_html(context)
    pdf = HTML(string=html).write_pdf()
    logger.info("pdf.invoice.rendered", invoice_number=context.get("invoice_number"), size=len(pdf))
    return pdf
