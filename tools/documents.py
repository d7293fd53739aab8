import io
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional

import httpx
from loguru import logger
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from graph.state import Invoice

# Named layout profiles; one renderer draws all of them
PROFILES: Dict[str, Dict[str, Any]] = {
    "institutional": {
        "primary": "#0f4c3a",
        "accent": "#22c55e",
        "footer_bg": "#f0fbf9",
        "text": "#111111",
        "muted": "#555555",
        "title": "SETUP INVOICE",
    },
    "classic": {
        "primary": "#334155",
        "accent": "#1a4332",
        "footer_bg": "#f8fafc",
        "text": "#1e293b",
        "muted": "#64748b",
        "title": "INVOICE",
    },
}


class DocumentRenderer:
    """Renders invoice PDFs with reportlab."""

    def __init__(self):
        self.output_dir = Path(os.getenv("DOCUMENTS_DIR", "/tmp/documents"))
        self.profile_name = os.getenv("DOCUMENT_PROFILE", "institutional")
        self.logo_url = os.getenv("DOCUMENT_LOGO_URL")
        self.brand = os.getenv("BRAND_NAME", "ClaireAI")
        self._logo: Optional[bytes] = None

        if self.profile_name not in PROFILES:
            logger.warning(f"Unknown document profile {self.profile_name}, using institutional")
            self.profile_name = "institutional"

    @property
    def profile(self) -> Dict[str, Any]:
        return PROFILES[self.profile_name]

    def get_logo(self) -> Optional[bytes]:
        """Download the logo once per process; rendering continues without it."""
        if self._logo or not self.logo_url:
            return self._logo

        try:
            response = httpx.get(self.logo_url, timeout=10)
            response.raise_for_status()
            self._logo = response.content
        except httpx.HTTPError as e:
            logger.warning(f"[Documents] Failed to download logo: {e}")
        return self._logo

    def file_path_for(self, invoice: Invoice, firm_name: str) -> Path:
        safe_firm = re.sub(r"[^A-Za-z0-9]+", "_", firm_name).strip("_") or "client"
        return self.output_dir / f"Invoice_{safe_firm}_{invoice.id}.pdf"

    def render_invoice_pdf(self, invoice: Invoice, firm_name: str, payment_url: str) -> str:
        """
        Draw the invoice PDF and return its path.

        Args:
            invoice: Invoice produced by the billing step
            firm_name: Client firm printed in the bill-to block
            payment_url: Checkout link printed and hyperlinked in the footer
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.file_path_for(invoice, firm_name)
        style = self.profile
        width, height = LETTER

        pdf = canvas.Canvas(str(path), pagesize=LETTER)
        pdf.setTitle(f"Invoice {invoice.id}")

        # Header band
        pdf.setFillColor(colors.HexColor(style["primary"]))
        pdf.rect(0, height - 120, width, 120, stroke=0, fill=1)
        logo = self.get_logo()
        if logo:
            pdf.drawImage(ImageReader(io.BytesIO(logo)), 50, height - 100, width=80, height=80,
                          mask="auto", preserveAspectRatio=True)
        pdf.setFillColor(colors.white)
        pdf.setFont("Helvetica-Bold", 22)
        pdf.drawRightString(width - 50, height - 60, style["title"])
        pdf.setFont("Helvetica", 10)
        pdf.drawRightString(width - 50, height - 80, f"#{invoice.id}")

        # Bill-to and status
        pdf.setFillColor(colors.HexColor(style["muted"]))
        pdf.setFont("Helvetica-Bold", 9)
        pdf.drawString(50, height - 160, "BILLED TO")
        pdf.drawRightString(width - 50, height - 160, "STATUS")
        pdf.setFillColor(colors.HexColor(style["text"]))
        pdf.setFont("Helvetica-Bold", 14)
        pdf.drawString(50, height - 180, firm_name)
        pdf.drawRightString(width - 50, height - 180, invoice.status.upper())

        # Line item
        pdf.setStrokeColor(colors.HexColor(style["muted"]))
        pdf.line(50, height - 220, width - 50, height - 220)
        pdf.setFont("Helvetica-Bold", 10)
        pdf.drawString(50, height - 238, "DESCRIPTION")
        pdf.drawRightString(width - 50, height - 238, f"AMOUNT ({invoice.currency})")
        pdf.line(50, height - 246, width - 50, height - 246)
        pdf.setFont("Helvetica", 11)
        pdf.drawString(50, height - 266, invoice.description)
        pdf.drawRightString(width - 50, height - 266, f"${invoice.amount:,.2f}")

        # Total block
        pdf.setFillColor(colors.HexColor(style["primary"]))
        pdf.rect(width - 250, height - 340, 200, 50, stroke=0, fill=1)
        pdf.setFillColor(colors.white)
        pdf.setFont("Helvetica", 9)
        pdf.drawString(width - 240, height - 310, f"TOTAL ({invoice.currency})")
        pdf.setFont("Helvetica-Bold", 18)
        pdf.drawRightString(width - 60, height - 330, f"${invoice.amount:,.2f}")

        # Payment footer
        pdf.setFillColor(colors.HexColor(style["footer_bg"]))
        pdf.rect(0, 0, width, 110, stroke=0, fill=1)
        pdf.setFillColor(colors.HexColor(style["accent"]))
        pdf.setFont("Helvetica-Bold", 11)
        pdf.drawString(50, 80, "Pay securely online")
        pdf.setFillColor(colors.HexColor(style["text"]))
        pdf.setFont("Helvetica", 9)
        pdf.drawString(50, 62, payment_url)
        pdf.linkURL(payment_url, (50, 55, width - 50, 75), relative=0)
        pdf.setFillColor(colors.HexColor(style["muted"]))
        pdf.drawString(50, 30, f"Thank you for choosing {self.brand}.")

        pdf.showPage()
        pdf.save()

        logger.info(f"[Documents] Rendered invoice {invoice.id} -> {path}")
        return str(path)


# Global renderer instance
document_renderer = DocumentRenderer()


def render_invoice_pdf(invoice: Invoice, firm_name: str, payment_url: str) -> str:
    """Render an invoice using the global renderer."""
    return document_renderer.render_invoice_pdf(invoice, firm_name, payment_url)
