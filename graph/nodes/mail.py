import os
from graph.state import OnboardingState, Invoice
from tools import zoho
from loguru import logger

BRAND_NAME = os.getenv("BRAND_NAME", "ClaireAI")


def build_invoice_email(invoice: Invoice, firm_name: str, payment_url: str) -> dict:
    """Subject and HTML body for the setup invoice email."""
    html = (
        f"Hi {firm_name} team,<br><br>"
        f"Please find your setup invoice attached.<br><br>"
        f"Total: ${invoice.amount:,.2f} {invoice.currency}<br><br>"
    )
    if payment_url:
        html += (
            f"<b>You can complete your payment securely here:</b><br>"
            f'<a href="{payment_url}">{payment_url}</a><br><br>'
        )
    html += f"Thanks,<br>{BRAND_NAME} Team"

    return {"subject": f"Invoice #{invoice.id} for {BRAND_NAME} Setup", "html": html}


def send_invoice_email(state: OnboardingState) -> OnboardingState:
    """Email the invoice PDF and payment link to the client."""
    intent = state["intent"]
    invoice = state["invoice"]
    message = build_invoice_email(invoice, intent.firm_name, state["payment_url"])

    receipt = zoho.send_invoice_email(
        intent.reference_id or "DEMO",
        intent.client_email,
        message["subject"],
        message["html"],
        state["document_path"],
    )
    logger.info(f"Invoice {invoice.id} emailed to {intent.client_email}")
    return {"email_receipt": receipt}
