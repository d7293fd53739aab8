import os
import uuid
from decimal import Decimal
from typing import Optional
from loguru import logger

from graph.errors import BillingError
from graph.state import Invoice

DEFAULT_FEE = Decimal(os.getenv("STANDARD_SETUP_FEE", "1250"))


def resolve_amount(amount: Optional[Decimal]) -> Decimal:
    """Use the requested fee, or the configured standard fee when none was given."""
    return amount if amount else DEFAULT_FEE


def create_invoice(firm_name: str, amount: Optional[Decimal] = None) -> Invoice:
    """
    Create a draft setup invoice.

    Invoices are issued locally; collection happens through the Stripe
    checkout link created in the next step.
    """
    if not firm_name:
        raise BillingError("Cannot invoice without a firm name")

    final_amount = resolve_amount(amount)
    if final_amount <= 0:
        raise BillingError(f"Invoice amount must be positive, got {final_amount}")

    invoice = Invoice(
        id=f"inv_{uuid.uuid4().hex[:10]}",
        amount=final_amount,
        description=f"Onboarding & Implementation Fee for {firm_name}",
    )
    logger.info(f"[Billing] Created invoice {invoice.id} for {firm_name}: ${invoice.amount}")
    return invoice
