from graph.state import OnboardingState
from tools import payments
from loguru import logger


def create_payment_link(state: OnboardingState) -> OnboardingState:
    """Attach a Stripe checkout link for the invoiced amount."""
    intent = state["intent"]
    invoice = state["invoice"]

    url = payments.create_payment_link(intent.firm_name, invoice.amount, intent.reference_id)
    if payments.is_fallback_url(url):
        logger.warning(f"Payment link degraded to fallback for {intent.firm_name}")
        return {"payment_url": url, "errors": state.get("errors", []) + ["payment_link_degraded"]}
    return {"payment_url": url}
