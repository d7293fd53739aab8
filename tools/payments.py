import os
from decimal import Decimal
from typing import Dict, Any, Optional

import stripe
from loguru import logger

# Standard plans, keyed by setup amount in USD
PLANS = {
    650: {"name": "Starter Plan", "env": "STRIPE_PRICE_STARTER", "price_id": "price_1SsTZe9vzmXGIElUEMFmo5K8"},
    1250: {"name": "Growth Plan", "env": "STRIPE_PRICE_GROWTH", "price_id": "price_1SsTZf9vzmXGIElULER2nuHY"},
    3000: {"name": "Enterprise Plan", "env": "STRIPE_PRICE_ENTERPRISE", "price_id": "price_1SsTZg9vzmXGIElUAIkpB50V"},
}

SETUP_DESCRIPTION = (
    "Professional setup & configuration of the AI receptionist: voice tuning, "
    "knowledge base ingestion, CRM integration, call routing design and "
    "after-hours workflow automation."
)


def to_minor_units(amount: Decimal) -> int:
    """Convert a USD amount to cents."""
    return int((Decimal(amount) * 100).to_integral_value())


FALLBACK_PREFIX = "https://checkout.stripe.com/pay/fallback_"


def fallback_url(reference_id: Optional[str]) -> str:
    return f"{FALLBACK_PREFIX}{reference_id}"


def is_fallback_url(url: Optional[str]) -> bool:
    """True when the link is the degraded placeholder rather than a Stripe session."""
    return bool(url) and url.startswith(FALLBACK_PREFIX)


class StripePayments:
    """Stripe Checkout integration for setup-fee payment links."""

    def __init__(self):
        self.api_key = os.getenv("STRIPE_SECRET_KEY")
        self.success_url = os.getenv("STRIPE_SUCCESS_URL", "https://theclaireai.com/onboarding/success")
        self.cancel_url = os.getenv("STRIPE_CANCEL_URL", "https://theclaireai.com/onboarding/cancel")
        self.brand = os.getenv("BRAND_NAME", "ClaireAI")

        if self.is_placeholder:
            logger.warning("No Stripe secret key provided, using mock mode")

    @property
    def is_placeholder(self) -> bool:
        key = self.api_key
        return not key or key == "your_stripe_key" or "placeholder" in key

    def price_for(self, amount: Decimal) -> Optional[str]:
        """Return the subscription price id for a standard amount, if any."""
        plan = PLANS.get(amount)
        if not plan:
            return None
        return os.getenv(plan["env"], plan["price_id"])

    def build_session(self, firm_name: str, amount: Decimal, reference_id: Optional[str]) -> Dict[str, Any]:
        price_id = self.price_for(amount)
        common = {
            "payment_method_types": ["card"],
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "client_reference_id": reference_id,
        }

        if price_id:
            logger.info(f"[Stripe] Matched plan for ${amount}: {price_id} (subscription mode)")
            return {
                **common,
                "line_items": [{"price": price_id, "quantity": 1}],
                "mode": "subscription",
            }

        logger.info(f"[Stripe] No plan matched for ${amount}, using one-time charge")
        return {
            **common,
            "line_items": [{
                "price_data": {
                    "currency": "usd",
                    "product_data": {
                        "name": f"{self.brand} Setup - {firm_name}",
                        "description": SETUP_DESCRIPTION,
                    },
                    "unit_amount": to_minor_units(amount),
                },
                "quantity": 1,
            }],
            "mode": "payment",
        }

    def create_payment_link(self, firm_name: str, amount: Decimal, reference_id: Optional[str]) -> str:
        """
        Create a checkout URL for the setup fee.

        Never raises: a Stripe failure degrades to a fallback URL so billing
        can still be emailed.
        """
        if self.is_placeholder:
            logger.warning(f"[Stripe] Mock mode: created mock link for {firm_name}")
            return f"https://checkout.stripe.com/pay/mock_{reference_id}"

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                **self.build_session(firm_name, amount, reference_id),
            )
            logger.info(f"[Stripe] Created payment session for {firm_name}: {session.url}")
            return session.url
        except Exception as e:
            logger.error(f"[Stripe] Error creating payment link, degrading to fallback URL: {e}")
            return fallback_url(reference_id)


# Global Stripe client instance
stripe_payments = StripePayments()


def create_payment_link(firm_name: str, amount: Decimal, reference_id: Optional[str]) -> str:
    """Create a payment link using the global Stripe client."""
    return stripe_payments.create_payment_link(firm_name, amount, reference_id)
