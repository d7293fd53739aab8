from graph.state import OnboardingState
from tools import billing


def create_invoice(state: OnboardingState) -> OnboardingState:
    intent = state["intent"]
    invoice = billing.create_invoice(intent.firm_name, intent.setup_fee_amount)
    return {"invoice": invoice}
