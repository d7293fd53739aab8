from graph.state import OnboardingState
from tools import documents
from loguru import logger


def render_document(state: OnboardingState) -> OnboardingState:
    intent = state["intent"]
    logger.info(f"Generating invoice PDF for {intent.firm_name} with payment link")

    path = documents.render_invoice_pdf(state["invoice"], intent.firm_name, state["payment_url"])
    return {"document_path": path}
