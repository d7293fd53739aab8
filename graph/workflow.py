from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Type, Dict, Any

from langgraph.graph import StateGraph, START, END
from loguru import logger

from graph.errors import (
    OnboardingError,
    ProvisioningError,
    CrmUpdateError,
    BillingError,
    DocumentGenerationError,
    CommunicationError,
)
from graph.state import OnboardingIntent, OnboardingResult, OnboardingState
from graph.nodes.provision import provision, PLACEHOLDER_PROVISIONING_ID
from graph.nodes.crm import update_crm
from graph.nodes.invoice import create_invoice
from graph.nodes.payment import create_payment_link
from graph.nodes.document import render_document
from graph.nodes.mail import send_invoice_email
from graph.nodes.notify import notify_team
from tools.payments import fallback_url

Node = Callable[[OnboardingState], OnboardingState]


@dataclass(frozen=True)
class StepPolicy:
    """How the pipeline treats one step's failure."""
    name: str
    node: Node
    required: bool
    error: Type[OnboardingError]
    fallback: Optional[Callable[[OnboardingState], Dict[str, Any]]] = None


class PaymentLinkDegraded(OnboardingError):
    """Logged when the payment step itself blows up; never raised to callers."""


# Strict execution order. Optional steps log and fall back; required steps abort.
PIPELINE = (
    StepPolicy("provision_agent", provision, required=False, error=ProvisioningError,
               fallback=lambda state: {"provisioning_id": PLACEHOLDER_PROVISIONING_ID}),
    StepPolicy("update_crm", update_crm, required=False, error=CrmUpdateError,
               fallback=lambda state: {"crm_updated": False}),
    StepPolicy("create_invoice", create_invoice, required=True, error=BillingError),
    StepPolicy("create_payment_link", create_payment_link, required=False, error=PaymentLinkDegraded,
               fallback=lambda state: {"payment_url": fallback_url(state["intent"].reference_id)}),
    StepPolicy("render_document", render_document, required=True, error=DocumentGenerationError),
    StepPolicy("send_invoice_email", send_invoice_email, required=True, error=CommunicationError),
    StepPolicy("notify_team", notify_team, required=False, error=OnboardingError,
               fallback=lambda state: {"notification": None}),
)


def guarded(step: StepPolicy) -> Node:
    """Wrap a node so its failure is handled according to the step policy."""

    def run(state: OnboardingState) -> OnboardingState:
        try:
            return step.node(state)
        except Exception as e:
            if step.required:
                logger.error(f"[CRITICAL] {step.name} failed: {e}")
                if isinstance(e, step.error):
                    raise
                raise step.error(f"{step.name} failed: {e}") from e

            message = f"{step.name} failed: {e}"
            logger.warning(f"[WARNING] {message} (non-fatal, continuing)")
            update = step.fallback(state) if step.fallback else {}
            update["errors"] = state.get("errors", []) + [message]
            return update

    run.__name__ = step.name
    return run


def build_workflow(steps: Sequence[StepPolicy] = PIPELINE):
    """Build the onboarding workflow as a linear graph over the policy table."""
    workflow = StateGraph(OnboardingState)

    previous = START
    for step in steps:
        workflow.add_node(step.name, guarded(step))
        workflow.add_edge(previous, step.name)
        previous = step.name
    workflow.add_edge(previous, END)

    return workflow.compile()


app_graph = build_workflow()


def process_onboarding(intent: OnboardingIntent) -> OnboardingResult:
    """
    Run the onboarding pipeline for one intent.

    Raises:
        BillingError, DocumentGenerationError, CommunicationError: when a
        required step fails. Side effects of earlier steps are not undone.
    """
    logger.info(f"[Core] Processing onboarding for: {intent.firm_name}")

    state = app_graph.invoke({"intent": intent, "errors": []})

    result = OnboardingResult(
        provisioning_id=state.get("provisioning_id") or PLACEHOLDER_PROVISIONING_ID,
        invoice_id=state["invoice"].id,
        payment_url=state["payment_url"],
        document_path=state["document_path"],
        email_dispatch_receipt=state.get("email_receipt"),
        warnings=state.get("errors", []),
    )
    logger.info(f"[Core] Onboarding complete for {intent.firm_name}: invoice {result.invoice_id}")
    return result
