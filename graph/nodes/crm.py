import os
from typing import Optional
from graph.state import OnboardingState
from tools import zoho
from loguru import logger

# Reference ids with these prefixes are demo/synthetic records
TEST_PREFIXES = tuple(
    p.strip() for p in os.getenv("CRM_TEST_PREFIXES", "DEMO,CLOUD").split(",") if p.strip()
)


def is_tracked(reference_id: Optional[str]) -> bool:
    """True when the reference id points at a real CRM deal."""
    return bool(reference_id) and not reference_id.startswith(TEST_PREFIXES)


def update_crm(state: OnboardingState) -> OnboardingState:
    """Write the provisioning outcome back to the CRM deal."""
    intent = state["intent"]

    if not is_tracked(intent.reference_id):
        logger.info(f"Skipping CRM update for untracked reference: {intent.reference_id or 'none'}")
        return {"crm_updated": False}

    zoho.update_deal(intent.reference_id, {
        "Description": f"Automated agent ({intent.agent_archetype}) provisioned: {state.get('provisioning_id')}",
    })
    return {"crm_updated": True}
