from graph.state import OnboardingState
from tools import cloneops
from loguru import logger

PLACEHOLDER_PROVISIONING_ID = "manual-provision"


def provision(state: OnboardingState) -> OnboardingState:
    """Provision the firm's voice agent from its archetype template."""
    intent = state["intent"]
    logger.info(f"Starting provisioning for {intent.firm_name} ({intent.agent_archetype})")

    record = cloneops.provision_agent(intent)
    provisioning_id = record.get("id") or PLACEHOLDER_PROVISIONING_ID

    logger.info(f"Provisioning completed: {provisioning_id}")
    return {"provisioning_id": provisioning_id}
