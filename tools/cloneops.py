import httpx
import os
from typing import Dict, Any
from loguru import logger

from graph.errors import ProvisioningError
from graph.state import OnboardingIntent

# Agent archetype -> provisioning template
TEMPLATES = {
    "Gatekeeper": "legal_strict_v1",
    "Concierge": "legal_empathy_v1",
}


class CloneOpsClient:
    """Agent provisioning client for the CloneOps API."""

    def __init__(self):
        self.api_key = os.getenv("CLONEOPS_API_KEY")
        self.base_url = os.getenv("CLONEOPS_API_URL", "https://api.cloneops.com/v1").rstrip("/")

        if not self.api_key or self.api_key == "your_cloneops_key":
            self.api_key = None
            logger.warning("No CloneOps API key provided, using mock mode")

    def build_spec(self, intent: OnboardingIntent) -> Dict[str, Any]:
        template_id = TEMPLATES.get(intent.agent_archetype)
        if not template_id:
            raise ProvisioningError(f"Unknown agent archetype: {intent.agent_archetype}")

        return {
            "name": f"{intent.firm_name} - {intent.agent_archetype} Agent",
            "template_id": template_id,
            "config": {
                "practice_area": intent.practice_area,
                "transfer_number": intent.transfer_number,
            },
        }

    def provision_agent(self, intent: OnboardingIntent) -> Dict[str, Any]:
        """
        Provision a voice agent for the firm.

        Returns:
            Provisioning record containing at least an ``id``
        """
        spec = self.build_spec(intent)
        logger.info(f"[CloneOps] Provisioning agent: {spec['name']} ({spec['template_id']})")

        if not self.api_key:
            logger.info("Mock mode: would provision CloneOps agent")
            return {"id": f"mock-agent-{spec['template_id']}", "status": "mock_success", "data": spec}

        try:
            with httpx.Client(timeout=30) as client:
                response = client.post(
                    f"{self.base_url}/agents",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=spec,
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise ProvisioningError(
                f"CloneOps API error {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise ProvisioningError(f"CloneOps request failed: {e}") from e


# Global CloneOps client instance
cloneops_client = CloneOpsClient()


def provision_agent(intent: OnboardingIntent) -> Dict[str, Any]:
    """Provision an agent using the global CloneOps client."""
    return cloneops_client.provision_agent(intent)
