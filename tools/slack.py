import os
from typing import Dict, Any, Optional
from loguru import logger
from slack_sdk.webhook import WebhookClient


class SlackNotifier:
    """Slack integration for telling the team a new client was onboarded."""

    def __init__(self):
        self.webhook_url = os.getenv("SLACK_WEBHOOK_URL")

        if not self.webhook_url:
            logger.warning("No Slack webhook URL provided, using mock mode")

    def send_onboarding_notification(self, state: Dict[str, Any], status: str = "Ready for Verification") -> Optional[str]:
        """
        Post an internal onboarding alert.

        Args:
            state: Onboarding workflow state
            status: Status line shown to the team

        Returns:
            Slack response body, or a mock marker in mock mode
        """
        if not self.webhook_url:
            logger.info("Mock mode: would send Slack onboarding notification")
            return "mock_success"

        message = self._build_onboarding_message(state, status)
        response = WebhookClient(self.webhook_url).send(
            text=message["text"],
            blocks=message["blocks"],
        )
        if response.status_code != 200:
            raise RuntimeError(f"Slack webhook returned {response.status_code}: {response.body}")

        logger.info(f"Slack onboarding notification sent for {state['intent'].firm_name}")
        return response.body

    def _build_onboarding_message(self, state: Dict[str, Any], status: str) -> Dict[str, Any]:
        """Build Slack message for a new onboarding."""
        intent = state["intent"]
        invoice = state.get("invoice")

        text = f"🚨 New Agent Created: {intent.firm_name}"

        fields = [
            {"type": "mrkdwn", "text": f"*Firm:*\n{intent.firm_name}"},
            {"type": "mrkdwn", "text": f"*Agent Archetype:*\n{intent.agent_archetype}"},
            {"type": "mrkdwn", "text": f"*Provisioning:*\n{state.get('provisioning_id', 'n/a')}"},
            {"type": "mrkdwn", "text": f"*Status:*\n{status}"},
        ]
        if invoice:
            fields.append({"type": "mrkdwn", "text": f"*Invoice:*\n{invoice.id} (${invoice.amount:,.2f})"})

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "New Client Onboarded"}
            },
            {
                "type": "section",
                "fields": fields
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "👉 *Action Required:* Call the provisional number and verify performance."
                }
            }
        ]

        if state.get("errors"):
            blocks.append({
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "*Warnings:*\n" + "\n".join(f"• {e}" for e in state["errors"])
                }
            })

        return {"text": text, "blocks": blocks}


# Global Slack notifier instance
slack_notifier = SlackNotifier()


def send_onboarding_notification(state: Dict[str, Any], status: str = "Ready for Verification") -> Optional[str]:
    """Send an onboarding notification using the global Slack notifier."""
    return slack_notifier.send_onboarding_notification(state, status)
