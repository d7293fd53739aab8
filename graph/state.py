from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import TypedDict, Optional, List, Dict, Any

from graph.errors import ValidationError


@dataclass(frozen=True)
class OnboardingIntent:
    """Normalized request describing one client onboarding."""
    firm_name: str
    agent_archetype: str
    reference_id: Optional[str] = None
    client_email: Optional[str] = None
    practice_area: Optional[str] = None
    transfer_number: Optional[str] = None
    setup_fee_amount: Optional[Decimal] = None

    def __post_init__(self):
        if not (self.firm_name or "").strip():
            raise ValidationError("firm_name")
        if not (self.agent_archetype or "").strip():
            raise ValidationError("agent_archetype")


@dataclass(frozen=True)
class Invoice:
    id: str
    amount: Decimal
    description: str
    currency: str = "USD"
    status: str = "draft"


@dataclass
class OnboardingResult:
    provisioning_id: str
    invoice_id: str
    payment_url: str
    document_path: str
    email_dispatch_receipt: Any = None
    warnings: List[str] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        body = asdict(self)
        body["message"] = "Onboarding initiated"
        return body


class OnboardingState(TypedDict, total=False):
    """State shape for the onboarding workflow."""
    intent: OnboardingIntent
    provisioning_id: str
    crm_updated: bool
    invoice: Invoice
    payment_url: str
    document_path: str
    email_receipt: Any               # raw CRM send_mail acknowledgement
    notification: Optional[str]      # Slack webhook response body
    errors: List[str]                # warnings from non-fatal steps
