from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional, Sequence
from loguru import logger

from graph.errors import ValidationError
from graph.state import OnboardingIntent

# Vendor (Zoho) field names first, generic snake_case second
FIELD_ALIASES = {
    "reference_id": ("id", "reference_id"),
    "firm_name": ("Deal_Name", "firm_name"),
    "practice_area": ("Practice_Area", "practice_area"),
    "transfer_number": ("Transfer_Number", "transfer_number"),
    "agent_archetype": ("Agent_Archetype", "agent_archetype"),
    "client_email": ("Email", "client_email"),
    "setup_fee_amount": ("Amount", "setup_fee_amount", "amount"),
}

REQUIRED_FIELDS = ["firm_name", "agent_archetype"]


def _unwrap(value: Any) -> Any:
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


def _lookup(properties: Dict[str, Any], aliases: Sequence[str]) -> Optional[Any]:
    for key in aliases:
        value = _unwrap(properties.get(key))
        if value not in (None, ""):
            return value
    return None


def _parse_amount(value: Any) -> Optional[Decimal]:
    if value in (None, "", 0):
        return None
    try:
        amount = Decimal(str(value).replace("$", "").replace(",", "").strip())
    except InvalidOperation:
        raise ValidationError("setup_fee_amount", f"Invalid setup_fee_amount: {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValidationError("setup_fee_amount", f"Invalid setup_fee_amount: {value!r}")
    if amount == 0:
        return None
    return amount


def parse_intent(payload: Dict[str, Any]) -> OnboardingIntent:
    """
    Normalize a CRM webhook body into an OnboardingIntent.

    Accepts either a flat record or a ``{"properties": {key: {"value": ...}}}``
    envelope. Raises ValidationError naming the first missing required field.
    """
    if not isinstance(payload, dict):
        raise ValidationError("payload", "Webhook body must be a JSON object")

    properties = payload.get("properties")
    if not isinstance(properties, dict):
        properties = payload

    fields = {name: _lookup(properties, aliases) for name, aliases in FIELD_ALIASES.items()}

    # Zoho nests the contact on deals
    contact = properties.get("Contact_Name")
    if not fields["client_email"] and isinstance(contact, dict):
        fields["client_email"] = _unwrap(contact.get("email") or contact.get("Email"))

    for name in REQUIRED_FIELDS:
        if not fields[name]:
            logger.warning(f"Missing intent field {name}. Payload keys: {list(properties.keys())}")
            raise ValidationError(name)

    reference_id = fields["reference_id"]
    intent = OnboardingIntent(
        firm_name=str(fields["firm_name"]).strip(),
        agent_archetype=str(fields["agent_archetype"]).strip(),
        reference_id=str(reference_id) if reference_id is not None else None,
        client_email=fields["client_email"],
        practice_area=fields["practice_area"],
        transfer_number=fields["transfer_number"],
        setup_fee_amount=_parse_amount(fields["setup_fee_amount"]),
    )

    logger.info(f"Parsed onboarding intent for {intent.firm_name} (ref: {intent.reference_id or 'untracked'})")
    return intent
