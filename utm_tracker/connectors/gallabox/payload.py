"""UTM Tracker — Gallabox Webhook Payload → InboundMessage.

Gallabox posts the raw WhatsApp message wrapped with its own contact and
conversation identifiers. Only the fields attribution needs are extracted.
"""

import re
from typing import Any, Dict, Optional

from utm_tracker.attribution.phone import normalize_phone
from utm_tracker.models.message_models import InboundMessage


def _get(data: Any, *path: str) -> Any:
    """Walk nested dicts, returning None on any missing hop."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def channel_digits(event: Dict[str, Any]) -> str:
    """Digits of the business number the message was sent to."""
    return re.sub(r"\D", "", str(event.get("channelNumber") or ""))


def extract_message_text(event: Dict[str, Any]) -> Optional[str]:
    """Text body, falling back to the title of an interactive reply."""
    return (
        _clean(_get(event, "whatsapp", "text", "body"))
        or _clean(_get(event, "whatsapp", "interactive", "list_reply", "title"))
        or _clean(_get(event, "whatsapp", "interactive", "button_reply", "title"))
        or _clean(_get(event, "whatsapp", "button", "text"))
    )


def parse_inbound_message(
    event: Dict[str, Any], country_code: str = "91"
) -> InboundMessage:
    """Build an InboundMessage. Raises MissingIdentifierError without a sender phone."""
    phone = normalize_phone(_clean(_get(event, "whatsapp", "from")), country_code)
    return InboundMessage(
        phone_number=phone,
        context_token=_clean(event.get("context")),
        contact_id=_clean(event.get("contactId") or _get(event, "contact", "id")),
        conversation_id=_clean(event.get("conversationId")),
        contact_name=_clean(_get(event, "contact", "name")),
        message_text=extract_message_text(event),
        channel_number=channel_digits(event) or None,
    )
