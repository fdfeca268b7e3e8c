"""UTM Tracker — Inbound Message & Match Outcome Schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from utm_tracker.models.click_models import AttributionSource, UtmSnapshot, utcnow


class InboundMessage(BaseModel):
    """A WhatsApp message normalized out of a Gallabox webhook."""

    phone_number: str
    """Sender phone, normalized to include the country code."""
    context_token: Optional[str] = None
    contact_id: Optional[str] = None
    conversation_id: Optional[str] = None
    contact_name: Optional[str] = None
    message_text: Optional[str] = None
    channel_number: Optional[str] = None
    received_at: datetime = Field(default_factory=utcnow)
    """Event time. Reused as engaged_at so replays write identical rows."""


class MatchOutcome(BaseModel):
    """Result of running the attribution strategy chain for one message."""

    matched_record_id: Optional[str] = None
    attribution_source: AttributionSource
    snapshot: UtmSnapshot = Field(default_factory=UtmSnapshot)
    persist: bool = True
