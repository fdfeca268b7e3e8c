"""UTM Tracker — Engagement Updater.

Applies a match decision to the click store: marks the record engaged,
attaches the Gallabox identifiers and forces a re-export to Sheets.
"""

from typing import Any, Dict, Optional

from utm_tracker.core.logging import get_logger, log_fields
from utm_tracker.models.click_models import ClickRecord
from utm_tracker.models.message_models import InboundMessage, MatchOutcome
from utm_tracker.store.click_store import ClickStore

logger = get_logger("attribution.engagement")

# Only written when the event carries a value; a known name is never blanked
OPTIONAL_FIELDS = ("contact_id", "conversation_id", "contact_name")


class EngagementUpdater:
    """Idempotent upsert of engagement data onto the matched record."""

    def __init__(self, store: ClickStore):
        self.store = store

    def build_update(self, outcome: MatchOutcome, message: InboundMessage) -> Dict[str, Any]:
        """Fields written on every engagement for this outcome."""
        fields: Dict[str, Any] = {
            "has_engaged": True,
            "phone_number": message.phone_number,
            "engaged_at": message.received_at,
            "synced_to_sheets": False,
            "attribution_source": outcome.attribution_source.value,
        }
        for name in OPTIONAL_FIELDS:
            value = getattr(message, name)
            if value:
                fields[name] = value
        if message.message_text:
            fields["last_message"] = message.message_text
        return fields

    def apply(self, outcome: MatchOutcome, message: InboundMessage) -> Optional[ClickRecord]:
        """Persist the outcome. Returns None when the outcome is not persisted."""
        if not outcome.persist or not outcome.matched_record_id:
            return None

        fields = self.build_update(outcome, message)
        defaults = {
            **outcome.snapshot.model_dump(),
            "timestamp": message.received_at,
            "click_time": message.received_at,
        }
        record, created = self.store.upsert(outcome.matched_record_id, fields, defaults)
        logger.info(
            f"{'📝 Created' if created else '✅ Updated'} engaged record {record.id}",
            extra=log_fields(
                session_id=record.id,
                attribution=outcome.attribution_source.value,
                stage="engagement",
            ),
        )
        return record
