"""UTM Tracker — Attribution Matcher.

Decides which prior click an inbound WhatsApp message belongs to. Strategies
run in strict priority order and the first hit wins:

  1. context token:       session id round-tripped through WhatsApp
  2. Gallabox id match:   newest unengaged click in the last few minutes
  3. phone match:         newest unengaged click already tied to the phone
  4. existing direct:     earlier direct-message record for the conversation
  5. new direct:          synthesize a record (if direct capture is enabled)
  6. ignored direct:      nothing is persisted

Strategies never flip `has_engaged`; the engagement updater does that. The
only writes here are the Gallabox id enrichment (2) and the message/time
update on an existing direct conversation (4).
"""

import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from utm_tracker.attribution.context_token import decode_context_token
from utm_tracker.core.logging import get_logger, log_fields
from utm_tracker.models.click_models import AttributionSource, UtmSnapshot
from utm_tracker.models.message_models import InboundMessage, MatchOutcome
from utm_tracker.store.click_store import ClickStore

logger = get_logger("attribution.matcher")

DEFAULT_MATCH_WINDOW = timedelta(minutes=5)


def new_direct_id() -> str:
    """Time-based id with a short random suffix, e.g. direct-1718000000000-1a2b3c4d."""
    return f"direct-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class AttributionMatcher:
    """Runs the prioritized strategy chain against the click store."""

    def __init__(
        self,
        store: ClickStore,
        store_direct_messages: bool = False,
        match_window: timedelta = DEFAULT_MATCH_WINDOW,
        id_factory: Callable[[], str] = new_direct_id,
    ):
        self.store = store
        self.store_direct_messages = store_direct_messages
        self.match_window = match_window
        self.id_factory = id_factory

    def match(self, message: InboundMessage, now: Optional[datetime] = None) -> MatchOutcome:
        """Return the attribution decision for one inbound message."""
        now = now or message.received_at

        outcome = (
            self._match_context(message)
            or self._match_gallabox_ids(message, now)
            or self._match_phone(message)
            or self._match_existing_direct(message, now)
            or self._new_direct(message)
        )
        if outcome is None:
            logger.info(
                f"⏭️ Skipping direct message from {message.phone_number}",
                extra=log_fields(attribution=AttributionSource.IGNORED_DIRECT.value),
            )
            outcome = MatchOutcome(
                attribution_source=AttributionSource.IGNORED_DIRECT, persist=False
            )
        return outcome

    # ── Priority 1: Context Parameter ──

    def _match_context(self, message: InboundMessage) -> Optional[MatchOutcome]:
        context = decode_context_token(message.context_token)
        if not context or not context.get("session_id"):
            return None
        session_id = str(context["session_id"])
        logger.info(
            f"✅ Context match: {session_id}",
            extra=log_fields(session_id=session_id, attribution="context"),
        )
        return MatchOutcome(
            matched_record_id=session_id,
            attribution_source=AttributionSource.CONTEXT,
            snapshot=UtmSnapshot.from_mapping(context),
        )

    # ── Priority 2: Gallabox Identifiers ──

    def _match_gallabox_ids(
        self, message: InboundMessage, now: datetime
    ) -> Optional[MatchOutcome]:
        if not (message.contact_id or message.conversation_id):
            return None
        logger.info(
            f"🔍 Attempting Gallabox ID match - Contact: {message.contact_id}, "
            f"Conversation: {message.conversation_id}"
        )
        recent = self.store.find_recent_unengaged(since=now - self.match_window)
        if recent is None:
            return None

        # Attach the Gallabox ids as soon as the click is found
        enrichment = {
            name: value
            for name, value in (
                ("contact_id", message.contact_id),
                ("conversation_id", message.conversation_id),
                ("contact_name", message.contact_name),
            )
            if value
        }
        self.store.update_fields(recent.id, **enrichment)

        logger.info(
            f"✅ Matched with recent click: {recent.id}",
            extra=log_fields(session_id=recent.id, attribution="gallabox_id_match"),
        )
        return MatchOutcome(
            matched_record_id=recent.id,
            attribution_source=AttributionSource.GALLABOX_ID_MATCH,
            snapshot=UtmSnapshot.from_record(recent),
        )

    # ── Priority 3: Phone Number ──

    def _match_phone(self, message: InboundMessage) -> Optional[MatchOutcome]:
        record = self.store.find_unengaged_by_phone(message.phone_number)
        if record is None:
            return None
        logger.info(
            f"✅ Phone number match: {record.id}",
            extra=log_fields(session_id=record.id, attribution="phone_match"),
        )
        return MatchOutcome(
            matched_record_id=record.id,
            attribution_source=AttributionSource.PHONE_MATCH,
            snapshot=UtmSnapshot.from_record(record),
        )

    # ── Priority 4: Existing Direct Conversation ──

    def _match_existing_direct(
        self, message: InboundMessage, now: datetime
    ) -> Optional[MatchOutcome]:
        if not message.conversation_id:
            return None
        record = self.store.find_direct_by_conversation(message.conversation_id)
        if record is None:
            return None

        fields: dict = {"engaged_at": now}
        if message.message_text:
            fields["last_message"] = message.message_text
        self.store.update_fields(record.id, **fields)

        logger.info(
            f"✅ Found existing direct conversation: {message.conversation_id}",
            extra=log_fields(session_id=record.id, attribution="existing_direct"),
        )
        return MatchOutcome(
            matched_record_id=record.id,
            attribution_source=AttributionSource.EXISTING_DIRECT,
            snapshot=UtmSnapshot.from_record(record),
        )

    # ── Priority 5: New Direct Record ──

    def _new_direct(self, message: InboundMessage) -> Optional[MatchOutcome]:
        if not (message.conversation_id and self.store_direct_messages):
            return None
        session_id = self.id_factory()
        logger.info(
            f"📝 Creating new direct record: {session_id}",
            extra=log_fields(session_id=session_id, attribution="new_direct"),
        )
        return MatchOutcome(
            matched_record_id=session_id,
            attribution_source=AttributionSource.NEW_DIRECT,
            snapshot=UtmSnapshot(),
        )
