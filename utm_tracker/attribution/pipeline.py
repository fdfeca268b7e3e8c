"""UTM Tracker — Inbound Message Attribution Pipeline.

Runs the flow for one webhook event, strictly in sequence:
  match (strategy chain) → apply engagement → report
"""

from utm_tracker.attribution.engagement import EngagementUpdater
from utm_tracker.attribution.matcher import AttributionMatcher
from utm_tracker.core.logging import get_logger, log_fields
from utm_tracker.models.message_models import InboundMessage, MatchOutcome

logger = get_logger("attribution.pipeline")


def attribute_message(
    message: InboundMessage,
    matcher: AttributionMatcher,
    updater: EngagementUpdater,
) -> MatchOutcome:
    """Attribute one inbound message and persist the result."""
    outcome = matcher.match(message)
    updater.apply(outcome, message)
    logger.info(
        f"✅ Processed message from {message.phone_number} "
        f"with attribution: {outcome.attribution_source.value}",
        extra=log_fields(
            session_id=outcome.matched_record_id,
            attribution=outcome.attribution_source.value,
            stage="pipeline",
        ),
    )
    return outcome
