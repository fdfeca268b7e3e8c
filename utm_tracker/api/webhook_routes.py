"""UTM Tracker — Gallabox Webhook Routes."""

import json
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status

from utm_tracker.api.auth import verify_gallabox_token
from utm_tracker.attribution.pipeline import attribute_message
from utm_tracker.connectors.gallabox.payload import channel_digits, parse_inbound_message
from utm_tracker.core.context import AppContext, get_context
from utm_tracker.core.exceptions import MissingIdentifierError
from utm_tracker.core.logging import get_logger, log_fields

logger = get_logger("api.webhook")

router = APIRouter(tags=["Webhooks"])


@router.post("/gallabox-webhook", dependencies=[Depends(verify_gallabox_token)])
async def gallabox_webhook(
    event: Dict[str, Any] = Body(...),
    context: AppContext = Depends(get_context),
):
    """Attribute an inbound WhatsApp message to a tracked click.

    Messages sent to other business numbers on the same Gallabox account are
    acknowledged and skipped.
    """
    logger.debug(f"📥 Incoming webhook payload: {json.dumps(event, default=str)}")

    receiving_number = channel_digits(event)
    target_number = context.settings.whatsapp_number
    if target_number and receiving_number != target_number:
        logger.info(
            f"⏭️ Skipping: message was for {receiving_number or 'unknown'}, "
            f"not {target_number}"
        )
        return {"status": "skipped", "reason": "wrong_number"}

    try:
        message = parse_inbound_message(event, context.settings.default_country_code)
    except MissingIdentifierError as e:
        logger.warning(f"Rejected webhook: {e}", extra=log_fields(stage="parse"))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing phone number"
        ) from e

    try:
        outcome = attribute_message(message, context.matcher, context.updater)
    except Exception as e:
        logger.error(
            f"❌ Webhook processing error: {e}",
            extra=log_fields(stage="attribution"),
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Processing failed: {str(e)}",
        )

    return {
        "status": "processed",
        "sessionId": outcome.matched_record_id,
        "source": outcome.snapshot.source,
        "attribution": outcome.attribution_source.value,
    }
