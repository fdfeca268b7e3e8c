"""UTM Tracker — Click Context Token.

The landing page encodes `{session_id, source, medium, campaign, placement,
click_time}` as base64 JSON and appends it to the WhatsApp deep link. If the
channel round-trips it, the webhook carries it back as `context`.
"""

import base64
import binascii
import json
from typing import Any, Dict, Optional

from utm_tracker.core.logging import get_logger, log_fields

logger = get_logger("attribution.context")


def encode_context_token(context: Dict[str, Any]) -> str:
    """Inverse of decode_context_token, as done by the landing page script."""
    return base64.b64encode(json.dumps(context).encode("utf-8")).decode("ascii")


def decode_context_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode a context token. Returns None for absent or malformed tokens."""
    if not token:
        return None
    try:
        padded = token.strip() + "=" * (-len(token.strip()) % 4)
        payload = json.loads(base64.b64decode(padded, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"⚠️ Invalid context format: {e}", extra=log_fields(stage="context"))
        return None
    if not isinstance(payload, dict):
        logger.warning(
            f"⚠️ Context token is not an object: {type(payload).__name__}",
            extra=log_fields(stage="context"),
        )
        return None
    return payload
