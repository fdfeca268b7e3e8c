"""UTM Tracker — Click Record → Sheet Row Projection.

Column order and fallback strings are the reporting sheet's contract. Each
UTM column prefers campaign-platform parameter names (as Meta sends them),
then generic keys in the original params, then the record's own field.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from utm_tracker.models.click_models import ClickRecord

SHEET_HEADERS = [
    "Timestamp",
    "Phone Number",
    "UTM Source",
    "UTM Medium",
    "UTM Campaign",
    "UTM Content",
    "Placement",
    "Engaged",
    "Engaged At",
    "Attribution Source",
    "Contact ID",
    "Conversation ID",
    "Contact Name",
    "Last Message",
]

# (original_params keys in precedence order, record field, default)
UTM_COLUMNS = [
    (("CampaignSource", "Campaign Source", "Campaign_Source", "source"), "source", "direct"),
    (("AdSetName", "Ad Set Name", "Ad_Set_Name", "medium"), "medium", "organic"),
    (("CampaignName", "Campaign Name", "Campaign_Name", "campaign"), "campaign", "none"),
    (("AdName", "Ad Name", "Ad_Name", "content"), "content", "none"),
    (("Placement", "placement"), "placement", "N/A"),
]

LAST_MESSAGE_LIMIT = 150


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2025-01-31T09:15:02.120Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _first_present(values: Iterable[Any], default: str) -> str:
    for value in values:
        if value not in (None, ""):
            return str(value)
    return default


def _utm_value(
    params: Dict[str, Any], keys: Sequence[str], field_value: Optional[str], default: str
) -> str:
    return _first_present([*(params.get(k) for k in keys), field_value], default)


def _last_message(text: Optional[str]) -> str:
    if not text:
        return "No text content"
    return re.sub(r"\r?\n", " ", text[:LAST_MESSAGE_LIMIT])


def to_sheet_row(record: ClickRecord) -> List[str]:
    """Project one record onto the 14 sheet columns."""
    params = record.original_params or {}
    row_time = record.click_time or record.timestamp or datetime.now(timezone.utc)

    return [
        format_timestamp(row_time),
        record.phone_number or "N/A",
        *(
            _utm_value(params, keys, getattr(record, field), default)
            for keys, field, default in UTM_COLUMNS
        ),
        "✅ YES" if record.has_engaged else "❌ NO",
        format_timestamp(record.engaged_at) if record.engaged_at else "N/A",
        record.attribution_source or "unknown",
        record.contact_id or "N/A",
        record.conversation_id or "N/A",
        record.contact_name or "Anonymous",
        _last_message(record.last_message),
    ]


def convert_to_sheet_rows(records: Iterable[ClickRecord]) -> List[List[str]]:
    return [to_sheet_row(record) for record in records]
