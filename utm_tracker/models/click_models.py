"""UTM Tracker — Click Record Model.

One row per ad click / landing session. The row is later enriched with
WhatsApp engagement data and mirrored to Google Sheets.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlalchemy import JSON, Column, DateTime, Index
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field

DIRECT_MESSAGE_SOURCE = "direct_message"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to aware UTC. Naive values are taken to already be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime stored as UTC on every backend.

    SQLite drops tzinfo on write, so offsets are normalized before binding
    and naive values read back are tagged as UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return to_utc(value)

    def process_result_value(self, value, dialect):
        return to_utc(value)


class AttributionSource(str, Enum):
    """Which matching strategy produced an attribution decision."""

    CONTEXT = "context"
    GALLABOX_ID_MATCH = "gallabox_id_match"
    PHONE_MATCH = "phone_match"
    EXISTING_DIRECT = "existing_direct"
    NEW_DIRECT = "new_direct"
    IGNORED_DIRECT = "ignored_direct"


class ClickRecord(SQLModel, table=True):
    """A tracked click, keyed by the session id generated in the browser."""

    __tablename__ = "utm_clicks"
    __table_args__ = (
        Index("ix_utm_clicks_phone_lookup", "phone_number", "has_engaged", "timestamp"),
        Index("ix_utm_clicks_export", "has_engaged", "synced_to_sheets", "source"),
    )

    id: str = Field(primary_key=True, description="Session id from the landing page")

    # UTM dimensions
    source: str = Field(default=DIRECT_MESSAGE_SOURCE)
    medium: str = Field(default="whatsapp")
    campaign: str = Field(default="organic")
    content: str = Field(default="none")
    placement: str = Field(default="N/A")
    original_params: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
        description="Raw landing-page query parameters",
    )
    full_url: Optional[str] = Field(default=None)

    # Engagement
    has_engaged: bool = Field(default=False)
    phone_number: Optional[str] = Field(default=None)

    # Gallabox identifiers
    contact_id: Optional[str] = Field(default=None, index=True)
    conversation_id: Optional[str] = Field(default=None, index=True)
    contact_name: Optional[str] = Field(default=None)
    last_message: Optional[str] = Field(default=None)

    attribution_source: str = Field(default="unknown")

    # Timestamps
    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False, index=True),
    )
    click_time: Optional[datetime] = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True))
    )
    engaged_at: Optional[datetime] = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True))
    )

    # Sheets sync tracking
    synced_to_sheets: bool = Field(default=False)
    last_synced: Optional[datetime] = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True))
    )
    # Bumped on every write. An export only marks the revision it appended.
    revision: int = Field(default=0)


class UtmSnapshot(BaseModel):
    """The attribution dimensions carried by a match decision."""

    source: str = DIRECT_MESSAGE_SOURCE
    medium: str = "whatsapp"
    campaign: str = "organic"
    content: str = "none"
    placement: str = "N/A"

    @classmethod
    def from_record(cls, record: ClickRecord) -> "UtmSnapshot":
        return cls(
            source=record.source,
            medium=record.medium,
            campaign=record.campaign,
            content=record.content,
            placement=record.placement,
        )

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "UtmSnapshot":
        """Build from a loose mapping, keeping defaults for blank dimensions."""
        values = {
            name: str(data[name])
            for name in cls.model_fields
            if data.get(name) not in (None, "")
        }
        return cls(**values)


def needs_export(record: ClickRecord) -> bool:
    """True when a record is engaged, unsynced and not a direct message."""
    return (
        record.has_engaged
        and not record.synced_to_sheets
        and record.source != DIRECT_MESSAGE_SOURCE
    )
