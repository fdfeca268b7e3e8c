"""UTM Tracker — Click Store.

Repository over the `utm_clicks` table. Every write runs in its own short
session and, once committed, is published on the change feed.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from utm_tracker.core.logging import get_logger
from utm_tracker.models.click_models import (
    ClickRecord,
    DIRECT_MESSAGE_SOURCE,
    utcnow,
)
from utm_tracker.store.change_feed import ChangeEvent, ChangeFeed, Predicate, Subscription

logger = get_logger("store.clicks")


class ClickStore:
    """Queries and idempotent writes for click records."""

    def __init__(self, engine: Engine, feed: Optional[ChangeFeed] = None):
        self.engine = engine
        self.feed = feed or ChangeFeed()

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def _publish(self, operation_type: str, record: ClickRecord) -> None:
        self.feed.publish(ChangeEvent(operation_type=operation_type, record=record))

    # ── Health ──

    def ping(self) -> bool:
        """Run a trivial query. Raises if the database is unreachable."""
        with self._session() as session:
            session.exec(select(ClickRecord.id).limit(1)).first()  # type: ignore
        return True

    # ── Reads ──

    def get(self, record_id: str) -> Optional[ClickRecord]:
        with self._session() as session:
            return session.get(ClickRecord, record_id)

    def find_recent_unengaged(self, since: datetime) -> Optional[ClickRecord]:
        """Newest unengaged click created at or after `since`."""
        with self._session() as session:
            return session.exec(
                select(ClickRecord)
                .where(
                    ClickRecord.has_engaged == False,  # noqa: E712
                    ClickRecord.timestamp >= since,
                )
                .order_by(ClickRecord.timestamp.desc())  # type: ignore
                .limit(1)
            ).first()

    def find_unengaged_by_phone(self, phone_number: str) -> Optional[ClickRecord]:
        """Newest unengaged, non-direct click already tied to this phone."""
        with self._session() as session:
            return session.exec(
                select(ClickRecord)
                .where(
                    ClickRecord.phone_number == phone_number,
                    ClickRecord.has_engaged == False,  # noqa: E712
                    ClickRecord.source != DIRECT_MESSAGE_SOURCE,
                )
                .order_by(ClickRecord.timestamp.desc())  # type: ignore
                .limit(1)
            ).first()

    def find_direct_by_conversation(self, conversation_id: str) -> Optional[ClickRecord]:
        with self._session() as session:
            return session.exec(
                select(ClickRecord).where(
                    ClickRecord.conversation_id == conversation_id,
                    ClickRecord.source == DIRECT_MESSAGE_SOURCE,
                )
            ).first()

    def find_pending_export(self, limit: int = 250) -> List[ClickRecord]:
        """Engaged, unsynced, non-direct records, newest first."""
        with self._session() as session:
            return list(
                session.exec(
                    select(ClickRecord)
                    .where(
                        ClickRecord.has_engaged == True,  # noqa: E712
                        ClickRecord.synced_to_sheets == False,  # noqa: E712
                        ClickRecord.source != DIRECT_MESSAGE_SOURCE,
                    )
                    .order_by(ClickRecord.timestamp.desc())  # type: ignore
                    .limit(limit)
                ).all()
            )

    # ── Writes ──

    def create_click(self, record: ClickRecord) -> Tuple[ClickRecord, bool]:
        """Insert a click unless its id already exists.

        Returns the stored record and whether it was created by this call.
        """
        with self._session() as session:
            existing = session.get(ClickRecord, record.id)
            if existing is not None:
                return existing, False
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                # Lost a race against a concurrent insert of the same id
                session.rollback()
                logger.info(f"Click {record.id} inserted concurrently, keeping first")
                return session.get(ClickRecord, record.id), False  # type: ignore
            session.refresh(record)
        self._publish("insert", record)
        return record, True

    def update_fields(self, record_id: str, **fields: Any) -> Optional[ClickRecord]:
        """Set fields on an existing record. Returns None if it does not exist."""
        with self._session() as session:
            record = session.get(ClickRecord, record_id)
            if record is None:
                return None
            for name, value in fields.items():
                setattr(record, name, value)
            record.revision += 1
            session.add(record)
            session.commit()
            session.refresh(record)
        self._publish("update", record)
        return record

    def upsert(
        self,
        record_id: str,
        fields: Dict[str, Any],
        defaults: Dict[str, Any],
    ) -> Tuple[ClickRecord, bool]:
        """Update `fields` on a record, creating it from `defaults` if absent."""
        with self._session() as session:
            record = session.get(ClickRecord, record_id)
            created = record is None
            if record is None:
                record = ClickRecord(id=record_id, **{**defaults, **fields})
            else:
                for name, value in fields.items():
                    setattr(record, name, value)
                record.revision += 1
            session.add(record)
            session.commit()
            session.refresh(record)
        self._publish("insert" if created else "update", record)
        return record, created

    def mark_synced(self, record: ClickRecord, synced_at: Optional[datetime] = None) -> bool:
        """Flag the exported snapshot of `record` as mirrored to Sheets.

        The update only applies while the stored row is still at the revision
        that was appended. Returns False when the row is gone, already synced,
        or was rewritten after it was selected; it then stays pending.
        """
        statement = (
            update(ClickRecord)
            .where(
                ClickRecord.id == record.id,
                ClickRecord.revision == record.revision,
                ClickRecord.synced_to_sheets == False,  # noqa: E712
            )
            .values(synced_to_sheets=True, last_synced=synced_at or utcnow())
        )
        with self._session() as session:
            result = session.exec(statement)  # type: ignore
            session.commit()
            if result.rowcount == 0:
                return False
            marked = session.get(ClickRecord, record.id)
        if marked is not None:
            self._publish("update", marked)
        return True

    # ── Change feed ──

    def subscribe(self, predicate: Predicate) -> Subscription:
        return self.feed.subscribe(predicate)
