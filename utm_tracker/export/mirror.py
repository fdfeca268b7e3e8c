"""UTM Tracker — Google Sheets Export Mirror.

Drains engaged, unsynced clicks into the reporting sheet. Ordering is what
keeps the sheet consistent under partial failure:

  ensure sheet + header → select batch → append rows → mark records synced

A record is only marked after the sink confirms the append, and only if it
was not rewritten in the meantime. A failed append
leaves the whole batch eligible for the next attempt, so the sheet may
receive duplicates but never misses a row.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from utm_tracker.core.exceptions import (
    PermanentFailure,
    SheetsAPIError,
    SinkNotConfiguredError,
    SyncFailedError,
)
from utm_tracker.core.logging import get_logger, log_fields
from utm_tracker.export.base_sink import ExportSink
from utm_tracker.export.rows import SHEET_HEADERS, convert_to_sheet_rows
from utm_tracker.models.click_models import ClickRecord, needs_export, utcnow
from utm_tracker.store.change_feed import ChangeEvent
from utm_tracker.store.click_store import ClickStore

logger = get_logger("export.mirror")


class SyncResult(BaseModel):
    """Outcome of one successful batch sync."""

    count: int = 0
    spreadsheet_id: str = ""
    sheet_name: str = ""
    updated_range: str = ""
    failed_ids: List[str] = []
    """Appended, but marking raised. Re-exported on the next run."""
    pending_ids: List[str] = []
    """Rewritten while the append was in flight. Their newer snapshot is still pending."""


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, SheetsAPIError):
        return error.is_quota_error
    return "quota" in str(error).lower()


class ExportMirror:
    """Batch, scheduled and change-feed driven export of engaged clicks."""

    def __init__(
        self,
        store: ClickStore,
        sink: Optional[ExportSink],
        batch_size: int = 250,
        max_retries: int = 3,
        retry_base_delay: float = 2.0,
        feed_retry_delay: float = 60.0,
    ):
        self.store = store
        self.sink = sink
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.feed_retry_delay = feed_retry_delay

    def _require_sink(self) -> ExportSink:
        if self.sink is None:
            raise SinkNotConfiguredError(
                "Google Sheets export is not configured (credentials or spreadsheet id missing)"
            )
        return self.sink

    def _mark_synced(self, records: List[ClickRecord]) -> Tuple[List[str], List[str]]:
        """Mark each appended snapshot individually.

        Returns (failed, pending): ids whose mark raised, and ids rewritten
        since they were selected, which stay eligible for export.
        """
        failed: List[str] = []
        pending: List[str] = []
        synced_at = utcnow()
        for record in records:
            try:
                if not self.store.mark_synced(record, synced_at):
                    pending.append(record.id)
            except SQLAlchemyError as e:
                logger.error(
                    f"❌ Failed to mark {record.id} as synced: {e}",
                    extra=log_fields(session_id=record.id, stage="mark_synced"),
                )
                failed.append(record.id)
        return failed, pending

    # ── Batch Sync ──

    async def _sync_once(self, sink: ExportSink) -> SyncResult:
        await sink.ensure_sheet(SHEET_HEADERS)

        records = self.store.find_pending_export(limit=self.batch_size)
        if not records:
            logger.info("ℹ️ No new records to sync")
            return SyncResult(spreadsheet_id=sink.spreadsheet_id, sheet_name=sink.sheet_name)

        logger.info(
            f"🔍 Found {len(records)} documents to sync",
            extra=log_fields(record_count=len(records), stage="select"),
        )
        rows = convert_to_sheet_rows(records)

        # Append first; marking happens only after the sink confirms
        updated_range = await sink.append_rows(rows)

        failed_ids, pending_ids = self._mark_synced(records)
        if pending_ids:
            logger.info(
                f"🔁 {len(pending_ids)} records changed during export and stay pending: {pending_ids}",
                extra=log_fields(record_count=len(pending_ids), stage="mark_synced"),
            )
        if failed_ids:
            logger.warning(
                f"⚠️ {len(failed_ids)} records appended but not marked synced; "
                f"they will be exported again: {failed_ids}",
                extra=log_fields(record_count=len(failed_ids), stage="mark_synced"),
            )
        elif not pending_ids:
            logger.info("✅ Click records marked as synced")

        return SyncResult(
            count=len(rows),
            spreadsheet_id=sink.spreadsheet_id,
            sheet_name=sink.sheet_name,
            updated_range=updated_range,
            failed_ids=failed_ids,
            pending_ids=pending_ids,
        )

    async def sync_to_sheets(self) -> SyncResult:
        """Run one batch sync with linear backoff between attempts."""
        sink = self._require_sink()

        for attempt in range(1, self.max_retries + 1):
            logger.info(f"🔄 Starting sync (Attempt {attempt}/{self.max_retries})")
            try:
                return await self._sync_once(sink)
            except PermanentFailure:
                raise
            except Exception as e:
                logger.error(
                    f"❌ Attempt {attempt} failed: {e}", extra=log_fields(stage="sync")
                )
                if attempt >= self.max_retries:
                    logger.error("💥 Maximum retries exceeded")
                    raise SyncFailedError(
                        f"Final sync failure: {e}",
                        attempts=attempt,
                        retryable=_is_retryable(e),
                    ) from e
                await asyncio.sleep(attempt * self.retry_base_delay)

        raise SyncFailedError("Final sync failure: no attempts made", attempts=0)

    async def scheduled_sync(self) -> Dict[str, Any]:
        """Run a batch sync and summarise it. Never raises."""
        started = time.monotonic()
        result: Dict[str, Any] = {"success": False, "duration": 0, "syncedCount": 0}

        try:
            sync_result = await self.sync_to_sheets()
            result["success"] = True
            result["syncedCount"] = sync_result.count
            result["spreadsheetId"] = sync_result.spreadsheet_id
            if sync_result.failed_ids:
                result["unmarkedIds"] = sync_result.failed_ids
            if sync_result.pending_ids:
                result["pendingIds"] = sync_result.pending_ids
        except SyncFailedError as e:
            result["error"] = str(e)
            result["retryable"] = e.retryable
        except SinkNotConfiguredError as e:
            result["error"] = str(e)
            result["retryable"] = False
        finally:
            result["duration"] = int((time.monotonic() - started) * 1000)
            result["timestamp"] = datetime.now(timezone.utc).isoformat()

        logger.info(
            f"⏱️ Sync result: {result}",
            extra=log_fields(duration_ms=result["duration"], stage="scheduled_sync"),
        )
        return result

    # ── Continuous (change feed) Sync ──

    async def mirror_change(self, event: ChangeEvent) -> bool:
        """Export a single changed record. Returns True once it is marked synced."""
        sink = self._require_sink()
        record = event.record
        if event.operation_type not in ("insert", "update") or not needs_export(record):
            return False

        logger.info(
            f"🔥 Real-time sync triggered for document: {record.id}",
            extra=log_fields(session_id=record.id, stage="realtime"),
        )
        await sink.append_rows(convert_to_sheet_rows([record]))
        if not self.store.mark_synced(record):
            # A newer write was published while appending; its own event follows
            logger.info(
                f"🔁 {record.id} changed during real-time sync, left pending",
                extra=log_fields(session_id=record.id, stage="realtime"),
            )
            return False
        logger.info("✅ Real-time sync completed", extra=log_fields(session_id=record.id))
        return True

    async def _consume_feed(self) -> None:
        sink = self._require_sink()
        async with self.store.subscribe(needs_export) as subscription:
            await sink.ensure_sheet(SHEET_HEADERS)
            logger.info("🔄 Real-time export subscribed to click changes")
            async for event in subscription:
                try:
                    await self.mirror_change(event)
                except Exception as e:
                    # The record stays unsynced and the batch sync picks it up
                    logger.error(
                        f"❌ Real-time sync error: {e}",
                        extra=log_fields(session_id=event.record.id, stage="realtime"),
                    )

    async def run_realtime_sync(self) -> None:
        """Mirror qualifying changes until cancelled, re-subscribing on feed errors."""
        while True:
            try:
                await self._consume_feed()
                logger.warning("Change feed subscription ended")
            except PermanentFailure as e:
                logger.error(f"🚨 Real-time sync disabled: {e}")
                return
            except Exception as e:
                logger.error(
                    f"🚨 Change feed error: {e}. Re-subscribing in {self.feed_retry_delay}s",
                    extra=log_fields(stage="realtime"),
                )
            await asyncio.sleep(self.feed_retry_delay)
