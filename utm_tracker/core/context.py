"""UTM Tracker — Process-Scoped Application Context.

Built once during startup and attached to `app.state.context`. Route
handlers and background jobs receive their collaborators from here instead
of reaching for module globals.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from utm_tracker.attribution.engagement import EngagementUpdater
from utm_tracker.attribution.matcher import AttributionMatcher
from utm_tracker.config import Settings
from utm_tracker.connectors.sheets.client import ServiceAccountTokenProvider, SheetsClient
from utm_tracker.core.logging import get_logger
from utm_tracker.core.secrets import RuntimeSecrets
from utm_tracker.export.base_sink import ExportSink
from utm_tracker.export.mirror import ExportMirror
from utm_tracker.export.rows import SHEET_HEADERS
from utm_tracker.store.click_store import ClickStore

logger = get_logger("core.context")


@dataclass(frozen=True)
class AppContext:
    settings: Settings
    secrets: RuntimeSecrets
    store: ClickStore
    matcher: AttributionMatcher
    updater: EngagementUpdater
    mirror: ExportMirror


def build_sink(settings: Settings, secrets: RuntimeSecrets) -> Optional[ExportSink]:
    """Sheets sink, or None when export is not configured."""
    if not secrets.google_credentials:
        logger.warning("⚠️ No Google credentials, Sheets export disabled")
        return None
    if not settings.sheets_spreadsheet_id:
        logger.warning("⚠️ SHEETS_SPREADSHEET_ID not set, Sheets export disabled")
        return None
    try:
        token_provider = ServiceAccountTokenProvider(secrets.google_credentials)
    except ValueError as e:
        logger.error(f"❌ Invalid Google service account credentials: {e}")
        return None
    return SheetsClient(
        spreadsheet_id=settings.sheets_spreadsheet_id,
        sheet_name=settings.sheets_sheet_name,
        column_count=len(SHEET_HEADERS),
        token_provider=token_provider,
    )


def build_context(
    settings: Settings,
    engine: Engine,
    secrets: RuntimeSecrets,
    sink: Optional[ExportSink] = None,
) -> AppContext:
    """Wire the store, matcher, updater and mirror for one process."""
    store = ClickStore(engine)
    if sink is None:
        sink = build_sink(settings, secrets)
    return AppContext(
        settings=settings,
        secrets=secrets,
        store=store,
        matcher=AttributionMatcher(
            store,
            store_direct_messages=settings.store_direct_messages,
            match_window=timedelta(minutes=settings.id_match_window_minutes),
        ),
        updater=EngagementUpdater(store),
        mirror=ExportMirror(
            store,
            sink,
            batch_size=settings.sync_batch_size,
            max_retries=settings.sync_max_retries,
            retry_base_delay=settings.sync_retry_base_delay,
            feed_retry_delay=settings.realtime_retry_delay,
        ),
    )


def get_context(request: Request) -> AppContext:
    """Dependency returning the context attached during startup."""
    return request.app.state.context
