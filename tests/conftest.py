"""Shared fixtures: in-memory click store, settings and a fake Sheets sink."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from utm_tracker.attribution.engagement import EngagementUpdater
from utm_tracker.attribution.matcher import AttributionMatcher
from utm_tracker.config import Settings
from utm_tracker.core.exceptions import SheetsAPIError
from utm_tracker.database import build_engine, init_db
from utm_tracker.export.base_sink import ExportSink
from utm_tracker.models.click_models import ClickRecord
from utm_tracker.store.click_store import ClickStore


class FakeSink(ExportSink):
    """Records calls instead of talking to Google Sheets."""

    def __init__(self, fail_appends: int = 0, fail_ensures: int = 0, status_code: int = 503):
        self.spreadsheet_id = "sheet-123"
        self.sheet_name = "Sheet1"
        self.fail_appends = fail_appends
        self.fail_ensures = fail_ensures
        self.status_code = status_code
        self.ensure_calls = 0
        self.append_calls = 0
        self.appended: List[List[List[str]]] = []
        self.headers: List[str] = []

    async def ensure_sheet(self, headers: List[str]) -> None:
        self.ensure_calls += 1
        if self.fail_ensures:
            self.fail_ensures -= 1
            raise SheetsAPIError("Sheets unavailable", self.status_code)
        self.headers = list(headers)

    async def append_rows(self, rows: List[List[str]]) -> str:
        self.append_calls += 1
        if self.fail_appends:
            self.fail_appends -= 1
            raise SheetsAPIError("Sheets API error: backend error", self.status_code)
        self.appended.append(rows)
        return f"Sheet1!A2:N{1 + len(rows)}"


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        gallabox_token="test-token",
        whatsapp_number="919137279145",
        store_direct_messages=False,
        scheduler_enabled=False,
        realtime_sync_enabled=False,
        sync_retry_base_delay=0,
        realtime_retry_delay=0,
    )


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> ClickStore:
    return ClickStore(engine)


@pytest.fixture
def matcher(store) -> AttributionMatcher:
    return AttributionMatcher(store, store_direct_messages=False)


@pytest.fixture
def updater(store) -> EngagementUpdater:
    return EngagementUpdater(store)


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def make_click(store, now):
    """Insert a click record, `age` before now, with field overrides."""

    def _make(record_id: str, age: timedelta = timedelta(0), **fields: Any) -> ClickRecord:
        values: Dict[str, Any] = {
            "source": "facebook",
            "medium": "fb_ads",
            "campaign": "unknown",
            "content": "unknown",
            "placement": "unknown",
            "timestamp": now - age,
        }
        values.update(fields)
        record, _ = store.create_click(ClickRecord(id=record_id, **values))
        return record

    return _make
