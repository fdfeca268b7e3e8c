"""Unit tests for the click record to sheet row projection."""

from datetime import datetime, timedelta, timezone

from utm_tracker.export.rows import SHEET_HEADERS, format_timestamp, to_sheet_row
from utm_tracker.models.click_models import ClickRecord

CLICKED = datetime(2025, 1, 31, 9, 15, 2, 120000, tzinfo=timezone.utc)


def test_headers():
    assert len(SHEET_HEADERS) == 14
    assert SHEET_HEADERS[0] == "Timestamp"
    assert SHEET_HEADERS[-1] == "Last Message"


def test_format_timestamp():
    assert format_timestamp(CLICKED) == "2025-01-31T09:15:02.120Z"
    # Naive values from SQLite are UTC
    assert format_timestamp(CLICKED.replace(tzinfo=None)) == "2025-01-31T09:15:02.120Z"


def test_full_row():
    record = ClickRecord(
        id="s1",
        source="instagram",
        medium="paid",
        campaign="summer",
        content="video",
        placement="reels",
        phone_number="919876543210",
        has_engaged=True,
        engaged_at=CLICKED,
        click_time=CLICKED,
        attribution_source="gallabox_id_match",
        contact_id="ct-1",
        conversation_id="cv-1",
        contact_name="Asha",
        last_message="Hi there",
    )

    assert to_sheet_row(record) == [
        "2025-01-31T09:15:02.120Z",
        "919876543210",
        "instagram",
        "paid",
        "summer",
        "video",
        "reels",
        "✅ YES",
        "2025-01-31T09:15:02.120Z",
        "gallabox_id_match",
        "ct-1",
        "cv-1",
        "Asha",
        "Hi there",
    ]


def test_platform_params_take_precedence():
    record = ClickRecord(
        id="s1",
        source="facebook",
        campaign="unknown",
        original_params={
            "CampaignSource": "meta",
            "source": "fb",
            "Campaign Name": "Diwali",
            "Ad_Name": "carousel",
            "AdSetName": "",
        },
        medium="fb_ads",
        timestamp=CLICKED,
    )

    row = to_sheet_row(record)

    assert row[2] == "meta"
    assert row[3] == "fb_ads"
    assert row[4] == "Diwali"
    assert row[5] == "carousel"


def test_defaults_for_missing_values():
    record = ClickRecord(
        id="s1",
        source="",
        medium="",
        campaign="",
        content="",
        placement="",
        attribution_source="",
        timestamp=CLICKED,
    )

    row = to_sheet_row(record)

    assert row[0] == "2025-01-31T09:15:02.120Z"
    assert row[1:] == [
        "N/A",
        "direct",
        "organic",
        "none",
        "none",
        "N/A",
        "❌ NO",
        "N/A",
        "unknown",
        "N/A",
        "N/A",
        "Anonymous",
        "No text content",
    ]


def test_last_message_is_truncated_and_flattened():
    record = ClickRecord(id="s1", last_message="line one\r\nline two\n" + "x" * 200)

    text = to_sheet_row(record)[-1]

    assert text.startswith("line one line two ")
    assert "\n" not in text
    assert len(text) <= 150


def test_stored_click_time_offset_exports_as_utc(store):
    ist = timezone(timedelta(hours=5, minutes=30))
    store.create_click(ClickRecord(id="tz1", click_time=datetime(2025, 1, 1, 10, 0, tzinfo=ist)))

    assert to_sheet_row(store.get("tz1"))[0] == "2025-01-01T04:30:00.000Z"
