"""Unit tests for phone normalization and context-token decoding."""

import base64

import pytest

from utm_tracker.attribution.context_token import decode_context_token, encode_context_token
from utm_tracker.attribution.phone import normalize_phone
from utm_tracker.core.exceptions import MissingIdentifierError, ValidationFailure


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9876543210", "919876543210"),
        ("09876543210", "919876543210"),
        ("919876543210", "919876543210"),
        ("+919876543210", "919876543210"),
        (" 9876543210 ", "919876543210"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_phone_custom_country_code():
    assert normalize_phone("5551234567", country_code="1") == "15551234567"


@pytest.mark.parametrize("raw", [None, "", "   ", "000"])
def test_normalize_phone_missing(raw):
    with pytest.raises(MissingIdentifierError) as exc_info:
        normalize_phone(raw)
    assert isinstance(exc_info.value, ValidationFailure)
    assert exc_info.value.field == "phone_number"


def test_decode_context_token():
    token = encode_context_token(
        {"session_id": "wa-1-abc", "source": "instagram", "campaign": "summer"}
    )
    assert decode_context_token(token) == {
        "session_id": "wa-1-abc",
        "source": "instagram",
        "campaign": "summer",
    }


def test_decode_context_token_without_padding():
    token = encode_context_token({"session_id": "s"}).rstrip("=")
    assert decode_context_token(token) == {"session_id": "s"}


@pytest.mark.parametrize(
    "token",
    [
        "not base64 at all!",
        base64.b64encode(b"{broken json").decode(),
        base64.b64encode(b"\xff\xfe\xfd").decode(),
        base64.b64encode(b"[1, 2, 3]").decode(),
    ],
)
def test_decode_context_token_malformed_returns_none(token):
    assert decode_context_token(token) is None


def test_decode_context_token_absent():
    assert decode_context_token(None) is None
    assert decode_context_token("") is None
