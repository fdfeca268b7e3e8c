"""Unit tests for Gallabox webhook payload parsing."""

import pytest

from utm_tracker.connectors.gallabox.payload import (
    channel_digits,
    extract_message_text,
    parse_inbound_message,
)
from utm_tracker.core.exceptions import MissingIdentifierError


def _event(**overrides):
    event = {
        "channelNumber": "+91 91372 79145",
        "contactId": "ct-1",
        "conversationId": "cv-1",
        "contact": {"id": "ct-contact", "name": "Asha"},
        "whatsapp": {"from": "09876543210", "text": {"body": "Hi, I saw your ad"}},
    }
    event.update(overrides)
    return event


def test_parse_inbound_message():
    message = parse_inbound_message(_event())

    assert message.phone_number == "919876543210"
    assert message.contact_id == "ct-1"
    assert message.conversation_id == "cv-1"
    assert message.contact_name == "Asha"
    assert message.message_text == "Hi, I saw your ad"
    assert message.channel_number == "919137279145"
    assert message.context_token is None
    assert message.received_at.tzinfo is not None


def test_contact_id_falls_back_to_contact_object():
    event = _event()
    del event["contactId"]

    assert parse_inbound_message(event).contact_id == "ct-contact"


def test_context_is_carried_through():
    assert parse_inbound_message(_event(context="eyJzZXNzaW9uX2lkIjogInMxIn0=")).context_token == (
        "eyJzZXNzaW9uX2lkIjogInMxIn0="
    )


def test_missing_phone_raises():
    with pytest.raises(MissingIdentifierError):
        parse_inbound_message(_event(whatsapp={"text": {"body": "hello"}}))


@pytest.mark.parametrize(
    "whatsapp, expected",
    [
        ({"text": {"body": "  plain  "}}, "plain"),
        ({"interactive": {"list_reply": {"title": "Pricing"}}}, "Pricing"),
        ({"interactive": {"button_reply": {"title": "Call me"}}}, "Call me"),
        ({"button": {"text": "Yes"}}, "Yes"),
        ({"image": {"id": "media-1"}}, None),
    ],
)
def test_extract_message_text(whatsapp, expected):
    assert extract_message_text({"whatsapp": whatsapp}) == expected


def test_channel_digits():
    assert channel_digits({"channelNumber": "+91 91372-79145"}) == "919137279145"
    assert channel_digits({}) == ""
