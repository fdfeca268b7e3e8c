"""UTM Tracker — Phone Number Normalization."""

from typing import Optional

from utm_tracker.core.exceptions import MissingIdentifierError


def normalize_phone(raw: Optional[str], country_code: str = "91") -> str:
    """Return the phone with leading zeros stripped and the country code prefixed.

    WhatsApp senders arrive as bare digits ("9876543210", "09876543210") or
    already prefixed ("919876543210"). Raises MissingIdentifierError if
    nothing usable remains.
    """
    phone = (raw or "").strip().lstrip("+").lstrip("0")
    if not phone:
        raise MissingIdentifierError("phone_number")
    if not phone.startswith(country_code):
        phone = f"{country_code}{phone}"
    return phone
