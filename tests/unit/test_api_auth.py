"""Unit tests for webhook authentication."""

import pytest
from fastapi import HTTPException

from utm_tracker.api.auth import check_webhook_token, verify_gallabox_token
from utm_tracker.core.exceptions import AuthenticationFailure
from utm_tracker.core.secrets import RuntimeSecrets


class _Context:
    secrets = RuntimeSecrets(gallabox_token="test-secret")


def test_check_webhook_token_accepts_match():
    check_webhook_token("test-secret", "test-secret")


@pytest.mark.parametrize("provided", [None, "", "wrong-secret"])
def test_check_webhook_token_rejects(provided):
    with pytest.raises(AuthenticationFailure):
        check_webhook_token(provided, "test-secret")


@pytest.mark.asyncio
async def test_verify_gallabox_token_success():
    assert await verify_gallabox_token("test-secret", _Context()) is None


@pytest.mark.asyncio
async def test_verify_gallabox_token_invalid():
    with pytest.raises(HTTPException) as exc_info:
        await verify_gallabox_token("wrong-secret", _Context())

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Invalid token"
