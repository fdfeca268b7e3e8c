"""Unit tests for the Google Sheets client, against a mocked HTTP transport."""

import json

import httpx
import pytest

from utm_tracker.connectors.sheets.client import SheetsClient, a1_range, column_letter
from utm_tracker.core.exceptions import SheetsAPIError
from utm_tracker.export.rows import SHEET_HEADERS


async def _token() -> str:
    return "test-access-token"


class SheetsStub:
    """Minimal in-memory stand-in for the Sheets REST endpoints."""

    def __init__(self, sheets=("Sheet1",), header=None, append_status=200):
        self.sheets = list(sheets)
        self.header = header
        self.append_status = append_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.headers["Authorization"] == "Bearer test-access-token"
        path = request.url.path
        body = json.loads(request.content) if request.content else None

        if request.method == "GET" and path.endswith("/sheet-123"):
            return httpx.Response(
                200,
                json={
                    "properties": {"title": "Leads"},
                    "sheets": [{"properties": {"title": t}} for t in self.sheets],
                },
            )
        if request.method == "POST" and path.endswith(":batchUpdate"):
            self.sheets.append(body["requests"][0]["addSheet"]["properties"]["title"])
            return httpx.Response(200, json={"replies": [{}]})
        if request.method == "GET" and "/values/" in path:
            return httpx.Response(200, json={"values": [self.header]} if self.header else {})
        if request.method == "PUT" and "/values/" in path:
            self.header = body["values"][0]
            return httpx.Response(200, json={"updatedCells": len(self.header)})
        if request.method == "POST" and path.endswith(":append"):
            if self.append_status != 200:
                return httpx.Response(
                    self.append_status,
                    json={"error": {"message": "Quota exceeded for quota metric"}},
                )
            rows = body["values"]
            return httpx.Response(
                200, json={"updates": {"updatedRange": f"Sheet1!A2:N{1 + len(rows)}"}}
            )
        return httpx.Response(404, json={"error": {"message": "not found"}})


def _client(stub, sheet_name="Sheet1"):
    return SheetsClient(
        spreadsheet_id="sheet-123",
        sheet_name=sheet_name,
        token_provider=_token,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(stub)),
    )


def test_column_letter():
    assert column_letter(1) == "A"
    assert column_letter(14) == "N"
    assert column_letter(26) == "Z"
    assert column_letter(27) == "AA"


def test_a1_range_quotes_sheet_names():
    assert a1_range("Sheet1", "A1:N1") == "Sheet1!A1:N1"
    assert a1_range("Lead's Data", "A:N") == "'Lead''s Data'!A:N"


@pytest.mark.asyncio
async def test_ensure_sheet_creates_sheet_and_header():
    stub = SheetsStub(sheets=("Other",))
    client = _client(stub)

    await client.ensure_sheet(SHEET_HEADERS)

    assert "Sheet1" in stub.sheets
    assert stub.header == SHEET_HEADERS
    assert [r.method for r in stub.requests] == ["GET", "POST", "GET", "PUT"]
    assert stub.requests[-1].url.params["valueInputOption"] == "RAW"
    await client.close()


@pytest.mark.asyncio
async def test_ensure_sheet_leaves_matching_header_alone():
    stub = SheetsStub(header=list(SHEET_HEADERS))
    client = _client(stub)

    await client.ensure_sheet(SHEET_HEADERS)

    assert [r.method for r in stub.requests] == ["GET", "GET"]
    await client.close()


@pytest.mark.asyncio
async def test_ensure_sheet_rewrites_mismatched_header():
    stub = SheetsStub(header=["Timestamp", "Phone"])
    client = _client(stub)

    await client.ensure_sheet(SHEET_HEADERS)

    assert stub.header == SHEET_HEADERS
    await client.close()


@pytest.mark.asyncio
async def test_append_rows():
    stub = SheetsStub()
    client = _client(stub)

    updated = await client.append_rows([["a"] * 14, ["b"] * 14])

    assert updated == "Sheet1!A2:N3"
    request = stub.requests[0]
    assert request.url.params["valueInputOption"] == "USER_ENTERED"
    assert request.url.params["insertDataOption"] == "INSERT_ROWS"
    assert json.loads(request.content)["values"][1] == ["b"] * 14
    await client.close()


@pytest.mark.asyncio
async def test_append_rows_quota_error():
    client = _client(SheetsStub(append_status=429))

    with pytest.raises(SheetsAPIError) as exc_info:
        await client.append_rows([["a"] * 14])

    assert exc_info.value.status_code == 429
    assert exc_info.value.is_quota_error
    assert "Quota exceeded" in str(exc_info.value)
    await client.close()


@pytest.mark.asyncio
async def test_network_error_becomes_sheets_error():
    def fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = SheetsClient("sheet-123", _token, http_client=httpx.AsyncClient(transport=httpx.MockTransport(fail)))

    with pytest.raises(SheetsAPIError) as exc_info:
        await client.append_rows([["a"] * 14])

    assert exc_info.value.status_code == 0
    await client.close()
