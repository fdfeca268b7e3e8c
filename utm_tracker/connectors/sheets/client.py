"""UTM Tracker — Google Sheets API Client.

Thin async wrapper over the Sheets v4 REST API. Authenticates with a
service account through google-auth. The client does not retry; retries
are owned by the export mirror, so one failed append means one failed
attempt.
"""

import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import google.auth.transport.requests
import httpx
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from utm_tracker.core.exceptions import SheetsAPIError
from utm_tracker.core.logging import get_logger
from utm_tracker.export.base_sink import ExportSink

logger = get_logger("sheets.client")

SHEETS_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]
NEW_SHEET_ROWS = 1000

TokenProvider = Callable[[], Awaitable[str]]


class ServiceAccountTokenProvider:
    """Caches a service-account access token and refreshes it when expired."""

    def __init__(self, credentials_info: Dict[str, Any]):
        self._credentials = service_account.Credentials.from_service_account_info(
            credentials_info, scopes=SCOPES
        )
        self._lock = asyncio.Lock()

    async def __call__(self) -> str:
        async with self._lock:
            if not self._credentials.valid:
                try:
                    # google-auth refresh is blocking I/O
                    await asyncio.to_thread(
                        self._credentials.refresh,
                        google.auth.transport.requests.Request(),
                    )
                except GoogleAuthError as e:
                    raise SheetsAPIError(f"Google auth failed: {e}", 401) from e
                logger.info("🔑 Refreshed Google service account token")
        return self._credentials.token


def column_letter(index: int) -> str:
    """1-based column index → A1 letters (1 → A, 14 → N, 27 → AA)."""
    letters = ""
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def a1_range(sheet_name: str, cells: str) -> str:
    """Prefix a cell range with the sheet name, quoting it when needed."""
    if re.fullmatch(r"[A-Za-z0-9_]+", sheet_name):
        return f"{sheet_name}!{cells}"
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'!{cells}"


class SheetsClient(ExportSink):
    """Async client appending export rows to one sheet of one spreadsheet."""

    def __init__(
        self,
        spreadsheet_id: str,
        token_provider: TokenProvider,
        sheet_name: str = "Sheet1",
        column_count: int = 14,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.column_count = column_count
        self.token_provider = token_provider
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        body: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        token = await self.token_provider()
        client = await self._get_client()
        url = f"{SHEETS_BASE}/{self.spreadsheet_id}{path}"

        try:
            resp = await client.request(
                method,
                url,
                params=params,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as e:
            raise SheetsAPIError(f"Sheets request failed: {e}") from e

        if resp.is_error:
            error_msg = resp.text
            if resp.headers.get("content-type", "").startswith("application/json"):
                error_msg = resp.json().get("error", {}).get("message", error_msg)
            raise SheetsAPIError(
                f"Sheets API error {resp.status_code}: {error_msg}", resp.status_code
            )
        return resp.json() if resp.content else {}

    def _values_path(self, cells: str, suffix: str = "") -> str:
        return "/values/" + quote(a1_range(self.sheet_name, cells), safe="!:'") + suffix

    @property
    def _last_column(self) -> str:
        return column_letter(self.column_count)

    # ── Spreadsheet Structure ──

    async def get_spreadsheet(self) -> Dict[str, Any]:
        return await self._request("GET", "", params={"includeGridData": "false"})

    async def add_sheet(self) -> None:
        logger.info(f"🔄 Creating new sheet: {self.sheet_name}")
        await self._request(
            "POST",
            ":batchUpdate",
            body={
                "requests": [
                    {
                        "addSheet": {
                            "properties": {
                                "title": self.sheet_name,
                                "gridProperties": {
                                    "rowCount": NEW_SHEET_ROWS,
                                    "columnCount": self.column_count,
                                },
                            }
                        }
                    }
                ]
            },
        )

    async def get_header_row(self) -> List[str]:
        result = await self._request(
            "GET", self._values_path(f"A1:{self._last_column}1")
        )
        values = result.get("values") or []
        return [str(v) for v in values[0]] if values else []

    async def write_header_row(self, headers: List[str]) -> None:
        await self._request(
            "PUT",
            self._values_path(f"A1:{self._last_column}1"),
            params={"valueInputOption": "RAW"},
            body={"values": [headers]},
        )

    async def ensure_sheet(self, headers: List[str]) -> None:
        """Create the sheet if needed and make sure row 1 holds `headers`."""
        spreadsheet = await self.get_spreadsheet()
        title = spreadsheet.get("properties", {}).get("title", "")
        logger.info(f"✅ Accessing spreadsheet: \"{title}\"")

        sheet_titles = {
            s.get("properties", {}).get("title") for s in spreadsheet.get("sheets", [])
        }
        if self.sheet_name not in sheet_titles:
            await self.add_sheet()

        current = await self.get_header_row()
        if current != headers:
            if current:
                logger.warning(f"Header row mismatch, rewriting: {current}")
            else:
                logger.info("⏳ Setting up headers")
            await self.write_header_row(headers)

    # ── Rows ──

    async def append_rows(self, rows: List[List[str]]) -> str:
        """Append rows below the existing data and return the updated range."""
        result = await self._request(
            "POST",
            self._values_path(f"A:{self._last_column}", ":append"),
            params={
                "valueInputOption": "USER_ENTERED",
                "insertDataOption": "INSERT_ROWS",
            },
            body={"values": rows},
        )
        updated_range = result.get("updates", {}).get("updatedRange", "")
        logger.info(f"📊 Sheets update: {updated_range}")
        return updated_range
