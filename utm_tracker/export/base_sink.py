"""UTM Tracker — Abstract Export Sink."""

from abc import ABC, abstractmethod
from typing import List


class ExportSink(ABC):
    """Tabular destination for engaged click records.

    The mirror only relies on two calls: make sure the target table and its
    header row exist, then append a batch of rows in one request.
    """

    spreadsheet_id: str = ""
    sheet_name: str = ""

    @abstractmethod
    async def ensure_sheet(self, headers: List[str]) -> None:
        """Create the target sheet if missing and make row 1 equal `headers`."""
        ...

    @abstractmethod
    async def append_rows(self, rows: List[List[str]]) -> str:
        """Append rows in a single call.

        Returns:
            The range the sink reports as written. Any exception means the
            append was not confirmed.
        """
        ...
