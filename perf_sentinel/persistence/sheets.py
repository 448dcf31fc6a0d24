"""Tabular stores receiving one result row per audit.

The Google Sheets backend appends through the Sheets v4 values API with a
service-account key; the CSV backend appends to a local file and is meant
for development runs.
"""

import asyncio
import csv
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..audit.models import RESULT_COLUMNS
from ..errors import SinkWriteError

logger = logging.getLogger(__name__)

SINK_NAME = "tabular_store"

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


class TabularStore(ABC):
    """Append-only destination for result rows."""

    @abstractmethod
    async def append(self, row: Sequence[Any]) -> None:
        """Append one row.

        Raises:
            SinkWriteError: If the row could not be appended
        """
        pass


class GoogleSheetsTabularStore(TabularStore):
    """Appends rows to a Google Sheets range."""

    def __init__(
        self,
        spreadsheet_id: str,
        range: str = "2024!A1",
        credentials_path: Optional[Union[str, Path]] = None,
        value_input_option: str = "RAW",
        service=None,
    ):
        """Initialize the Sheets store.

        Args:
            spreadsheet_id: Destination spreadsheet
            range: Sheet name and row anchor in A1 notation
            credentials_path: Service-account key file
            value_input_option: How Sheets interprets appended values
            service: Prebuilt Sheets API resource (skips credential loading)
        """
        self.spreadsheet_id = spreadsheet_id
        self.range = range
        self.credentials_path = credentials_path
        self.value_input_option = value_input_option
        self._service = service

    def _get_service(self):
        if self._service is None:
            credentials = service_account.Credentials.from_service_account_file(
                str(self.credentials_path), scopes=SHEETS_SCOPES
            )
            self._service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return self._service

    def _append_sync(self, row: List[Any]) -> None:
        self._get_service().spreadsheets().values().append(
            spreadsheetId=self.spreadsheet_id,
            range=self.range,
            valueInputOption=self.value_input_option,
            body={"values": [row]},
        ).execute()

    async def append(self, row: Sequence[Any]) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._append_sync, list(row))
        except HttpError as e:
            raise SinkWriteError(f"Error saving data to Google Sheets: {e}", sink=SINK_NAME) from e
        except (OSError, ValueError) as e:
            # Credential file problems and transport errors
            raise SinkWriteError(f"Error saving data to Google Sheets: {e}", sink=SINK_NAME) from e

        logger.info("Data saved to Google Sheets")


class CsvTabularStore(TabularStore):
    """Appends rows to a local CSV file, writing the header on creation."""

    def __init__(self, path: Union[str, Path] = "results.csv", header: Sequence[str] = RESULT_COLUMNS):
        self.path = Path(path)
        self.header = list(header)

    def _append_sync(self, row: List[Any]) -> None:
        new_file = not self.path.exists()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'a', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            if new_file:
                writer.writerow(self.header)
            writer.writerow(row)

    async def append(self, row: Sequence[Any]) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._append_sync, list(row))
        except OSError as e:
            raise SinkWriteError(f"Error appending to {self.path}: {e}", sink=SINK_NAME) from e

        logger.info(f"Row appended to {self.path}")


def create_tabular_store(backend: str = "sheets", **kwargs) -> TabularStore:
    """Factory function to create tabular store backends.

    Args:
        backend: Store backend type ("sheets" or "csv")
        **kwargs: Backend-specific configuration

    Returns:
        Configured TabularStore instance
    """
    if backend.lower() == "sheets":
        return GoogleSheetsTabularStore(**kwargs)
    elif backend.lower() == "csv":
        return CsvTabularStore(**kwargs)
    else:
        raise ValueError(f"Unsupported tabular store backend: {backend}")
