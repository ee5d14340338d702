"""
Record sources for the transaction grid.

Each source returns the raw grid (header row first). Failures and empty
results surface as DataSourceError so the request can be failed cleanly.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from sales_insights.core.exceptions import DataSourceError, ParseWarning
from sales_insights.core.models import TransactionRecord
from sales_insights.data.records import RecordParser

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]


class RecordSource(ABC):
    """Base interface for transaction record sources."""

    def __init__(self, business_tz: Optional[str] = None):
        self.business_tz = business_tz
        self.last_warnings: List[ParseWarning] = []

    @abstractmethod
    def fetch_grid(self) -> List[List[str]]:
        """
        Fetch the raw grid.

        Returns:
            Header row followed by data rows

        Raises:
            DataSourceError: If the fetch fails or returns no data rows
        """
        pass

    def fetch_records(self) -> List[TransactionRecord]:
        """
        Fetch the grid and parse it into transaction records.

        Parse problems of the last fetch are kept in last_warnings.
        """
        grid = self.fetch_grid()
        if len(grid) <= 1:
            raise DataSourceError("No data found in record source")
        parser = RecordParser(business_tz=self.business_tz)
        records = parser.parse_grid(grid)
        self.last_warnings = parser.warnings
        return records


class InMemoryRecordSource(RecordSource):
    """Source backed by a grid held in memory."""

    def __init__(self, grid: Sequence[Sequence[Any]], business_tz: Optional[str] = None):
        super().__init__(business_tz)
        self.grid = [list(row) for row in grid]

    def fetch_grid(self) -> List[List[str]]:
        return [list(row) for row in self.grid]


class CsvRecordSource(RecordSource):
    """Source reading a CSV export of the transaction log."""

    def __init__(self, file_path: str, business_tz: Optional[str] = None):
        """
        Initialize CsvRecordSource.

        Args:
            file_path: Path to the CSV file
            business_tz: Timezone aware timestamps are converted to
        """
        super().__init__(business_tz)
        if not file_path or not isinstance(file_path, str):
            raise ValueError("file_path must be a non-empty string")
        self.file_path = file_path

    def fetch_grid(self) -> List[List[str]]:
        if not os.path.exists(self.file_path):
            raise DataSourceError(f"File not found: {self.file_path}")

        try:
            # Everything as text; the record parser owns type conversion
            df = pd.read_csv(self.file_path, dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            raise DataSourceError(f"CSV file is empty: {self.file_path}")
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise DataSourceError(
                f"Failed to parse CSV file '{self.file_path}'. "
                f"The file may be corrupted or not in valid CSV format. Error: {str(e)}"
            )

        grid = [list(df.columns)] + df.values.tolist()
        logger.info(f"Loaded CSV '{self.file_path}' with {len(df)} rows")
        return grid


class GoogleSheetsRecordSource(RecordSource):
    """Source reading the transaction log from a Google Sheets spreadsheet."""

    def __init__(
        self,
        spreadsheet_id: str,
        credentials_info: Dict[str, str],
        sheet_range: str = "Sheet1!A1:I10001",
        business_tz: Optional[str] = None,
        service=None
    ):
        """
        Initialize GoogleSheetsRecordSource.

        Args:
            spreadsheet_id: Spreadsheet to read
            credentials_info: Service account fields (client_email, private_key, project_id)
            sheet_range: A1 range holding the header and data rows
            business_tz: Timezone aware timestamps are converted to
            service: Prebuilt Sheets service; built from credentials_info when None
        """
        super().__init__(business_tz)
        self.spreadsheet_id = spreadsheet_id
        self.sheet_range = sheet_range
        self.credentials_info = credentials_info
        self._service = service

    def _build_service(self):
        from google.oauth2 import service_account
        from googleapiclient.discovery import build

        info = {
            "type": "service_account",
            "token_uri": "https://oauth2.googleapis.com/token",
            **self.credentials_info,
        }
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=SHEETS_SCOPES
        )
        return build("sheets", "v4", credentials=credentials, cache_discovery=False)

    def fetch_grid(self) -> List[List[str]]:
        from googleapiclient.errors import HttpError

        try:
            if self._service is None:
                self._service = self._build_service()
            logger.info(f"Fetching spreadsheet data from range {self.sheet_range}")
            response = self._service.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=self.sheet_range
            ).execute()
        except (HttpError, OSError, ValueError) as e:
            logger.error(f"Spreadsheet fetch failed: {e}")
            raise DataSourceError(f"Failed to fetch spreadsheet data: {e}") from e

        values = response.get("values")
        if not values:
            raise DataSourceError("No data found in spreadsheet")
        return values
