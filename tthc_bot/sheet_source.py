from __future__ import annotations

"""Google Sheets access for the procedure catalog."""

import logging
from typing import List, Optional, Sequence, Tuple

import google.auth
import gspread
import requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials

from .catalog import SourceUnavailable

logger = logging.getLogger("tthc.sheet")

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]


def build_range(sheet_name: str, cell_range: str) -> str:
    """Join a worksheet title and an A1 span into a values range ("TTHC!A1:Q")."""
    sheet_name = (sheet_name or "").strip()
    cell_range = (cell_range or "").strip()
    if not sheet_name:
        return cell_range
    if not cell_range:
        return sheet_name
    return f"{sheet_name}!{cell_range}"


class SheetSource:
    """Read-only view of one spreadsheet range, returning header + data rows."""

    def __init__(
        self,
        spreadsheet_id: str,
        range_name: str,
        credentials_file: Optional[str] = None,
    ) -> None:
        """Purpose: Configure the spreadsheet id, range and credentials location.
        Inputs/Outputs: Inputs are the spreadsheet id, A1 range and an optional service
            account key path; no return value.
        Side Effects / State: None; authorization happens on the first get_rows().
        Dependencies: gspread and google-auth.
        Failure Modes: None at init, so the app can import without credentials.
        If Removed: The catalog cache has nothing to load from.
        Testing Notes: Patch _client() to return a fake gspread client.
        """
        self._spreadsheet_id = (spreadsheet_id or "").strip()
        self._range_name = range_name
        self._credentials_file = credentials_file
        self._gc: Optional[gspread.Client] = None

    def get_rows(self) -> Tuple[List[str], List[List[str]]]:
        """Purpose: Fetch the current values of the configured range.
        Inputs/Outputs: No inputs; returns (header, rows) with string cells.
        Side Effects / State: Authorizes and caches a gspread client on first use.
        Dependencies: gspread Spreadsheet.values_get.
        Failure Modes: Any API, auth or transport error raises SourceUnavailable.
        If Removed: Catalog refreshes cannot reach the spreadsheet.
        Testing Notes: An empty "values" payload yields ([], []).
        """
        if not self._spreadsheet_id:
            raise SourceUnavailable("SHEET_ID is not configured")
        try:
            spreadsheet = self._client().open_by_key(self._spreadsheet_id)
            payload = spreadsheet.values_get(self._range_name)
        except (
            gspread.exceptions.GSpreadException,
            GoogleAuthError,
            requests.RequestException,
            OSError,
            ValueError,
        ) as exc:
            logger.warning("sheet read failed range=%s error=%s", self._range_name, exc)
            self._gc = None
            raise SourceUnavailable(f"cannot read sheet range {self._range_name}: {exc}") from exc

        values: Sequence[Sequence[object]] = payload.get("values") or []
        if not values:
            return [], []
        header = [str(cell) for cell in values[0]]
        rows = [[str(cell) for cell in row] for row in values[1:]]
        logger.debug("sheet read range=%s rows=%s", self._range_name, len(rows))
        return header, rows

    def _client(self) -> gspread.Client:
        if self._gc is None:
            if self._credentials_file:
                credentials = Credentials.from_service_account_file(self._credentials_file, scopes=SCOPES)
            else:
                credentials, _ = google.auth.default(scopes=SCOPES)
            self._gc = gspread.authorize(credentials)
        return self._gc
