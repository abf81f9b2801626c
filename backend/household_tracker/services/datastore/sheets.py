# backend/household_tracker/services/datastore/sheets.py
"""
Google Sheets values API datastore.

Reads ranges with an API key:

    GET {api_url}/{sheet_id}/values/{range}?key={api_key}

and returns the `values` array (absent when the range is empty).

Status mapping:
    200            -> rows
    400, 404       -> RangeNotFoundError (bad A1 notation or unknown sheet)
    401, 403       -> DatastoreError (credentials; not retryable)
    429            -> RateLimitError (Retry-After honoured when present)
    5xx / network  -> DatastoreUnavailableError (retried by the base class)
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from household_tracker.services.datastore.base import TabularDatastoreBase
from household_tracker.services.exceptions import (
    DatastoreError,
    DatastoreUnavailableError,
    RangeNotFoundError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


class GoogleSheetsDatastore(TabularDatastoreBase):
    """
    Read-only Google Sheets datastore over httpx.

    Args:
        sheet_id: Spreadsheet identifier
        api_key: API key with read access
        api_url: Base URL of the values API
        timeout: Per-request timeout in seconds
        client: Shared AsyncClient (tests pass one with a MockTransport).
                When omitted a short-lived client is opened per read.

    Example:
        store = GoogleSheetsDatastore(sheet_id="abc", api_key="key")
        rows = await store.read_range("Sheet1!A1:D1000")
    """

    def __init__(
            self,
            sheet_id: str,
            api_key: str,
            api_url: str = "https://sheets.googleapis.com/v4/spreadsheets",
            timeout: float = 10.0,
            client: httpx.AsyncClient | None = None,
    ) -> None:
        self._sheet_id = sheet_id
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "google-sheets"

    def _url(self, range_id: str) -> str:
        return f"{self._api_url}/{self._sheet_id}/values/{quote(range_id, safe='')}"

    async def _fetch_range(self, range_id: str) -> list[list[str]]:
        url = self._url(range_id)
        params = {"key": self._api_key}

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.RequestError as e:
            raise DatastoreUnavailableError(range_id, reason=f"{type(e).__name__}: {e}") from e

        self._raise_for_status(response, range_id)

        payload: dict[str, Any] = response.json()
        return _normalize_rows(payload.get("values") or [])

    @staticmethod
    def _raise_for_status(response: httpx.Response, range_id: str) -> None:
        status = response.status_code
        if status == 200:
            return
        if status == 429:
            raise RateLimitError("datastore", retry_after=_parse_retry_after(response))
        if status in (400, 404):
            raise RangeNotFoundError(range_id)
        if status in (401, 403):
            raise DatastoreError(
                f"Datastore rejected credentials for '{range_id}' (HTTP {status})",
                range_id=range_id,
            )
        if status >= 500:
            raise DatastoreUnavailableError(range_id, reason=f"HTTP {status}")
        raise DatastoreError(
            f"Unexpected HTTP {status} reading '{range_id}'",
            range_id=range_id,
        )


def _normalize_rows(values: list[list[Any]]) -> list[list[str]]:
    """Coerce every cell to text; the API may hand back numbers for unformatted cells."""
    return [
        ["" if cell is None else str(cell) for cell in row]
        for row in values
    ]


def _parse_retry_after(response: httpx.Response) -> int | None:
    header = response.headers.get("Retry-After")
    if header is None:
        return None
    try:
        return max(0, int(float(header)))
    except ValueError:
        logger.debug(f"Ignoring non-numeric Retry-After header: {header!r}")
        return None
