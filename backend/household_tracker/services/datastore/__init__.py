# backend/household_tracker/services/datastore/__init__.py
"""
Spreadsheet datastore access.

- base: TabularDatastoreBase with retry policy
- sheets: Google Sheets values API implementation
- gated: Cache-first, rate-gated reader used by the engine
"""

from household_tracker.services.datastore.base import TabularDatastoreBase
from household_tracker.services.datastore.gated import GatedRangeReader, RangeSnapshot
from household_tracker.services.datastore.sheets import GoogleSheetsDatastore

__all__ = [
    "TabularDatastoreBase",
    "GoogleSheetsDatastore",
    "GatedRangeReader",
    "RangeSnapshot",
]
