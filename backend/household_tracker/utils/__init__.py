# backend/household_tracker/utils/__init__.py
"""
Cross-cutting utilities.

- logging: Logging setup with correlation ID support
- context: Request context (correlation IDs)
- date_utils: Timezone-aware calendar helpers

Usage:
    from household_tracker.utils import setup_logging
    from household_tracker.utils import get_correlation_id, set_correlation_id
"""

from household_tracker.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
)
from household_tracker.utils.logging import setup_logging

__all__ = [
    "setup_logging",
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
]
