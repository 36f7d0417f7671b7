"""
API module for the civic data layer.

Provides the HTTP interface (FastAPI). Routes are thin: validation of
domain rules happens in the ledger and workflows, and data-layer errors are
mapped to status codes in one place.

How to change safely:
    - Add new routes rather than changing the shape of existing responses
    - Keep error-to-status mapping in ERROR_STATUS
"""

from .http_server import ERROR_STATUS, create_app, router, status_for
from .settings import Settings

__all__ = [
    "ERROR_STATUS",
    "Settings",
    "create_app",
    "router",
    "status_for",
]
