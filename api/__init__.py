"""API Package.

FastAPI server for the Stock Reconciliation Service.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
