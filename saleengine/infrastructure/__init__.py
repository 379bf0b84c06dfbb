"""Infrastructure layer for Saleengine.

Holds adapters for persistence (the SQLite ledger store), notification
delivery and observability.
"""

from . import db, notifications, observability

__all__ = ["db", "notifications", "observability"]
