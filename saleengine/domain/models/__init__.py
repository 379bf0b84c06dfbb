"""Domain models package.

This package contains domain model classes for Saleengine.
"""

from .bid import Allocation, AllocationStatus, Bid
from .item import DEFAULT_BID_INCREMENT, Item, ItemStatus
from .line_entry import LineEntry, LineEntryStatus
from .sale import Sale, Subscriber

__all__ = [
    "Allocation",
    "AllocationStatus",
    "Bid",
    "DEFAULT_BID_INCREMENT",
    "Item",
    "ItemStatus",
    "LineEntry",
    "LineEntryStatus",
    "Sale",
    "Subscriber",
]
