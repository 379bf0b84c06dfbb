from .allocations import AllocationRepository
from .bids import BidRepository
from .items import ItemRepository
from .line_entries import LineEntryRepository
from .sales import SaleRepository
from .users import UserRepository

__all__ = [
    "AllocationRepository",
    "BidRepository",
    "ItemRepository",
    "LineEntryRepository",
    "SaleRepository",
    "UserRepository",
]
