"""Service layer modules for Saleengine."""

from .base import BaseService, ConnectionFactory, sqlite_connection_factory
from .bidding import BidLedger
from .line_queue import LineQueue, LineStartResult
from .notifications import (
    Notification,
    NotificationBatchResult,
    NotificationDispatcher,
    NotificationResult,
)
from .queue_controller import QueueController
from .settlement import AuctionSettlementScheduler, SettlementReport, SoldItem
from .settlement_runner import SettlementRunner, SettlementRunnerState

__all__ = [
    "AuctionSettlementScheduler",
    "BaseService",
    "BidLedger",
    "ConnectionFactory",
    "LineQueue",
    "LineStartResult",
    "Notification",
    "NotificationBatchResult",
    "NotificationDispatcher",
    "NotificationResult",
    "QueueController",
    "SettlementReport",
    "SettlementRunner",
    "SettlementRunnerState",
    "SoldItem",
    "sqlite_connection_factory",
]
