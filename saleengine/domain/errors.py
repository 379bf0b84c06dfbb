"""Error taxonomy for the allocation engine.

Validation, not-found and conflict errors are expected, recoverable outcomes
that callers report back to the user. ``StoreError`` wraps infrastructure
failures of the ledger store and ``ExternalServiceError`` wraps notifier
failures, which are logged per recipient and never abort a state transition.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all errors raised by the allocation engine."""


class ValidationError(EngineError):
    """Raised when a request carries a bad amount or missing identifiers."""


class InvalidBidError(ValidationError):
    """Raised when a bid is below the current minimum acceptable amount."""

    def __init__(self, amount: float, minimum: float) -> None:
        self.amount = amount
        self.minimum = minimum
        super().__init__(
            f"Bid of {amount:.2f} is too low; bid must be at least {minimum:.2f}"
        )


class NotAnAuctionError(ValidationError):
    """Raised when bidding on an item that is not part of an auction."""


class NotFoundError(EngineError):
    """Raised when an item, sale or line entry does not exist."""


class AuthorizationError(EngineError):
    """Raised when the caller does not own the sale it is trying to manage."""


class ConflictError(EngineError):
    """Raised when the current state of a resource forbids the request."""


class AuctionClosedError(ConflictError):
    """Raised when bidding on an item whose auction is no longer open."""


class BidSupersededError(ConflictError):
    """Raised when a concurrent bid moved the minimum past this bid."""

    def __init__(self, amount: float, minimum: float | None) -> None:
        self.amount = amount
        self.minimum = minimum
        if minimum is None:
            message = f"Bid of {amount:.2f} was superseded by a concurrent bid"
        else:
            message = (
                f"Bid of {amount:.2f} was superseded by a concurrent bid; "
                f"bid must now be at least {minimum:.2f}"
            )
        super().__init__(message)


class AlreadyStartedError(ConflictError):
    """Raised when starting the line of a sale whose line already started."""


class InvalidTransitionError(ConflictError):
    """Raised when a line entry cannot move to the requested status."""


class EmptyQueueError(ConflictError):
    """Raised when calling the next person while no one is waiting."""


class CallInProgressError(ConflictError):
    """Raised when calling the next person while someone is still called."""


class ExternalServiceError(EngineError):
    """Raised by notifier adapters when delivery fails."""


class StoreError(EngineError):
    """Raised when the ledger store fails at the infrastructure level."""


__all__ = [
    "AlreadyStartedError",
    "AuctionClosedError",
    "AuthorizationError",
    "BidSupersededError",
    "CallInProgressError",
    "ConflictError",
    "EmptyQueueError",
    "EngineError",
    "ExternalServiceError",
    "InvalidBidError",
    "InvalidTransitionError",
    "NotAnAuctionError",
    "NotFoundError",
    "StoreError",
    "ValidationError",
]
