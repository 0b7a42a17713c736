"""
Auction errors.

Every rejection raised by the state machine derives from AuctionError and
carries a stable ``code`` so callers (CLI, persistence, tests) can branch on
the kind without matching message text.
"""

from typing import Optional


class AuctionError(Exception):
    """Base class for all auction rejections."""

    code = "AUCTION_ERROR"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigurationError(AuctionError):
    """Invalid creation parameters."""
    code = "CONFIGURATION_ERROR"


class InvalidAmount(AuctionError):
    """Amount is not a positive integer in range."""
    code = "INVALID_AMOUNT"


class AlreadyRegistered(AuctionError):
    """Caller already holds a deposit."""
    code = "ALREADY_REGISTERED"


class AuctionNotActive(AuctionError):
    """Bid outside [start_time, end_time]."""
    code = "AUCTION_NOT_ACTIVE"


class NoDeposit(AuctionError):
    """Caller has no non-zero deposit."""
    code = "NO_DEPOSIT"


class BidTooLow(AuctionError):
    """Bid does not strictly exceed the current maximum."""
    code = "BID_TOO_LOW"


class NotAuthorized(AuctionError):
    """Caller may not perform this operation."""
    code = "NOT_AUTHORIZED"


class AuctionNotEnded(AuctionError):
    """Operation requires now > end_time."""
    code = "AUCTION_NOT_ENDED"


class NotTheWinner(AuctionError):
    """Caller is not the current winner."""
    code = "NOT_THE_WINNER"


class IncorrectAmount(AuctionError):
    """Payment differs from max_bid minus the winner's deposit."""
    code = "INCORRECT_AMOUNT"


class TransferFailed(AuctionError):
    """The funds ledger rejected a transfer."""
    code = "TRANSFER_FAILED"

    def __init__(
        self,
        message: str = "",
        sender: Optional[str] = None,
        recipient: Optional[str] = None,
        amount: Optional[int] = None,
    ):
        super().__init__(message, sender=sender, recipient=recipient, amount=amount)
        self.sender = sender
        self.recipient = recipient
        self.amount = amount



class PersistenceFailed(AuctionError):
    """State could not be saved; the operation was rolled back."""
    code = "PERSISTENCE_FAILED"
