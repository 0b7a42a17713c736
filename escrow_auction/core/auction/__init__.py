"""
Escrow Auction Module.

This module provides the auction state machine:
- Deposit registration
- Strictly increasing bids inside a time window
- Organizer finalization
- Refunds and winner settlement
"""

from escrow_auction.core.auction.events import (
    AuctionEvent,
    EventLog,
    EventType,
)

from escrow_auction.core.auction.params import (
    AuctionParams,
    build_params,
)

from escrow_auction.core.auction.state_machine import (
    AuctionStateMachine,
    AuctionRecord,
    AuctionSnapshot,
    AuctionPhase,
    RefundReport,
    RefundFailure,
    DEFAULT_ESCROW_ACCOUNT,
)

__all__ = [
    # Events
    "AuctionEvent",
    "EventLog",
    "EventType",
    # Params
    "AuctionParams",
    "build_params",
    # State machine
    "AuctionStateMachine",
    "AuctionRecord",
    "AuctionSnapshot",
    "AuctionPhase",
    "RefundReport",
    "RefundFailure",
    "DEFAULT_ESCROW_ACCOUNT",
]
