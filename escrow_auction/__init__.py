"""
Escrow Auction

A single ascending auction with mandatory escrow deposits:
- Deposit registration before bidding
- Strictly increasing bids inside a time window
- Organizer finalization
- Refund of losing deposits and settlement by the winner
"""

__version__ = "0.1.0"
