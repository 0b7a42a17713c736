"""Funds ledger collaborator"""
from escrow_auction.core.ledger.funds import (
    FundsLedger,
    LedgerCheckpoint,
    TransferRecord,
)

__all__ = [
    "FundsLedger",
    "LedgerCheckpoint",
    "TransferRecord",
]
