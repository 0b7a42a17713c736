"""
Configuration parameters for the escrow auction.

Defines storage locations, the escrow account name and CLI defaults.
Values can be overridden through ESCROW_AUCTION_* environment variables,
optionally loaded from a .env file.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "ESCROW_AUCTION_"


@dataclass
class AuctionConfig:
    """Runtime configuration"""

    # Settlement
    escrow_account: str = "escrow"  # Ledger account holding deposits

    # CLI defaults
    default_duration: int = 3600  # Bidding window length in seconds

    # Storage
    db_name: str = "auction.db"

    # Logging
    log_to_file: bool = False

    # Paths
    data_dir: Path = Path("~/.escrow_auction")
    log_dir: Path = Path("logs")

    def __post_init__(self):
        self.data_dir = Path(self.data_dir).expanduser()
        self.log_dir = Path(self.log_dir).expanduser()
        if self.default_duration <= 0:
            raise ValueError(f"default_duration must be positive, got {self.default_duration}")

    def ensure_dirs(self):
        """Create necessary directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        if self.log_to_file:
            self.log_dir.mkdir(exist_ok=True, parents=True)


def _coerce(raw: str, target):
    if target is bool:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if target is int:
        return int(raw)
    if target is Path:
        return Path(raw)
    return raw


def load_config(env_file: Optional[str] = None) -> AuctionConfig:
    """
    Load configuration from the environment.

    Args:
        env_file: Optional path to a .env file. Without it, a .env in the
            working directory is picked up if present.

    Returns:
        AuctionConfig instance
    """
    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    overrides = {}
    for f in fields(AuctionConfig):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        target = f.type if isinstance(f.type, type) else type(f.default)
        overrides[f.name] = _coerce(raw, target)

    return AuctionConfig(**overrides)
