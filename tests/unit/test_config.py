"""
Tests for configuration loading.
"""

import os
from pathlib import Path

import pytest

from escrow_auction.core.config import AuctionConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "ESCROW_AUCTION_ESCROW_ACCOUNT",
        "ESCROW_AUCTION_DEFAULT_DURATION",
        "ESCROW_AUCTION_DATA_DIR",
        "ESCROW_AUCTION_LOG_TO_FILE",
        "ESCROW_AUCTION_DB_NAME",
    ):
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    """Tests for AuctionConfig and load_config."""

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config.escrow_account == "escrow"
        assert config.default_duration == 3600
        assert config.log_to_file is False

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("ESCROW_AUCTION_ESCROW_ACCOUNT", "vault")
        monkeypatch.setenv("ESCROW_AUCTION_DEFAULT_DURATION", "60")
        monkeypatch.setenv("ESCROW_AUCTION_LOG_TO_FILE", "yes")
        monkeypatch.setenv("ESCROW_AUCTION_DATA_DIR", str(tmp_path / "data"))

        config = load_config()

        assert config.escrow_account == "vault"
        assert config.default_duration == 60
        assert config.log_to_file is True
        assert config.data_dir == tmp_path / "data"

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        env_file = tmp_path / "auction.env"
        env_file.write_text("ESCROW_AUCTION_DB_NAME=custom.db\n")

        try:
            config = load_config(str(env_file))
        finally:
            os.environ.pop("ESCROW_AUCTION_DB_NAME", None)

        assert config.db_name == "custom.db"

    def test_invalid_duration(self):
        with pytest.raises(ValueError):
            AuctionConfig(default_duration=0)

    def test_ensure_dirs(self, tmp_path):
        config = AuctionConfig(data_dir=tmp_path / "d", log_dir=tmp_path / "l", log_to_file=True)
        config.ensure_dirs()
        assert Path(config.data_dir).is_dir()
        assert Path(config.log_dir).is_dir()
