"""
CLI tests driven through click's CliRunner.
"""

import pytest
from click.testing import CliRunner

from escrow_auction.cli.main import cli


T0 = 3_000_000


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, tmp_path):
    data_dir = str(tmp_path / "data")

    def _invoke(*args):
        return runner.invoke(cli, ["--data-dir", data_dir, *args])

    return _invoke


def test_demo(invoke):
    result = invoke("demo")
    assert result.exit_code == 0, result.output
    assert "Demo complete" in result.output
    assert "organizer receives 90" in result.output


def test_show_without_auction(invoke):
    result = invoke("show")
    assert result.exit_code == 1
    assert "No auction found" in result.output


def test_cli_lifecycle(invoke):
    assert invoke("fund", "alice", "500").exit_code == 0
    assert invoke("fund", "bob", "500").exit_code == 0

    result = invoke(
        "create", "--lot", "Clock", "--organizer", "org", "--start-price", "100",
        "--start", str(T0), "--end", str(T0 + 3600), "--at", str(T0),
    )
    assert result.exit_code == 0, result.output
    assert "Auction created: Clock" in result.output

    assert invoke("deposit", "alice", "50", "--at", str(T0)).exit_code == 0
    assert invoke("bid", "alice", "80", "--at", str(T0 + 10)).exit_code == 0
    assert invoke("deposit", "bob", "30", "--at", str(T0 + 20)).exit_code == 0

    result = invoke("bid", "bob", "80", "--at", str(T0 + 30))
    assert result.exit_code == 1
    assert "BID_TOO_LOW" in result.output

    assert invoke("bid", "bob", "90", "--at", str(T0 + 40)).exit_code == 0

    result = invoke("finalize", "alice", "--at", str(T0 + 3601))
    assert result.exit_code == 1
    assert "NOT_AUTHORIZED" in result.output

    result = invoke("finalize", "org", "--at", str(T0 + 3601))
    assert result.exit_code == 0
    assert "Winner: bob" in result.output

    result = invoke("refund", "org", "--at", str(T0 + 3602))
    assert result.exit_code == 0
    assert "Refunded 50 to alice" in result.output

    result = invoke("pay", "bob", "61", "--at", str(T0 + 3603))
    assert result.exit_code == 1
    assert "INCORRECT_AMOUNT" in result.output

    result = invoke("pay", "bob", "60", "--at", str(T0 + 3603))
    assert result.exit_code == 0
    assert "org received 90" in result.output

    result = invoke("show", "--events", "--at", str(T0 + 3604))
    assert result.exit_code == 0
    assert "Phase: FINALIZED" in result.output
    assert "org: 90" in result.output
    assert "alice: 500" in result.output
    assert "DepositReturned" in result.output


def test_create_twice_requires_force(invoke):
    args = ["create", "--lot", "Clock", "--organizer", "org",
            "--start", str(T0), "--duration", "60", "--at", str(T0)]
    assert invoke(*args).exit_code == 0

    result = invoke(*args)
    assert result.exit_code == 1
    assert "already exists" in result.output

    assert invoke(*args, "--force").exit_code == 0


def test_create_invalid_window(invoke):
    result = invoke(
        "create", "--lot", "Clock", "--organizer", "org",
        "--start", str(T0 + 10), "--end", str(T0), "--at", str(T0),
    )
    assert result.exit_code == 1
    assert "CONFIGURATION_ERROR" in result.output
