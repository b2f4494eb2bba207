"""
tests/test_cli.py -- Tests for the main.py command line.

Covers:
  - seed creates the administrator once against a file database
  - purge-otps reports the number of removed challenges
  - a subcommand is required
"""

from __future__ import annotations

import pytest

import main
from auth.models import OTPPurpose
from auth.store import CredentialStore
from core.config import get_settings


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(get_settings(), "database_url", url)
    return url


def test_seed_twice(db_url, capsys):
    """The second seed run reports the administrator as existing."""
    assert main.main(["seed"]) == 0
    assert "admin created: yes" in capsys.readouterr().out
    assert main.main(["seed"]) == 0
    assert "admin created: no (exists)" in capsys.readouterr().out


def test_purge_otps(db_url, capsys):
    """purge-otps removes used challenges and prints the count."""
    store = CredentialStore(db_url)
    account = store.create_account("ada@org.edu", "hash", "Ada", "Lovelace")
    _, challenge = store.create_otp_challenge(account.id, OTPPurpose.LOGIN)
    store.mark_otp_used(challenge.id)
    store.close()

    assert main.main(["purge-otps"]) == 0
    assert "Purged 1 expired or used OTP challenge(s)." in capsys.readouterr().out


def test_command_required():
    """Running without a subcommand is a usage error."""
    with pytest.raises(SystemExit) as excinfo:
        main.main([])
    assert excinfo.value.code == 2
