# tests/conftest.py

import pytest

from passman.crypto import CryptoManager
from passman.models import CredentialEntry


@pytest.fixture(autouse=True)
def fast_kdf(mocker):
    """
    Keep key derivation cheap: the production Argon2id/PBKDF2 costs would make
    every seal/unseal take a noticeable fraction of a second.
    """
    mocker.patch.object(CryptoManager, "ARGON2_TIME_COST", 1)
    mocker.patch.object(CryptoManager, "ARGON2_MEMORY_COST", 8)
    mocker.patch.object(CryptoManager, "ARGON2_PARALLELISM", 1)
    mocker.patch.object(CryptoManager, "PBKDF2_ITERATIONS", 1000)


@pytest.fixture
def vault_path(tmp_path):
    return str(tmp_path / "vault" / "credentials.json.enc")


@pytest.fixture
def direct_entry():
    return CredentialEntry(
        website="GitHub",
        email="alice@example.com",
        username="alice",
        password="hunter2",
        added="2024-01-02 03:04:05",
    )


@pytest.fixture
def federated_entry():
    return CredentialEntry(
        website="Spotify",
        logged_in_via="Google",
        linked_email="alice@gmail.com",
        password="",
        added="2024-01-02 03:04:05",
    )
