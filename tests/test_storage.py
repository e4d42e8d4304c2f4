# tests/test_storage.py

import os

import pytest

from passman import config
from passman import crypto
from passman.errors import AuthError, PassmanError, PersistError, ValidationError, VaultLockedError
from passman.models import CredentialEntry, serialize_collection
from passman.storage import SessionStore


def _write_vault(path, entries, passphrase):
    crypto.seal_to_file(path, serialize_collection(entries), passphrase)


def test_first_run_creates_vault_only_on_persist(vault_path, direct_entry):
    """
    A new vault is empty in memory and nothing touches disk until persist().
    """
    store = SessionStore(vault_path)
    assert not store.vault_exists()

    store.initialize_empty(vault_path, "pw")
    assert store.get_all() == []
    assert not os.path.exists(vault_path)

    store.replace_all([direct_entry])
    store.persist()

    reopened = SessionStore(vault_path)
    assert reopened.unlock(vault_path, "pw") == [direct_entry]


def test_unlock_wrong_passphrase_is_auth_error(vault_path, direct_entry):
    """
    A wrong passphrase yields the single user-facing message and leaves the file alone.
    """
    _write_vault(vault_path, [direct_entry], "right")
    with open(vault_path, "rb") as f:
        before = f.read()

    store = SessionStore(vault_path)
    with pytest.raises(AuthError) as excinfo:
        store.unlock(vault_path, "wrong")

    assert str(excinfo.value) == config.AUTH_FAILED_MESSAGE
    assert not store.is_unlocked()
    with open(vault_path, "rb") as f:
        assert f.read() == before


def test_corrupt_file_looks_like_wrong_passphrase(vault_path):
    os.makedirs(os.path.dirname(vault_path))
    with open(vault_path, "wb") as f:
        f.write(b"garbage")
    with pytest.raises(AuthError, match="Incorrect master password"):
        SessionStore(vault_path).unlock(vault_path, "pw")


def test_invalid_payload_is_validation_error(vault_path):
    crypto.seal_to_file(vault_path, b'{"not": "a list"}', "pw")
    store = SessionStore(vault_path)
    with pytest.raises(ValidationError):
        store.unlock(vault_path, "pw")
    assert not store.is_unlocked()


def test_legacy_vault_is_upgraded_on_persist(vault_path, mocker):
    legacy = b"Salted__legacy!!"
    os.makedirs(os.path.dirname(vault_path))
    with open(vault_path, "wb") as f:
        f.write(legacy + b"0" * 16)
    mocker.patch("passman.crypto.CryptoManager.decrypt_legacy",
                 return_value=b'[{"website": "old", "username": "u"}]')

    store = SessionStore(vault_path)
    store.unlock(vault_path, "pw")
    store.persist()

    with open(vault_path, "rb") as f:
        assert f.read().startswith(config.MAGIC_BYTES)


def test_operations_require_unlock(vault_path):
    store = SessionStore(vault_path)
    with pytest.raises(VaultLockedError):
        store.get_all()
    with pytest.raises(VaultLockedError):
        store.persist()
    with pytest.raises(VaultLockedError):
        store.replace_all([])


def test_unlock_twice_is_refused(vault_path):
    store = SessionStore(vault_path)
    store.initialize_empty(vault_path, "pw")
    with pytest.raises(PassmanError):
        store.unlock(vault_path, "pw")


def test_empty_passphrase_is_refused(vault_path):
    with pytest.raises(ValidationError):
        SessionStore(vault_path).initialize_empty(vault_path, "")


def test_get_all_returns_copies(vault_path, direct_entry):
    store = SessionStore(vault_path)
    store.initialize_empty(vault_path, "pw")
    store.replace_all([direct_entry])

    snapshot = store.get_all()
    snapshot[0].password = "changed"
    snapshot.append(CredentialEntry(website="extra", username="u"))

    assert store.get_all() == [direct_entry]


def test_replace_all_rejects_invalid_entry_and_keeps_collection(vault_path, direct_entry):
    store = SessionStore(vault_path)
    store.initialize_empty(vault_path, "pw")
    store.replace_all([direct_entry])

    bad = CredentialEntry(website="Spotify", logged_in_via="Google")
    with pytest.raises(ValidationError, match="Entry #2"):
        store.replace_all([direct_entry, bad])

    assert store.get_all() == [direct_entry]


def test_verify_passphrase(vault_path):
    store = SessionStore(vault_path)
    store.initialize_empty(vault_path, "pw")
    assert store.verify_passphrase("pw")
    assert not store.verify_passphrase("PW")


def test_rekey_writes_immediately(vault_path, direct_entry):
    """
    After rekey the file opens only with the new passphrase, before any exit save.
    """
    _write_vault(vault_path, [direct_entry], "old")
    store = SessionStore(vault_path)
    store.unlock(vault_path, "old")

    store.rekey("new", current_passphrase="old")

    assert store.verify_passphrase("new")
    with open(vault_path, "rb") as f:
        assert crypto.unseal(f.read(), "new") == serialize_collection([direct_entry])
    with pytest.raises(AuthError):
        SessionStore(vault_path).unlock(vault_path, "old")


def test_rekey_with_wrong_current_passphrase(vault_path, direct_entry):
    _write_vault(vault_path, [direct_entry], "old")
    store = SessionStore(vault_path)
    store.unlock(vault_path, "old")

    with pytest.raises(AuthError):
        store.rekey("new", current_passphrase="nope")
    assert store.verify_passphrase("old")


def test_failed_rekey_keeps_old_passphrase(vault_path, direct_entry, mocker):
    """
    If the re-encrypted file cannot be written, the old passphrase stays in effect.
    """
    _write_vault(vault_path, [direct_entry], "old")
    store = SessionStore(vault_path)
    store.unlock(vault_path, "old")

    real_replace = os.replace
    replace = mocker.patch("passman.utils.os.replace", side_effect=OSError(13, "Permission denied"))
    with pytest.raises(PersistError):
        store.rekey("new")
    replace.side_effect = real_replace

    assert store.verify_passphrase("old")
    assert SessionStore(vault_path).unlock(vault_path, "old") == [direct_entry]


def test_persist_failure_leaves_previous_file(vault_path, direct_entry, federated_entry, mocker):
    _write_vault(vault_path, [direct_entry], "pw")
    store = SessionStore(vault_path)
    store.unlock(vault_path, "pw")
    store.replace_all([direct_entry, federated_entry])

    real_replace = os.replace
    replace = mocker.patch("passman.utils.os.replace", side_effect=OSError(28, "No space left on device"))
    with pytest.raises(PersistError):
        store.persist()
    replace.side_effect = real_replace

    assert not os.path.exists(vault_path + config.TEMP_FILE_SUFFIX)
    assert SessionStore(vault_path).unlock(vault_path, "pw") == [direct_entry]


def test_encrypt_failure_is_persist_error(vault_path, mocker):
    store = SessionStore(vault_path)
    store.initialize_empty(vault_path, "pw")
    mocker.patch("passman.crypto.CryptoManager.encrypt", side_effect=ValueError("engine"))
    with pytest.raises(PersistError):
        store.persist()
    assert not os.path.exists(vault_path)


def test_switch_vault_with_wrong_passphrase_keeps_session(tmp_path, direct_entry, federated_entry):
    """
    A failed switch leaves path, passphrase and entries exactly as they were.
    """
    first = str(tmp_path / "a.enc")
    second = str(tmp_path / "b.enc")
    _write_vault(first, [direct_entry], "pw-a")
    _write_vault(second, [federated_entry], "pw-b")

    store = SessionStore(first)
    store.unlock(first, "pw-a")
    with pytest.raises(AuthError):
        store.switch_vault(second, "wrong")

    assert store.vault_path == first
    assert store.verify_passphrase("pw-a")
    assert store.get_all() == [direct_entry]


def test_switch_vault_saves_current_then_swaps(tmp_path, direct_entry, federated_entry):
    first = str(tmp_path / "a.enc")
    second = str(tmp_path / "b.enc")
    _write_vault(first, [], "pw-a")
    _write_vault(second, [federated_entry], "pw-b")

    store = SessionStore(first)
    store.unlock(first, "pw-a")
    store.replace_all([direct_entry])

    assert store.switch_vault(second, "pw-b") == [federated_entry]
    assert store.vault_path == second
    assert store.verify_passphrase("pw-b")
    assert SessionStore(first).unlock(first, "pw-a") == [direct_entry]

    # exit save goes to the new vault under its own passphrase
    store.replace_all([federated_entry, direct_entry])
    store.persist()
    assert SessionStore(second).unlock(second, "pw-b") == [federated_entry, direct_entry]


def test_scrub_locks_and_wipes(vault_path, direct_entry):
    store = SessionStore(vault_path)
    store.initialize_empty(vault_path, "pw")
    store.replace_all([direct_entry])
    passphrase_buffer = store._session.passphrase

    store.scrub()

    assert not store.is_unlocked()
    assert passphrase_buffer == bytearray(len(passphrase_buffer))
    with pytest.raises(VaultLockedError):
        store.get_all()


def test_switch_vault_to_missing_path_keeps_session(tmp_path, direct_entry):
    first = str(tmp_path / "a.enc")
    _write_vault(first, [direct_entry], "pw-a")
    store = SessionStore(first)
    store.unlock(first, "pw-a")

    with pytest.raises(AuthError):
        store.switch_vault(str(tmp_path / "missing.enc"), "pw-a")

    assert store.vault_path == first
    assert store.verify_passphrase("pw-a")
    assert store.get_all() == [direct_entry]


def test_switch_vault_to_open_vault_keeps_pending_edits(vault_path, direct_entry, federated_entry):
    """
    Switching to the file already open is refused; unsaved edits survive to the exit save.
    """
    _write_vault(vault_path, [direct_entry], "pw")
    store = SessionStore(vault_path)
    store.unlock(vault_path, "pw")
    store.replace_all([direct_entry, federated_entry])

    with pytest.raises(PassmanError, match="already open"):
        store.switch_vault(vault_path, "pw")
    with pytest.raises(PassmanError, match="already open"):
        store.switch_vault(os.path.join(os.path.dirname(vault_path), ".", os.path.basename(vault_path)), "pw")

    assert store.get_all() == [direct_entry, federated_entry]
    store.persist()
    assert SessionStore(vault_path).unlock(vault_path, "pw") == [direct_entry, federated_entry]


def test_exit_save_during_switch_writes_a_consistent_session(tmp_path, direct_entry, federated_entry, mocker):
    """
    An exit save that interrupts a switch seals the old entries, under the old
    passphrase, to the old path; the target vault is left alone.
    """
    first = str(tmp_path / "a.enc")
    second = str(tmp_path / "b.enc")
    _write_vault(first, [], "pw-a")
    _write_vault(second, [federated_entry], "pw-b")
    with open(second, "rb") as f:
        second_before = f.read()

    store = SessionStore(first)
    store.unlock(first, "pw-a")
    store.replace_all([direct_entry])

    real_open = crypto.open_from_file

    def open_then_interrupt(path, passphrase):
        plaintext = real_open(path, passphrase)
        store.persist()
        return plaintext

    mocker.patch("passman.storage.crypto.open_from_file", side_effect=open_then_interrupt)
    store.switch_vault(second, "pw-b")

    assert SessionStore(first).unlock(first, "pw-a") == [direct_entry]
    with open(second, "rb") as f:
        assert f.read() == second_before
    assert store.vault_path == second
    assert store.verify_passphrase("pw-b")
