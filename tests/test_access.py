import pytest

from models import AuthError
from models.store import KEY_ENCRYPTED_WALLETS, KEY_WALLETS, KEY_IS_LOCKED, KEY_ACTIVE_WALLET
from wallet import LOCK_STATE_LOCKED, LOCK_STATE_UNLOCKED

from conftest import PASSWORD


def test_fresh_install_is_never_gated(access):
    assert not access.is_setup()
    assert not access.should_gate()


def test_setup_leaves_session_unlocked(access):
    access.setup_password(PASSWORD)
    assert access.is_setup()
    assert not access.should_gate()
    assert access.get_active_wallet() is None


def test_setup_twice_fails(access):
    access.setup_password(PASSWORD)
    with pytest.raises(AuthError):
        access.setup_password("another")


def test_lock_gates(access, setup_wallets, store):
    access.lock()
    assert access.should_gate()
    assert access.lock_state() == LOCK_STATE_LOCKED
    assert store.get(KEY_WALLETS) is None
    assert store.get(KEY_ACTIVE_WALLET) is None


def test_lock_is_idempotent(access, locked_wallets):
    access.lock()
    assert access.should_gate()


def test_unlock_reproduces_stored_wallets(access, locked_wallets, store):
    wallets = access.unlock(PASSWORD)

    assert [w.to_dict() for w in wallets] == [w.to_dict() for w in locked_wallets]
    assert store.get(KEY_WALLETS) == [w.to_dict() for w in locked_wallets]
    assert access.lock_state() == LOCK_STATE_UNLOCKED
    assert store.get(KEY_ACTIVE_WALLET) == locked_wallets[0].address


def test_wrong_password_changes_nothing(access, locked_wallets, store):
    before = store.snapshot()
    with pytest.raises(AuthError):
        access.unlock("wrong")
    assert store.snapshot() == before
    assert store.get(KEY_IS_LOCKED) is True


def test_unlock_without_password_set(access):
    with pytest.raises(AuthError, match="No password set"):
        access.unlock(PASSWORD)


def test_one_bad_record_does_not_abort_unlock(access, locked_wallets, store):
    records = store.get(KEY_ENCRYPTED_WALLETS)
    payload = records[0]["encrypted_payload"]
    tampered = "00" if payload[-2:] != "00" else "ff"
    records[0]["encrypted_payload"] = payload[:-2] + tampered
    store.set(KEY_ENCRYPTED_WALLETS, records)

    wallets = access.unlock(PASSWORD)
    assert [w.address for w in wallets] == [locked_wallets[1].address]


def test_unlock_repoints_pointer_at_undecryptable_wallet(access, locked_wallets, store):
    records = store.get(KEY_ENCRYPTED_WALLETS)
    payload = records[0]["encrypted_payload"]
    records[0]["encrypted_payload"] = payload[:-2] + ("00" if payload[-2:] != "00" else "ff")
    store.set(KEY_ENCRYPTED_WALLETS, records)
    store.set(KEY_ACTIVE_WALLET, locked_wallets[0].address)

    access.unlock(PASSWORD)
    assert store.get(KEY_ACTIVE_WALLET) == locked_wallets[1].address


def test_unlock_clears_pointer_when_nothing_loads(access, locked_wallets, store):
    store.set(KEY_ENCRYPTED_WALLETS, [])
    store.set(KEY_ACTIVE_WALLET, locked_wallets[0].address)

    assert access.unlock(PASSWORD) == []
    assert store.get(KEY_ACTIVE_WALLET) is None


def test_corrupt_collection_unlocks_empty(access, locked_wallets, store):
    store.set(KEY_ENCRYPTED_WALLETS, "{garbage")
    assert access.unlock(PASSWORD) == []
    assert not access.should_gate()
    assert access.get_active_wallet() is None


def test_flag_without_wallet_list_is_locked(access, setup_wallets, store):
    # Intermediate state of an unlock seen from another context
    store.remove(KEY_WALLETS)
    assert store.get(KEY_IS_LOCKED) is False
    assert access.should_gate()


def test_active_pointer_falls_back_to_first(access, setup_wallets, store):
    store.set(KEY_ACTIVE_WALLET, "0xgone")
    assert access.get_active_wallet().address == setup_wallets[0].address


def test_remove_active_wallet_repoints(access, setup_wallets):
    access.remove_wallet(setup_wallets[0].address)
    assert access.get_active_wallet().address == setup_wallets[1].address
    access.lock()
    assert [w.address for w in access.unlock(PASSWORD)] == [setup_wallets[1].address]


def test_add_wallet_requires_password(access, setup_wallets):
    from wallet import import_private_key
    with pytest.raises(AuthError):
        access.add_wallet(import_private_key("0x" + "33" * 32), "wrong")


def test_set_active_wallet_rejects_unknown(access, setup_wallets):
    with pytest.raises(ValueError):
        access.set_active_wallet("0xnope")
