import json
import os

from models import SharedStore
from models.store import KEY_WALLETS, KEY_IS_LOCKED, KEY_ACTIVE_WALLET


def test_persistent_keys_survive_a_new_instance(tmp_path):
    path = tmp_path / "store.json"
    SharedStore(path).set(KEY_IS_LOCKED, True)
    assert SharedStore(path).get(KEY_IS_LOCKED) is True


def test_session_keys_never_reach_disk(store):
    store.set(KEY_WALLETS, [{"address": "0x1", "private_key": "0xsecret"}])
    store.set(KEY_IS_LOCKED, False)

    on_disk = json.loads(store.path.read_text())
    assert KEY_WALLETS not in on_disk
    assert store.get(KEY_WALLETS)[0]["address"] == "0x1"


def test_snapshot_merges_both_areas(store):
    store.set(KEY_WALLETS, [])
    store.set(KEY_ACTIVE_WALLET, "0x1")
    snapshot = store.snapshot()
    assert snapshot[KEY_WALLETS] == []
    assert snapshot[KEY_ACTIVE_WALLET] == "0x1"


def test_reads_see_writes_from_another_instance(tmp_path):
    path = tmp_path / "store.json"
    first = SharedStore(path)
    second = SharedStore(path)
    second.set(KEY_ACTIVE_WALLET, "0x2")
    assert first.get(KEY_ACTIVE_WALLET) == "0x2"


def test_corrupt_file_reads_as_empty(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{not json")
    store = SharedStore(path)
    assert store.snapshot() == {}
    store.set(KEY_IS_LOCKED, True)
    assert store.get(KEY_IS_LOCKED) is True


def test_remove_absent_key_is_silent(store):
    events = []
    store.changed.connect(events.append)
    store.remove(KEY_ACTIVE_WALLET)
    assert events == []


def test_writes_emit_changed(store):
    events = []
    store.changed.connect(events.append)
    store.set(KEY_IS_LOCKED, True)
    store.remove(KEY_IS_LOCKED)
    assert events == [KEY_IS_LOCKED, KEY_IS_LOCKED]


def test_store_file_is_owner_only(store):
    store.set(KEY_IS_LOCKED, True)
    if os.name == "posix":
        assert oct(store.path.stat().st_mode & 0o777) == "0o600"
