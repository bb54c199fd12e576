from __future__ import annotations

import json
import os

from hitcounter.models import CURRENT_SCHEMA_VERSION, Store
from hitcounter.store import CounterStoreError, JsonCounterStore


def test_load_missing_file_returns_empty_store(tmp_path) -> None:
    store = JsonCounterStore(tmp_path / "counts.json").load()
    assert store.schema_version == CURRENT_SCHEMA_VERSION
    assert store.domains == {}


def test_load_corrupted_document_resets_to_empty(tmp_path) -> None:
    path = tmp_path / "counts.json"
    for raw in [
        b"{not json",
        b"\xff\xfe\x00garbage",
        b"   \n",
        b'"just a string"',
        b"[" * 200000,
    ]:
        path.write_bytes(raw)
        store = JsonCounterStore(path).load()
        assert store.domains == {}


def test_save_then_load_keeps_nested_counters(tmp_path) -> None:
    path = tmp_path / "nested" / "counts.json"
    counter_store = JsonCounterStore(path)

    store = Store()
    domain = store.get_or_create_domain("example.com")
    domain.record_hit("1.2.3.4", 1000)
    domain.get_or_create_project("blog").record_hit("1.2.3.4", 1000)
    counter_store.save(store)

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["schemaVersion"] == CURRENT_SCHEMA_VERSION
    assert on_disk["domains"]["example.com"]["projects"]["blog"]["total"] == 1

    reloaded = counter_store.load()
    assert reloaded.domains["example.com"].ips["1.2.3.4"].count == 1
    assert reloaded.domains["example.com"].projects["blog"].last == 1000


def test_save_leaves_no_temporary_files(tmp_path) -> None:
    counter_store = JsonCounterStore(tmp_path / "counts.json")
    counter_store.save(Store())
    counter_store.save(Store())
    assert sorted(os.listdir(tmp_path)) == ["counts.json"]


def test_save_failure_raises_and_keeps_previous_document(tmp_path, monkeypatch) -> None:
    path = tmp_path / "counts.json"
    counter_store = JsonCounterStore(path)
    store = Store()
    store.get_or_create_domain("example.com").record_hit("", 1)
    counter_store.save(store)

    def _fail_replace(_src, _dst):
        raise OSError("disk full")

    monkeypatch.setattr("hitcounter.store.os.replace", _fail_replace)
    store.get_or_create_domain("example.com").record_hit("", 2)
    try:
        counter_store.save(store)
    except CounterStoreError:
        pass
    else:
        assert False, "Expected CounterStoreError when replace fails"

    assert counter_store.load().domains["example.com"].total == 1
    assert sorted(os.listdir(tmp_path)) == ["counts.json"]


def test_load_repairs_legacy_document(tmp_path) -> None:
    path = tmp_path / "counts.json"
    path.write_text(json.dumps({"localhost": {"total": 5, "last": 99}}), encoding="utf-8")
    store = JsonCounterStore(path).load()
    assert store.domains["localhost"].total == 5
    assert store.domains["localhost"].projects == {}
