import json
import os
import threading
from unittest import mock

import pytest

from audiostream.errors import AssetIOError, CounterPersistenceError
from audiostream.store import AssetStore, CounterStore, is_valid_asset_id, validate_segment_name

from conftest import write_asset


class TestAssetStore:

    def test_create_asset_directory_is_idempotent(self, store):
        path = store.create_asset_directory("1700000000000")
        assert os.path.isdir(path)
        assert store.create_asset_directory("1700000000000") == path
        assert store.asset_exists("1700000000000")

    def test_create_asset_directory_creates_missing_parents(self, tmp_path):
        store = AssetStore(str(tmp_path / "a" / "b" / "uploads"))
        path = store.create_asset_directory("42")
        assert os.path.isdir(path)

    def test_create_asset_directory_reports_filesystem_errors(self, store):
        with mock.patch("audiostream.store.os.makedirs", side_effect=PermissionError("denied")):
            with pytest.raises(AssetIOError):
                store.create_asset_directory("42")

    def test_create_asset_directory_rejects_unsafe_ids(self, store):
        with pytest.raises(AssetIOError):
            store.create_asset_directory("../escape")

    def test_asset_exists_for_missing_and_unsafe_ids(self, store):
        assert not store.asset_exists("nope")
        assert not store.asset_exists("..")
        assert not store.asset_exists(".staging")

    def test_segment_exists(self, store):
        write_asset(store, "100", segment_count=2)
        assert store.segment_exists("100", "segment000.ts")
        assert store.segment_exists("100", "segment001.ts")
        assert not store.segment_exists("100", "segment002.ts")

    @pytest.mark.parametrize("name", [
        "../../etc/passwd",
        "..",
        "../100.m3u8",
        "sub/segment000.ts",
        "..\\segment000.ts",
        "",
    ])
    def test_segment_exists_rejects_traversal(self, store, name):
        write_asset(store, "100")
        assert not store.segment_exists("100", name)
        assert store.get_segment_path("100", name) is None

    def test_segment_path_rejects_symlink_escape(self, store, tmp_path):
        asset_dir = write_asset(store, "100")
        outside = tmp_path / "secret.ts"
        outside.write_bytes(b"secret")
        os.symlink(str(outside), os.path.join(asset_dir, "segment009.ts"))
        assert not store.segment_exists("100", "segment009.ts")


def test_validate_segment_name():
    assert validate_segment_name("segment000.ts")
    assert not validate_segment_name("a/b")
    assert not validate_segment_name("..segment000.ts")
    assert not validate_segment_name("segment\x00.ts")


def test_is_valid_asset_id():
    assert is_valid_asset_id("1700000000000")
    assert is_valid_asset_id("abc_DEF-1")
    assert not is_valid_asset_id("")
    assert not is_valid_asset_id("a.b")
    assert not is_valid_asset_id("a/b")


class TestCounterStore:

    def test_creates_empty_document_when_missing(self, tmp_path):
        stats_file = tmp_path / "data" / "stats.json"
        counters = CounterStore(str(stats_file))
        assert counters.all_counters() == {}
        assert json.loads(stats_file.read_text()) == {}

    def test_loads_existing_document(self, tmp_path):
        stats_file = tmp_path / "stats.json"
        stats_file.write_text(json.dumps({"1": {"views": 4}, "2": {"views": 0}}))
        counters = CounterStore(str(stats_file))
        assert counters.all_counters() == {"1": {"views": 4}, "2": {"views": 0}}

    @pytest.mark.parametrize("content", [
        "{not json",
        "[1, 2, 3]",
        '{"1": 5}',
        '{"1": {"views": -1}}',
        '{"1": {"views": "many"}}',
    ])
    def test_corrupt_document_resets_to_empty(self, tmp_path, content):
        stats_file = tmp_path / "stats.json"
        stats_file.write_text(content)
        counters = CounterStore(str(stats_file))
        assert counters.all_counters() == {}

    def test_record_new_asset_persists(self, counters):
        counters.record_new_asset("123")
        with open(counters.stats_file, encoding="utf-8") as f:
            assert json.load(f) == {"123": {"views": 0}}

    def test_document_is_pretty_printed(self, counters):
        counters.record_new_asset("123")
        with open(counters.stats_file, encoding="utf-8") as f:
            assert f.read() == '{\n  "123": {\n    "views": 0\n  }\n}'

    def test_increment_view(self, counters):
        counters.record_new_asset("123")
        assert counters.increment_view("123") == 1
        assert counters.increment_view("123") == 2
        assert counters.get_views("123") == 2
        reloaded = CounterStore(counters.stats_file)
        assert reloaded.get_views("123") == 2

    def test_increment_view_of_unknown_asset_is_noop(self, counters):
        assert counters.increment_view("missing") is None
        assert counters.all_counters() == {}

    def test_all_counters_is_a_snapshot(self, counters):
        counters.record_new_asset("123")
        snapshot = counters.all_counters()
        snapshot["123"]["views"] = 99
        assert counters.get_views("123") == 0

    def test_persistence_failure_keeps_memory_state(self, counters):
        counters.record_new_asset("123")
        with mock.patch("audiostream.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(CounterPersistenceError):
                counters.increment_view("123")
        assert counters.get_views("123") == 1

    def test_concurrent_increments_lose_no_updates(self, counters):
        ids = ["a", "b", "c", "d"]
        for asset_id in ids:
            counters.record_new_asset(asset_id)

        def worker(asset_id):
            for _ in range(25):
                counters.increment_view(asset_id)

        threads = [threading.Thread(target=worker, args=(asset_id,)) for asset_id in ids for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        expected = {asset_id: {"views": 50} for asset_id in ids}
        assert counters.all_counters() == expected
        assert CounterStore(counters.stats_file).all_counters() == expected
