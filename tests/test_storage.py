"""
Test suite for storage backends

Every behavior is checked against both the in-memory and the SQLite
backend.
"""

import pytest

from bookkeeping.storage import InMemoryStorage, SQLiteStorage, create_storage


@pytest.fixture(params=["memory", "sqlite"])
def backend(request):
    if request.param == "memory":
        store = InMemoryStorage()
    else:
        store = SQLiteStorage(":memory:")
    yield store
    store.close()


class TestRecordOperations:

    def test_save_and_load(self, backend):
        backend.save("accounts", "1000", {"id": "1", "name": "Cash"})

        assert backend.load("accounts", "1000") == {"id": "1", "name": "Cash"}
        assert backend.exists("accounts", "1000")
        assert backend.count("accounts") == 1

    def test_load_missing(self, backend):
        assert backend.load("accounts", "nope") is None
        assert not backend.exists("accounts", "nope")

    def test_loaded_records_are_copies(self, backend):
        backend.save("accounts", "1000", {"id": "1", "tags": ["a"]})
        loaded = backend.load("accounts", "1000")
        loaded["tags"].append("b")

        assert backend.load("accounts", "1000")["tags"] == ["a"]

    def test_update_keeps_insertion_order(self, backend):
        backend.save("t", "a", {"id": "a", "v": 1})
        backend.save("t", "b", {"id": "b", "v": 1})
        backend.save("t", "a", {"id": "a", "v": 2})

        assert backend.load_all("t") == [{"id": "a", "v": 2}, {"id": "b", "v": 1}]

    def test_delete(self, backend):
        backend.save("t", "a", {"id": "a"})

        assert backend.delete("t", "a")
        assert not backend.delete("t", "a")
        assert backend.count("t") == 0

    def test_find(self, backend):
        backend.save("t", "a", {"id": "1", "kind": "x"})
        backend.save("t", "b", {"id": "2", "kind": "y"})

        assert backend.find("t", {"kind": "y"}) == [{"id": "2", "kind": "y"}]
        assert backend.find("t", {"missing": 1}) == []


class TestAtomic:

    def test_commit(self, backend):
        with backend.atomic():
            backend.save("t", "a", {"id": "a"})
            backend.save("t", "b", {"id": "b"})
            assert backend.in_transaction

        assert not backend.in_transaction
        assert backend.count("t") == 2

    def test_rollback_discards_every_write(self, backend):
        backend.save("t", "kept", {"id": "kept"})

        with pytest.raises(RuntimeError):
            with backend.atomic():
                backend.save("t", "a", {"id": "a"})
                backend.delete("t", "kept")
                raise RuntimeError("boom")

        assert not backend.in_transaction
        assert backend.exists("t", "kept")
        assert not backend.exists("t", "a")

    def test_nested_blocks_roll_back_together(self, backend):
        with pytest.raises(ValueError):
            with backend.atomic():
                backend.save("t", "outer", {"id": "outer"})
                with backend.atomic():
                    backend.save("t", "inner", {"id": "inner"})
                raise ValueError("late failure")

        assert backend.count("t") == 0

    def test_rollback_of_new_table(self, backend):
        with pytest.raises(RuntimeError):
            with backend.atomic():
                backend.save("fresh", "a", {"id": "a"})
                raise RuntimeError("boom")

        assert backend.count("fresh") == 0
        backend.save("fresh", "b", {"id": "b"})
        assert backend.count("fresh") == 1


class TestSequences:

    def test_sequences_increment_per_name(self, backend):
        with backend.atomic():
            assert backend.next_sequence("journal") == 1
            assert backend.next_sequence("journal") == 2
            assert backend.next_sequence("accounts") == 1

    def test_sequence_rolls_back_with_block(self, backend):
        with backend.atomic():
            backend.next_sequence("journal")

        with pytest.raises(RuntimeError):
            with backend.atomic():
                backend.next_sequence("journal")
                raise RuntimeError("boom")

        with backend.atomic():
            assert backend.next_sequence("journal") == 2


class TestSQLiteFile:

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "books.db"
        store = SQLiteStorage(path)
        with store.atomic():
            store.save("accounts", "1000", {"id": "1", "name": "Cash"})
        store.close()

        reopened = SQLiteStorage(path)
        try:
            assert reopened.load("accounts", "1000") == {"id": "1", "name": "Cash"}
        finally:
            reopened.close()


class TestCreateStorage:

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    @pytest.mark.parametrize("url", ["sqlite://", "sqlite:///:memory:"])
    def test_sqlite_memory_urls(self, url):
        store = create_storage(url)
        assert isinstance(store, SQLiteStorage)
        assert store.db_path == ":memory:"
        store.close()

    def test_sqlite_file_url(self, tmp_path):
        path = tmp_path / "books.db"
        store = create_storage(f"sqlite:///{path}")
        assert store.db_path == str(path)
        store.close()

    def test_unknown_url(self):
        with pytest.raises(ValueError):
            create_storage("postgresql://localhost/books")
