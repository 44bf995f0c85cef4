"""
Tests for storage backends and transaction support
"""

import pytest
from decimal import Decimal
from datetime import datetime, date, timezone
from dataclasses import dataclass
from enum import Enum

from agro_financing.storage import (
    InMemoryStorage, SQLiteStorage, StorageRecord, create_storage
)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Every test runs against both backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestBasicOperations:
    """CRUD behaviour shared by all backends"""

    def test_save_and_load(self, storage):
        storage.save("parcels", "p1", {"id": "p1", "name": "La Vega", "area": "12.50"})
        assert storage.load("parcels", "p1") == {"id": "p1", "name": "La Vega", "area": "12.50"}
        assert storage.exists("parcels", "p1")
        assert not storage.exists("parcels", "p2")

    def test_load_missing_table_or_record(self, storage):
        assert storage.load("nothing_here", "x") is None
        assert storage.load_all("nothing_here") == []

    def test_save_replaces(self, storage):
        storage.save("farmers", "f1", {"name": "Ana"})
        storage.save("farmers", "f1", {"name": "Ana María"})
        assert storage.load("farmers", "f1") == {"name": "Ana María"}
        assert storage.count("farmers") == 1

    def test_load_all_keeps_insertion_order(self, storage):
        for record_id in ("c", "a", "b"):
            storage.save("rows", record_id, {"id": record_id})
        assert [r["id"] for r in storage.load_all("rows")] == ["c", "a", "b"]

    def test_find_by_fields(self, storage):
        storage.save("financings", "1", {"status": "draft", "farmer_id": "f1"})
        storage.save("financings", "2", {"status": "approved", "farmer_id": "f1"})
        storage.save("financings", "3", {"status": "draft", "farmer_id": "f2"})

        assert len(storage.find("financings", {"farmer_id": "f1"})) == 2
        assert storage.find("financings", {"status": "draft", "farmer_id": "f2"}) == [
            {"status": "draft", "farmer_id": "f2"}
        ]
        assert storage.find("financings", {"missing_key": "x"}) == []

    def test_delete(self, storage):
        storage.save("rows", "r1", {"v": 1})
        assert storage.delete("rows", "r1")
        assert not storage.delete("rows", "r1")
        assert storage.count("rows") == 0

    def test_loaded_records_are_copies(self, storage):
        storage.save("rows", "r1", {"tags": ["a"]})
        loaded = storage.load("rows", "r1")
        loaded["tags"].append("b")
        assert storage.load("rows", "r1") == {"tags": ["a"]}


class TestTransactions:
    """atomic() commits on success and rolls back on error"""

    def test_commit(self, storage):
        with storage.atomic():
            storage.save("rows", "r1", {"v": 1})
            storage.save("rows", "r2", {"v": 2})
        assert storage.count("rows") == 2

    def test_rollback_on_error(self, storage):
        storage.save("rows", "r0", {"v": 0})
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("rows", "r1", {"v": 1})
                storage.delete("rows", "r0")
                raise RuntimeError("boom")
        assert storage.load("rows", "r1") is None
        assert storage.load("rows", "r0") == {"v": 0}

    def test_nested_blocks_join_outer_transaction(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("rows", "inner", {"v": 1})
                storage.save("rows", "outer", {"v": 2})
                raise RuntimeError("boom")
        assert storage.load_all("rows") == []

    def test_inner_error_caught_inside_outer_block(self, storage):
        with storage.atomic():
            storage.save("rows", "kept", {"v": 1})
            with pytest.raises(ValueError):
                with storage.atomic():
                    raise ValueError("inner")
            storage.save("rows", "also_kept", {"v": 2})
        assert storage.count("rows") == 2


class TestSQLitePersistence:
    """Data survives reopening the database file"""

    def test_reopen(self, tmp_path):
        path = tmp_path / "persist.db"
        first = SQLiteStorage(path)
        first.save("farmers", "f1", {"name": "Ana"})
        first.close()

        second = SQLiteStorage(path)
        assert second.load("farmers", "f1") == {"name": "Ana"}
        second.close()


class Color(Enum):
    GREEN = "green"


@dataclass
class SampleRecord(StorageRecord):
    amount: Decimal
    color: Color
    due: date


class TestStorageRecord:
    """Serialization of records with Decimal, Enum and date fields"""

    def test_to_dict_is_json_ready(self):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        record = SampleRecord(
            id="r1", created_at=now, updated_at=now,
            amount=Decimal('10.50'), color=Color.GREEN, due=date(2024, 6, 1)
        )
        assert record.to_dict() == {
            "id": "r1",
            "created_at": "2024-05-01T12:00:00+00:00",
            "updated_at": "2024-05-01T12:00:00+00:00",
            "amount": "10.50",
            "color": "green",
            "due": "2024-06-01",
        }

    def test_from_dict_parses_timestamps(self):
        record = StorageRecord.from_dict({
            "id": "r1",
            "created_at": "2024-05-01T12:00:00+00:00",
            "updated_at": "2024-05-02T12:00:00+00:00",
        })
        assert record.created_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert record.updated_at.day == 2


class TestCreateStorage:
    """Backend selection from a database URL"""

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_url(self, tmp_path):
        backend = create_storage(f"sqlite:///{tmp_path / 'agro.db'}")
        assert isinstance(backend, SQLiteStorage)
        backend.close()

    def test_sqlite_memory_url(self):
        backend = create_storage("sqlite:///:memory:")
        assert backend.db_path == ":memory:"
        backend.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_storage("postgresql://localhost/agro")
