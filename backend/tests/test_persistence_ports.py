import json
import unittest
from datetime import datetime

import pytest
from flask import Flask

from bizmanager.errors import PersistenceError
from bizmanager.extensions import db
from bizmanager.models import ChangeEvent, Customer, EntityRecord
from bizmanager.persistence import (
    LocalJsonPort,
    MemoryPersistencePort,
    PersistenceWriter,
    SqlPersistencePort,
    WriteOperation,
    build_port,
)
from bizmanager.services.business_store import BusinessStore


class FlakyPort(MemoryPersistencePort):
    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def upsert(self, scope, entity_type, record, *, origin=None):
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise PersistenceError("disk unavailable")
        super().upsert(scope, entity_type, record, origin=origin)


class TestWriter:
    def test_retries_then_succeeds(self):
        port = FlakyPort(failures=2)
        writer = PersistenceWriter(port, scope="s", origin="o", attempts=3, backoff_base=0)
        writer.enqueue(WriteOperation("upsert", "customers", "c1", {"id": "c1", "name": "A"}))

        assert writer.flush() is True
        assert port.calls == 3
        assert port.backend.records("s", "customers") == [{"id": "c1", "name": "A"}]

    def test_failed_head_blocks_later_writes(self):
        port = FlakyPort(failures=5)
        sleeps = []
        writer = PersistenceWriter(port, scope="s", origin="o", attempts=2, backoff_base=0.5, sleep=sleeps.append)
        writer.enqueue(WriteOperation("upsert", "customers", "c1", {"id": "c1", "name": "v1"}))
        writer.enqueue(WriteOperation("upsert", "customers", "c1", {"id": "c1", "name": "v2"}))

        assert writer.flush() is False
        assert writer.pending_count == 2
        assert writer.last_error.operation.record["name"] == "v1"
        assert sleeps == [0.5]

        port.failures = 0
        assert writer.flush() is True
        assert port.backend.records("s", "customers")[0]["name"] == "v2"

    def test_rejects_unknown_mode(self):
        with pytest.raises(ValueError):
            PersistenceWriter(MemoryPersistencePort(), scope="s", origin="o", mode="eventually")


class TestLocalJsonPort:
    def test_store_round_trip_through_disk(self, tmp_path, clock):
        first = BusinessStore(LocalJsonPort(tmp_path), scope="shop", clock=clock, retry_backoff=0)
        first.load()
        buyer = first.add_customer({"name": "Disk Customer"})
        tile = first.add_product({"name": "Tile", "sku": "T-1", "price_cents": 1000, "quantity": 4})
        invoice = first.add_invoice({"customer_id": buyer.id, "items": [{"product_id": tile.id, "quantity": 1}]})
        first.close()

        assert (tmp_path / "bizmanager-shop-customers.json").exists()

        second = BusinessStore(LocalJsonPort(tmp_path), scope="shop", clock=clock, retry_backoff=0)
        second.load()
        restored = second.get_invoice(invoice.id)
        assert restored.items[0].product_name == "Tile"
        assert restored.due_date == invoice.due_date
        assert restored.created_at == clock.now
        assert second.get_product(tile.id).quantity == 4
        assert second.generate_invoice_number() == "INV-002"

    def test_delete_and_ordering(self, tmp_path):
        port = LocalJsonPort(tmp_path)
        for name in ("a", "b", "c"):
            port.upsert("s", "vendors", {"id": name, "name": name})
        port.upsert("s", "vendors", {"id": "a", "name": "A"})
        port.delete("s", "vendors", "b")
        port.delete("s", "vendors", "missing")

        assert port.load_all("s")["vendors"] == [{"id": "a", "name": "A"}, {"id": "c", "name": "c"}]
        assert port.load_all("other")["vendors"] == []

    def test_corrupt_file_raises_persistence_error(self, tmp_path):
        (tmp_path / "bizmanager-s-customers.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            LocalJsonPort(tmp_path).load_all("s")

    def test_failed_write_leaves_no_temp_file(self, tmp_path, monkeypatch):
        port = LocalJsonPort(tmp_path)
        port.upsert("s", "vendors", {"id": "a", "name": "A"})

        with pytest.raises(PersistenceError):
            port.upsert("s", "vendors", {"id": "b", "name": object()})

        def refuse(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("bizmanager.persistence.json_store.os.replace", refuse)
        with pytest.raises(PersistenceError, match="disk full"):
            port.upsert("s", "vendors", {"id": "c", "name": "C"})

        assert sorted(p.name for p in tmp_path.iterdir()) == ["bizmanager-s-vendors.json"]
        assert port.load_all("s")["vendors"] == [{"id": "a", "name": "A"}]

    def test_build_port_from_config(self, tmp_path):
        assert isinstance(build_port({"PERSISTENCE_BACKEND": "memory"}), MemoryPersistencePort)
        assert isinstance(
            build_port({"PERSISTENCE_BACKEND": "json", "LOCAL_STORE_DIR": str(tmp_path)}), LocalJsonPort
        )
        with pytest.raises(ValueError):
            build_port({"PERSISTENCE_BACKEND": "ftp"})


class WriteDuringLoadSqlPort(SqlPersistencePort):
    """Runs during_load() after the snapshot read, before load_all returns."""

    def __init__(self, during_load, **kwargs):
        super().__init__(**kwargs)
        self.during_load = during_load

    def load_all(self, scope):
        snapshot = super().load_all(scope)
        self.during_load()
        return snapshot


class SqlPersistencePortTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from bizmanager import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(ChangeEvent).delete()
        db.session.query(EntityRecord).delete()
        db.session.commit()
        self.now = datetime(2024, 6, 20, 12, 0, 0)
        self.stores = []

    def tearDown(self):
        for store in self.stores:
            store.close()

    def _store(self, scope="default"):
        store = BusinessStore(
            SqlPersistencePort(attempts=2, backoff_base=0),
            scope=scope,
            clock=lambda: self.now,
            retry_backoff=0,
        )
        store.load()
        self.stores.append(store)
        return store

    def test_upsert_appends_change_events(self):
        port = SqlPersistencePort()
        record = Customer(id="c1", name="Row").to_dict()
        port.upsert("s", "customers", record, origin="dev-1")
        port.upsert("s", "customers", {**record, "name": "Row 2"}, origin="dev-1")
        port.delete("s", "customers", "c1", origin="dev-2")

        events = db.session.query(ChangeEvent).order_by(ChangeEvent.id).all()
        self.assertEqual([e.event_type for e in events], ["insert", "update", "delete"])
        self.assertEqual(events[0].to_dict()["origin"], "dev-1")
        self.assertEqual(json.loads(events[1].payload)["name"], "Row 2")
        self.assertEqual(port.load_all("s")["customers"], [])

    def test_load_preserves_insertion_order(self):
        port = SqlPersistencePort()
        for entity_id in ("z", "a", "m"):
            port.upsert("s", "vendors", {"id": entity_id, "name": entity_id})
        port.upsert("s", "vendors", {"id": "z", "name": "Z"})

        self.assertEqual([r["name"] for r in port.load_all("s")["vendors"]], ["Z", "a", "m"])

    def test_store_state_survives_reload(self):
        first = self._store()
        buyer = first.add_customer({"name": "Sql Customer"})
        tile = first.add_product({"name": "Tile", "sku": "T-1", "price_cents": 1000, "quantity": 2})
        invoice = first.add_invoice({"customer_id": buyer.id, "items": [{"product_id": tile.id, "quantity": 2}]})
        first.add_payment({"invoice_id": invoice.id, "amount_cents": 2200})

        second = self._store()
        self.assertEqual(second.get_invoice(invoice.id).payment_status, "paid")
        self.assertEqual(second.get_total_sales(), 2200)

    def test_poll_delivers_other_writers_changes(self):
        counter = self._store()
        office = self._store()

        vendor = counter.add_vendor({"name": "Polled"})
        self.assertEqual(office.list_vendors(), [])

        delivered = office.sync_remote()
        self.assertEqual(delivered, 1)
        self.assertEqual(office.get_vendor(vendor.id).name, "Polled")

        # counter skips its own event
        self.assertEqual(counter.sync_remote(), 1)
        self.assertEqual(len(counter.list_vendors()), 1)
        self.assertEqual(office.sync_remote(), 0)

    def test_write_committed_during_load_is_delivered(self):
        counter = self._store()
        office = BusinessStore(
            WriteDuringLoadSqlPort(lambda: counter.add_customer({"name": "Mid-load"}), attempts=2, backoff_base=0),
            clock=lambda: self.now,
            retry_backoff=0,
        )
        office.load()
        self.stores.append(office)
        self.assertEqual(office.list_customers(), [])

        self.assertEqual(office.sync_remote(), 1)
        self.assertEqual([c.name for c in office.list_customers()], ["Mid-load"])
        self.assertEqual(office.sync_remote(), 0)

    def test_poll_is_scoped(self):
        shop = self._store(scope="shop")
        warehouse = self._store(scope="warehouse")
        shop.add_vendor({"name": "Shop vendor"})
        warehouse.sync_remote()
        self.assertEqual(warehouse.list_vendors(), [])
