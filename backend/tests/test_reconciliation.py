"""
Reconciliation of changes pushed by other writers.

Two stores on one MemoryBackend behave like two devices sharing a hosted
database: each store's writes are broadcast to the other.
"""

from bizmanager.models import ENTITY_CLASSES, Customer
from bizmanager.persistence import ChangeNotification, MemoryPersistencePort
from bizmanager.services.business_store import BusinessStore
from bizmanager.services.reconciliation import apply_change


class WriteDuringLoadPort(MemoryPersistencePort):
    def __init__(self, backend, during_load):
        super().__init__(backend)
        self.during_load = during_load

    def load_all(self, scope):
        snapshot = super().load_all(scope)
        self.during_load()
        return snapshot


def _collections():
    return {entity_type: {} for entity_type in ENTITY_CLASSES}


class TestApplyChange:
    def test_insert_then_update_replaces_in_place(self):
        collections = _collections()
        first = Customer(id="c1", name="First").to_dict()
        second = Customer(id="c2", name="Second").to_dict()

        apply_change(collections, ChangeNotification("insert", "customers", "c1", first), ENTITY_CLASSES)
        apply_change(collections, ChangeNotification("insert", "customers", "c2", second), ENTITY_CLASSES)
        renamed = {**first, "name": "First Renamed"}
        action = apply_change(collections, ChangeNotification("update", "customers", "c1", renamed), ENTITY_CLASSES)

        assert action == "upsert"
        assert [c.name for c in collections["customers"].values()] == ["First Renamed", "Second"]

    def test_update_for_unknown_id_appends(self):
        collections = _collections()
        record = Customer(id="c9", name="Late").to_dict()
        apply_change(collections, ChangeNotification("update", "customers", "c9", record), ENTITY_CLASSES)
        assert list(collections["customers"]) == ["c9"]

    def test_applying_twice_is_idempotent(self):
        collections = _collections()
        note = ChangeNotification("insert", "customers", "c1", Customer(id="c1", name="Once").to_dict())

        apply_change(collections, note, ENTITY_CLASSES)
        snapshot = dict(collections["customers"])
        apply_change(collections, note, ENTITY_CLASSES)

        assert collections["customers"] == snapshot

    def test_delete_of_absent_id_is_a_noop(self):
        collections = _collections()
        action = apply_change(collections, ChangeNotification("delete", "customers", "nope"), ENTITY_CLASSES)
        assert action == "delete"
        assert collections["customers"] == {}

    def test_unknown_types_are_ignored(self):
        collections = _collections()
        assert apply_change(collections, ChangeNotification("insert", "widgets", "w1", {"id": "w1"}), ENTITY_CLASSES) is None
        assert apply_change(collections, ChangeNotification("merge", "customers", "c1", {"id": "c1"}), ENTITY_CLASSES) is None
        assert apply_change(collections, ChangeNotification("update", "customers", "c1", None), ENTITY_CLASSES) is None


class TestTwoDevices:
    def test_changes_flow_between_stores(self, make_store):
        counter = make_store()
        office = make_store()

        customer = counter.add_customer({"name": "Walk-in"})
        assert office.get_customer(customer.id).name == "Walk-in"

        office.update_customer(customer.id, {"phone": "+911234"})
        assert counter.get_customer(customer.id).phone == "+911234"

        counter.delete_customer(customer.id)
        assert office.list_customers() == []

    def test_remote_invoice_arrives_with_derived_fields(self, make_store):
        counter = make_store()
        office = make_store()
        buyer = counter.add_customer({"name": "Buyer"})
        tile = counter.add_product({"name": "Tile", "sku": "T-1", "price_cents": 1000, "quantity": 3})
        invoice = counter.add_invoice({"customer_id": buyer.id, "items": [{"product_id": tile.id, "quantity": 2}]})
        counter.add_payment({"invoice_id": invoice.id, "amount_cents": 500})

        remote = office.get_invoice(invoice.id)
        assert remote.total_cents == 2200
        assert remote.paid_cents == 500
        assert remote.payment_status == "partial"
        assert office.get_customer(buyer.id).outstanding_balance_cents == 1700

    def test_own_notifications_are_skipped_and_remote_ones_emit_events(self, make_store):
        counter = make_store()
        office = make_store()
        local_events, remote_events = [], []
        counter.subscribe(local_events.append)
        office.subscribe(remote_events.append)

        counter.add_vendor({"name": "Supplier"})

        assert [e.source for e in local_events] == ["local"]
        assert [(e.action, e.source) for e in remote_events] == [("insert", "remote")]

    def test_replayed_notification_is_idempotent(self, make_store):
        counter = make_store()
        office = make_store()
        vendor = counter.add_vendor({"name": "Supplier"})
        before = office.export_state()

        note = ChangeNotification("update", "vendors", vendor.id, vendor.to_dict(), origin=counter.origin)
        office.apply_remote_change(note)
        office.apply_remote_change(note)

        assert office.export_state() == before

    def test_scopes_are_isolated(self, make_store):
        shop = make_store(scope="shop")
        warehouse = make_store(scope="warehouse")
        shop.add_customer({"name": "Shop only"})
        assert warehouse.list_customers() == []

    def test_last_write_wins(self, make_store):
        counter = make_store()
        office = make_store()
        vendor = counter.add_vendor({"name": "Original"})

        counter.update_vendor(vendor.id, {"name": "From counter"})
        office.update_vendor(vendor.id, {"name": "From office"})

        assert counter.get_vendor(vendor.id).name == "From office"
        assert office.get_vendor(vendor.id).name == "From office"

    def test_change_pushed_while_loading_is_applied(self, backend, clock, make_store):
        counter = make_store()
        office = BusinessStore(
            WriteDuringLoadPort(backend, lambda: counter.add_customer({"name": "Mid-load"})),
            clock=clock,
            retry_backoff=0,
        )
        office.load()

        assert [c.name for c in office.list_customers()] == ["Mid-load"]
        assert office.export_state()["customers"] == counter.export_state()["customers"]
        office.close()
