"""
Store lifecycle, observers, vendors and expenses.
"""

import time

import pytest

from bizmanager.errors import (
    NotFoundError,
    PersistenceError,
    ReferentialIntegrityError,
    StoreNotReadyError,
    ValidationError,
)
from bizmanager.models import Actor
from bizmanager.persistence import MemoryPersistencePort
from bizmanager.services.business_store import BusinessStore, StoreEvent


class TestLoad:
    def test_mutations_rejected_until_ready(self, make_store):
        store = make_store(load=False)
        assert store.state == "loading"
        with pytest.raises(StoreNotReadyError):
            store.add_customer({"name": "Early"})

        store.load()
        assert store.state == "ready"
        assert store.add_customer({"name": "On time"}).name == "On time"

    def test_loaded_snapshot_is_source_of_truth(self, make_store):
        first = make_store()
        first.add_customer({"name": "Persisted"})

        second = make_store()
        assert [c.name for c in second.list_customers()] == ["Persisted"]

    def test_failed_load_can_be_retried(self, backend, make_store):
        store = make_store(load=False, retry_attempts=1)
        backend.fail_next_loads(1)

        with pytest.raises(PersistenceError):
            store.load()
        assert store.state == "failed"
        with pytest.raises(StoreNotReadyError):
            store.add_vendor({"name": "Later"})

        store.load()
        assert store.is_ready

    def test_transient_load_failures_are_retried(self, backend, make_store):
        store = make_store(load=False, retry_attempts=3)
        backend.fail_next_loads(2)
        store.load()
        assert store.is_ready

    def test_seed_only_runs_for_empty_scope(self, make_store):
        calls = []

        def seed(store):
            calls.append(store)
            store.add_customer({"name": "Seeded"})

        first = make_store(load=False)
        first.load(seed=seed)
        second = make_store(load=False)
        second.load(seed=seed)

        assert calls == [first]
        assert [c.name for c in second.list_customers()] == ["Seeded"]

    def test_store_cannot_load_twice(self, store):
        with pytest.raises(ValidationError):
            store.load()


class TestObservers:
    def test_listeners_see_each_change_after_it_happened(self, store):
        events = []
        seen_quantities = []

        def listener(event):
            events.append(event)
            if event.entity_type == "products":
                seen_quantities.append(store.get_product(event.entity_id).quantity)

        unsubscribe = store.subscribe(listener)
        product = store.add_product({"name": "Widget", "sku": "W-1", "price_cents": 100, "quantity": 4})

        assert [(e.action, e.entity_type) for e in events] == [
            ("insert", "products"),
            ("update", "products"),
            ("insert", "stock_movements"),
        ]
        assert all(e.source == "local" for e in events)
        assert seen_quantities == [4, 4]

        unsubscribe()
        store.delete_product(product.id)
        assert len(events) == 3

    def test_failing_listener_does_not_break_mutation(self, store):
        store.subscribe(lambda event: 1 / 0)
        assert store.add_vendor({"name": "Resilient"}).name == "Resilient"

    def test_actor_is_recorded(self, make_store):
        store = make_store(actor_provider=lambda: Actor(id="u-7", display_name="Ravi"))
        assert store.add_customer({"name": "Tracked"}).created_by == "u-7"


class TestVendorsAndExpenses:
    def test_expense_defaults_incurred_at_to_now(self, store, clock):
        expense = store.add_expense({"category": "Rent", "amount_cents": 50000})
        assert expense.incurred_at == clock.now
        assert expense.payment_method == "cash"

    def test_expense_vendor_must_exist(self, store):
        with pytest.raises(NotFoundError):
            store.add_expense({"category": "Stock", "amount_cents": 100, "vendor_id": "ghost"})

    def test_vendor_with_expenses_cannot_be_deleted(self, store):
        vendor = store.add_vendor({"name": "Cement Co", "payment_terms_days": 30})
        expense = store.add_expense({"category": "Stock", "amount_cents": 12000, "vendor_id": vendor.id})

        with pytest.raises(ReferentialIntegrityError):
            store.delete_vendor(vendor.id)
        assert store.get_vendor(vendor.id).name == "Cement Co"

        store.delete_expense(expense.id)
        store.delete_vendor(vendor.id)
        assert store.list_vendors() == []

    def test_update_expense(self, store):
        expense = store.add_expense({"category": "Utilities", "amount_cents": 900})
        updated = store.update_expense(expense.id, {"amount_cents": 1200, "incurred_at": "2024-06-01T09:30:00Z"})
        assert updated.amount_cents == 1200
        assert updated.incurred_at.day == 1

    def test_expense_amount_must_be_valid(self, store):
        with pytest.raises(ValidationError):
            store.add_expense({"category": "Rent", "amount_cents": -1})
        with pytest.raises(ValidationError):
            store.add_expense({"category": "Rent", "amount_cents": 10.5})


class TestPersistenceSideChannel:
    def test_write_failure_keeps_state_and_reports(self, backend, store):
        failures = []
        store.on_persistence_failure(lambda exc, op: failures.append((op.entity_type, str(exc))))
        backend.fail_next_writes(2)

        customer = store.add_customer({"name": "Offline"})

        assert store.get_customer(customer.id).name == "Offline"
        assert store.pending_writes == 1
        assert store.sync_status == "pending"
        assert failures == [("customers", "simulated write failure")]
        assert isinstance(store.last_persistence_error, PersistenceError)

        assert store.flush() is True
        assert store.sync_status == "synced"
        assert [r["name"] for r in backend.records("default", "customers")] == ["Offline"]

    def test_failing_port_never_delays_mutations(self, backend, clock):
        sleeps = []
        store = BusinessStore(
            MemoryPersistencePort(backend), clock=clock, retry_attempts=3, retry_backoff=0.5, sleep=sleeps.append
        )
        store.load()
        backend.fail_next_writes(5)

        started = time.monotonic()
        store.add_customer({"name": "During outage"})
        store.add_vendor({"name": "Also during outage"})
        assert time.monotonic() - started < 0.5

        assert sleeps == []
        assert store.pending_writes == 2
        assert store.get_vendor(store.list_vendors()[0].id).name == "Also during outage"

        assert store.flush() is False
        assert sleeps == [0.5, 1.0]
        assert store.flush() is True
        assert [r["name"] for r in backend.records("default", "vendors")] == ["Also during outage"]
        store.close()

    def test_writes_reach_port_in_mutation_order(self, backend, store, customer, product_a):
        backend.write_log.clear()
        invoice = store.add_invoice({"customer_id": customer.id, "items": [{"product_id": product_a.id, "quantity": 1}]})
        store.add_payment({"invoice_id": invoice.id, "amount_cents": invoice.total_cents})

        order = [entity_type for _, entity_type, _ in backend.write_log]
        assert order.index("invoices") < order.index("payments")
        assert backend.records("default", "invoices")[0]["payment_status"] == "paid"

    def test_close_drains_background_writer(self, backend, clock):
        store = BusinessStore(MemoryPersistencePort(backend), clock=clock, writer_mode="background", retry_backoff=0)
        store.load()
        store.add_customer({"name": "Queued"})
        store.close()

        assert store.pending_writes == 0
        assert [r["name"] for r in backend.records("default", "customers")] == ["Queued"]

    def test_store_event_is_a_value(self):
        assert StoreEvent("insert", "products", "p1") == StoreEvent("insert", "products", "p1", "local")
