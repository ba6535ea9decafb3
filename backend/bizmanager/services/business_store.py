# Overview: Authoritative in-memory business state with write-behind persistence.

"""
Business Store Invariants (authoritative)

Ownership:
- The store is the only holder of the entity collections. Callers receive
  frozen entity snapshots and lists built on each call, never the
  collections themselves.
- One store per process/session, constructed with an injected persistence
  port. No module-level singletons.

Lifecycle:
- loading -> ready after port.load_all() succeeds; failed if it raised
  (load() may be retried). Mutations before ready raise StoreNotReadyError.
- The loaded snapshot is the source of truth. Seed data is only written
  when every collection came back empty and a seed callable was given.

Mutations:
- Synchronous in memory: the collections are updated before the call
  returns. Input is validated first; an error leaves state untouched.
- Each changed entity is queued for persistence in mutation order. Write
  failures are reported to failure listeners and never roll back state.
- Listeners get a StoreEvent per changed entity after the change.

Derived fields:
- Invoice subtotal/tax/total are recomputed from items; paid/balance/
  payment_status from the full set of completed payments.
- Product quantity only changes through a StockMovement (direct edits
  synthesize an adjustment) and is clamped at 0.
- Customer outstanding balance and loyalty points are recomputed from the
  customer ledger and completed payments.

Remote changes:
- Notifications from other writers are applied by id without recomputing
  derived fields. Notifications carrying this store's origin are skipped.
- The store subscribes before reading the snapshot. Notifications that
  arrive while loading are held and applied once the snapshot is adopted,
  so nothing written between the read and the subscription is lost.
- Concurrency is last-write-wins: two devices editing the same invoice at
  once can lose one side's change. There are no version checks.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..errors import (
    NotFoundError,
    PersistenceError,
    ReferentialIntegrityError,
    StoreNotReadyError,
    ValidationError,
    ConflictError,
)
from ..models import (
    ENTITY_CLASSES,
    ENTITY_TYPES,
    BusinessProfile,
    Customer,
    CustomerTransaction,
    Expense,
    Invoice,
    Payment,
    Product,
    StockMovement,
    Vendor,
    new_id,
)
from ..models.billing import (
    INVOICE_STATUS_CANCELLED,
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_FINALIZED,
    INVOICE_STATUS_PAID,
    INVOICE_TYPE_RETURN,
    INVOICE_TYPE_SALE,
    METHOD_CASH,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
    PAYMENT_STATUS_PAID,
)
from ..models.catalog import MOVEMENT_ADJUSTMENT, MOVEMENT_IN, MOVEMENT_OUT
from ..models.customers import TXN_ADJUSTMENT, TXN_PAYMENT, TXN_RETURN, TXN_SALE
from ..persistence.base import (
    ChangeNotification,
    PersistencePort,
    EVENT_DELETE,
    EVENT_INSERT,
    EVENT_UPDATE,
)
from ..persistence.writer import (
    MODE_SYNC,
    OP_DELETE,
    OP_UPSERT,
    PersistenceWriter,
    WriteOperation,
)
from ..time_utils import utcnow
from ..validation import (
    CUSTOMER_ADJUSTMENT_POLICY,
    CUSTOMER_POLICY,
    EXPENSE_POLICY,
    INVOICE_ITEM_POLICY,
    INVOICE_POLICY,
    PAYMENT_POLICY,
    PRODUCT_POLICY,
    STOCK_MOVEMENT_POLICY,
    VENDOR_POLICY,
    enforce_rules_invoice,
    enforce_rules_stock_movement,
    validate_payload,
)
from . import invoice_service, reporting_service
from .concurrency import run_with_retry
from .reconciliation import apply_change

logger = logging.getLogger(__name__)

STATE_LOADING = "loading"
STATE_READY = "ready"
STATE_FAILED = "failed"

SOURCE_LOCAL = "local"
SOURCE_REMOTE = "remote"

EVENT_LOAD = "load"


@dataclass(frozen=True)
class StoreEvent:
    action: str
    entity_type: str | None
    entity_id: str | None
    source: str = SOURCE_LOCAL


class _Transaction:
    """Records entity changes made inside one mutation, in order."""

    def __init__(self, collections: dict):
        self._collections = collections
        self.changes: list[tuple[str, str, str, object]] = []

    def put(self, entity) -> None:
        collection = self._collections[entity.entity_type]
        event_type = EVENT_UPDATE if entity.id in collection else EVENT_INSERT
        collection[entity.id] = entity
        self.changes.append((event_type, entity.entity_type, entity.id, entity))

    def remove(self, entity_type: str, entity_id: str) -> None:
        self._collections[entity_type].pop(entity_id, None)
        self.changes.append((EVENT_DELETE, entity_type, entity_id, None))


def _matches(query: str, *values) -> bool:
    return any(value and query in str(value).lower() for value in values)


class BusinessStore:
    def __init__(
        self,
        port: PersistencePort,
        *,
        scope: str = "default",
        profile: BusinessProfile | None = None,
        actor_provider=None,
        writer_mode: str = MODE_SYNC,
        clock=utcnow,
        retry_attempts: int = 3,
        retry_backoff: float = 0.1,
        sleep=None,
    ):
        self.port = port
        self.scope = scope
        self.profile = profile or BusinessProfile()
        self.origin = new_id()
        self.state = STATE_LOADING
        self._actor_provider = actor_provider
        self._clock = clock
        self._retry_attempts = retry_attempts
        self._retry_backoff = retry_backoff
        self._sleep = sleep
        self._lock = threading.RLock()
        self._collections: dict[str, dict] = {entity_type: {} for entity_type in ENTITY_TYPES}
        self._listeners = []
        self._subscription = None
        self._held_changes: list[ChangeNotification] | None = None
        self._writer = PersistenceWriter(
            port,
            scope=scope,
            origin=self.origin,
            mode=writer_mode,
            attempts=retry_attempts,
            backoff_base=retry_backoff,
            sleep=sleep,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_ready(self) -> bool:
        return self.state == STATE_READY

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return all(not collection for collection in self._collections.values())

    def load(self, seed=None) -> "BusinessStore":
        """
        Adopt the port's durable copy as the source of truth.

        Raises PersistenceError (state becomes failed) when the port cannot
        be read after retries.
        """
        if self.state == STATE_READY:
            raise ValidationError("store is already loaded")

        kwargs = {"attempts": self._retry_attempts, "backoff_base": self._retry_backoff}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        self._held_changes = []
        try:
            if self._subscription is None:
                self._subscription = self.port.subscribe(self.scope, self.apply_remote_change)
            snapshot = run_with_retry(lambda: self.port.load_all(self.scope), **kwargs)
            collections = self._build_collections(snapshot)
        except PersistenceError:
            self.state = STATE_FAILED
            self._held_changes = None
            if self._subscription is not None:
                self._subscription.unsubscribe()
                self._subscription = None
            logger.exception("Initial load of scope %s failed", self.scope)
            raise

        with self._lock:
            self._collections = collections
            self.state = STATE_READY
            held, self._held_changes = self._held_changes, None
            for notification in held:
                apply_change(self._collections, notification, ENTITY_CLASSES)
        if held:
            logger.info("Applied %d change(s) received while loading scope %s", len(held), self.scope)
        logger.info(
            "Loaded scope %s: %s",
            self.scope,
            ", ".join(f"{len(c)} {t}" for t, c in collections.items() if c) or "empty",
        )
        self._emit([StoreEvent(EVENT_LOAD, None, None)])

        if seed is not None and self.is_empty:
            logger.info("Seeding sample data for empty scope %s", self.scope)
            seed(self)
        return self

    def _build_collections(self, snapshot: dict) -> dict:
        collections = {entity_type: {} for entity_type in ENTITY_TYPES}
        for entity_type, records in snapshot.items():
            entity_cls = ENTITY_CLASSES.get(entity_type)
            if entity_cls is None:
                logger.warning("Skipping unknown collection %s", entity_type)
                continue
            for record in records:
                try:
                    entity = entity_cls.from_dict(record)
                except (TypeError, ValueError, KeyError) as exc:
                    raise PersistenceError(f"corrupt {entity_type} record: {exc}") from exc
                collections[entity_type][entity.id] = entity
        return collections

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._writer.close(drain=True)

    # =========================================================================
    # OBSERVERS / PERSISTENCE SIDE CHANNEL
    # =========================================================================

    def subscribe(self, listener):
        """Register listener(StoreEvent); returns a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def on_persistence_failure(self, callback) -> None:
        """callback(PersistenceError, WriteOperation) runs when a write exhausts its retries."""
        self._writer.add_failure_listener(callback)

    def flush(self) -> bool:
        return self._writer.flush()

    @property
    def pending_writes(self) -> int:
        return self._writer.pending_count

    @property
    def sync_status(self) -> str:
        return "synced" if self.pending_writes == 0 else "pending"

    @property
    def last_persistence_error(self) -> PersistenceError | None:
        return self._writer.last_error

    def _emit(self, events: list[StoreEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Store listener failed for %s", event)

    # =========================================================================
    # MUTATION PLUMBING
    # =========================================================================

    def _now(self) -> datetime:
        return self._clock()

    def _actor_id(self) -> str | None:
        if self._actor_provider is None:
            return None
        actor = self._actor_provider()
        return actor.id if actor is not None else None

    def _require_ready(self) -> None:
        if self.state != STATE_READY:
            raise StoreNotReadyError(f"store is {self.state}; mutations are not accepted yet")

    @contextmanager
    def _mutation(self):
        with self._lock:
            self._require_ready()
            backup = {t: dict(c) for t, c in self._collections.items()}
            tx = _Transaction(self._collections)
            try:
                yield tx
            except BaseException:
                self._collections = backup
                raise
            for event_type, entity_type, entity_id, entity in tx.changes:
                if entity is None:
                    self._writer.enqueue(WriteOperation(OP_DELETE, entity_type, entity_id))
                else:
                    self._writer.enqueue(WriteOperation(OP_UPSERT, entity_type, entity_id, entity.to_dict()))
        self._emit([StoreEvent(e[0], e[1], e[2]) for e in tx.changes])
        self._writer.kick()

    def _get(self, entity_type: str, entity_id: str):
        entity = self._collections[entity_type].get(entity_id)
        if entity is None:
            raise NotFoundError(ENTITY_CLASSES[entity_type].__name__, entity_id)
        return entity

    def _values(self, entity_type: str) -> list:
        with self._lock:
            return list(self._collections[entity_type].values())

    def _stamp(self) -> dict:
        now = self._now()
        return {"id": new_id(), "created_by": self._actor_id(), "created_at": now, "updated_at": now}

    # =========================================================================
    # PRODUCTS / STOCK
    # =========================================================================

    def _ensure_unique_sku(self, sku: str, *, exclude_id: str | None = None) -> None:
        wanted = sku.strip().lower()
        for product in self._collections["products"].values():
            if product.id != exclude_id and product.sku.strip().lower() == wanted:
                raise ConflictError(f"SKU {sku} already exists")

    def _record_movement(self, tx, product, movement_type, quantity, reason, reference=None) -> StockMovement:
        delta = -quantity if movement_type == MOVEMENT_OUT else quantity
        new_quantity = max(0, product.quantity + delta)
        movement = StockMovement(
            product_id=product.id,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            reference=reference,
            quantity_after=new_quantity,
            **self._stamp(),
        )
        if new_quantity != product.quantity:
            tx.put(product.evolve(quantity=new_quantity, updated_at=movement.created_at))
        tx.put(movement)
        return movement

    def add_product(self, data: dict) -> Product:
        patch = validate_payload(payload=data, policy=PRODUCT_POLICY, partial=False)
        opening = patch.pop("quantity", 0) or 0
        with self._mutation() as tx:
            self._ensure_unique_sku(patch["sku"])
            product = Product(**patch, quantity=0, **self._stamp())
            tx.put(product)
            if opening > 0:
                self._record_movement(tx, product, MOVEMENT_IN, opening, "opening stock")
            product = self._collections["products"][product.id]
        return product

    def update_product(self, product_id: str, data: dict) -> Product:
        """
        Merge fields into a product.

        A quantity in the patch is not written directly: it becomes an
        adjustment StockMovement for the difference, keeping the audit trail.
        """
        patch = validate_payload(payload=data, policy=PRODUCT_POLICY, partial=True)
        target_quantity = patch.pop("quantity", None)
        with self._mutation() as tx:
            product = self._get("products", product_id)
            if "sku" in patch:
                self._ensure_unique_sku(patch["sku"], exclude_id=product_id)
            product = product.evolve(**patch, updated_at=self._now())
            tx.put(product)
            if target_quantity is not None and target_quantity != product.quantity:
                self._record_movement(
                    tx, product, MOVEMENT_ADJUSTMENT, target_quantity - product.quantity, "manual edit"
                )
            product = self._collections["products"][product_id]
        return product

    def delete_product(self, product_id: str) -> Product:
        """Invoices keep their line snapshots; movements stay as history."""
        with self._mutation() as tx:
            product = self._get("products", product_id)
            tx.remove("products", product_id)
        return product

    def add_stock_movement(self, data: dict) -> StockMovement:
        patch = validate_payload(payload=data, policy=STOCK_MOVEMENT_POLICY, partial=False)
        enforce_rules_stock_movement(patch)
        with self._mutation() as tx:
            product = self._get("products", patch["product_id"])
            movement = self._record_movement(
                tx,
                product,
                patch["movement_type"],
                patch["quantity"],
                patch.get("reason"),
                patch.get("reference"),
            )
        return movement

    def get_product(self, product_id: str) -> Product:
        with self._lock:
            return self._get("products", product_id)

    def list_products(self) -> list[Product]:
        return self._values("products")

    def list_stock_movements(self, product_id: str | None = None) -> list[StockMovement]:
        return [m for m in self._values("stock_movements") if product_id is None or m.product_id == product_id]

    def search_products(self, query: str) -> list[Product]:
        q = (query or "").strip().lower()
        return [
            p for p in self._values("products")
            if not q or _matches(q, p.name, p.sku, p.barcode, p.category)
        ]

    def get_low_stock_products(self) -> list[Product]:
        return [p for p in self._values("products") if p.is_low_stock]

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def _refresh_customer(self, tx, customer_id: str) -> None:
        customer = self._collections["customers"].get(customer_id)
        if customer is None:
            return
        balance = sum(
            t.amount_cents for t in self._collections["customer_transactions"].values()
            if t.customer_id == customer_id
        )
        invoice_ids = {
            inv.id for inv in self._collections["invoices"].values() if inv.customer_id == customer_id
        }
        paid = sum(
            p.amount_cents for p in self._collections["payments"].values()
            if p.invoice_id in invoice_ids and p.status == PAYMENT_COMPLETED
        )
        per_point = self.profile.loyalty_cents_per_point
        points = paid // per_point if per_point > 0 else 0
        refreshed = customer.evolve(outstanding_balance_cents=max(0, balance), loyalty_points=points)
        if refreshed != customer:
            tx.put(refreshed.evolve(updated_at=self._now()))

    def _ledger(self, tx, customer_id, kind, amount_cents, *, invoice_id=None, payment_id=None, note=None):
        entry = CustomerTransaction(
            customer_id=customer_id,
            kind=kind,
            amount_cents=amount_cents,
            invoice_id=invoice_id,
            payment_id=payment_id,
            note=note,
            **self._stamp(),
        )
        tx.put(entry)
        return entry

    def add_customer(self, data: dict) -> Customer:
        patch = validate_payload(payload=data, policy=CUSTOMER_POLICY, partial=False)
        with self._mutation() as tx:
            customer = Customer(**patch, **self._stamp())
            tx.put(customer)
        return customer

    def update_customer(self, customer_id: str, data: dict) -> Customer:
        """Renaming a customer does not touch names already printed on invoices."""
        patch = validate_payload(payload=data, policy=CUSTOMER_POLICY, partial=True)
        with self._mutation() as tx:
            customer = self._get("customers", customer_id).evolve(**patch, updated_at=self._now())
            tx.put(customer)
        return customer

    def delete_customer(self, customer_id: str) -> Customer:
        with self._mutation() as tx:
            customer = self._get("customers", customer_id)
            invoices = [i for i in self._collections["invoices"].values() if i.customer_id == customer_id]
            if invoices:
                raise ReferentialIntegrityError(
                    f"Customer {customer.name} has {len(invoices)} invoice(s); delete them first",
                    dependents=len(invoices),
                )
            tx.remove("customers", customer_id)
            for entry in list(self._collections["customer_transactions"].values()):
                if entry.customer_id == customer_id:
                    tx.remove("customer_transactions", entry.id)
        return customer

    def record_customer_adjustment(self, customer_id: str, data: dict) -> CustomerTransaction:
        """Manual ledger entry; amount_cents is the signed effect on the balance."""
        patch = validate_payload(payload=data, policy=CUSTOMER_ADJUSTMENT_POLICY, partial=False)
        with self._mutation() as tx:
            self._get("customers", customer_id)
            entry = self._ledger(
                tx,
                customer_id,
                patch.get("kind") or TXN_ADJUSTMENT,
                patch["amount_cents"],
                note=patch.get("note"),
            )
            self._refresh_customer(tx, customer_id)
        return entry

    def get_customer(self, customer_id: str) -> Customer:
        with self._lock:
            return self._get("customers", customer_id)

    def list_customers(self) -> list[Customer]:
        return self._values("customers")

    def list_customer_transactions(self, customer_id: str | None = None) -> list[CustomerTransaction]:
        return [
            t for t in self._values("customer_transactions")
            if customer_id is None or t.customer_id == customer_id
        ]

    def search_customers(self, query: str) -> list[Customer]:
        q = (query or "").strip().lower()
        return [
            c for c in self._values("customers")
            if not q or _matches(q, c.name, c.phone, c.email, c.gst_number)
        ]

    def get_customers_over_credit_limit(self) -> list[Customer]:
        return [c for c in self._values("customers") if c.is_over_credit_limit]

    def get_customer_statement(
        self,
        customer_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict:
        """Ledger entries in [start, end) with a running balance."""
        with self._lock:
            customer = self._get("customers", customer_id)
            entries = [
                t for t in self._collections["customer_transactions"].values()
                if t.customer_id == customer_id
            ]
        entries.sort(key=lambda t: t.created_at or datetime.min)

        opening = sum(t.amount_cents for t in entries if start is not None and t.created_at < start)
        running = opening
        rows = []
        for entry in entries:
            if not reporting_service.in_window(entry.created_at, start, end):
                continue
            running += entry.amount_cents
            rows.append({**entry.to_dict(), "balance_cents": running})

        return {
            "customer": customer.to_dict(),
            "opening_balance_cents": opening,
            "closing_balance_cents": running,
            "entries": rows,
        }

    # =========================================================================
    # VENDORS / EXPENSES
    # =========================================================================

    def add_vendor(self, data: dict) -> Vendor:
        patch = validate_payload(payload=data, policy=VENDOR_POLICY, partial=False)
        with self._mutation() as tx:
            vendor = Vendor(**patch, **self._stamp())
            tx.put(vendor)
        return vendor

    def update_vendor(self, vendor_id: str, data: dict) -> Vendor:
        patch = validate_payload(payload=data, policy=VENDOR_POLICY, partial=True)
        with self._mutation() as tx:
            vendor = self._get("vendors", vendor_id).evolve(**patch, updated_at=self._now())
            tx.put(vendor)
        return vendor

    def delete_vendor(self, vendor_id: str) -> Vendor:
        with self._mutation() as tx:
            vendor = self._get("vendors", vendor_id)
            expenses = [e for e in self._collections["expenses"].values() if e.vendor_id == vendor_id]
            if expenses:
                raise ReferentialIntegrityError(
                    f"Vendor {vendor.name} has {len(expenses)} expense(s); delete them first",
                    dependents=len(expenses),
                )
            tx.remove("vendors", vendor_id)
        return vendor

    def get_vendor(self, vendor_id: str) -> Vendor:
        with self._lock:
            return self._get("vendors", vendor_id)

    def list_vendors(self) -> list[Vendor]:
        return self._values("vendors")

    def add_expense(self, data: dict) -> Expense:
        patch = validate_payload(payload=data, policy=EXPENSE_POLICY, partial=False)
        with self._mutation() as tx:
            if patch.get("vendor_id"):
                self._get("vendors", patch["vendor_id"])
            stamp = self._stamp()
            patch.setdefault("incurred_at", stamp["created_at"])
            expense = Expense(**patch, **stamp)
            tx.put(expense)
        return expense

    def update_expense(self, expense_id: str, data: dict) -> Expense:
        patch = validate_payload(payload=data, policy=EXPENSE_POLICY, partial=True)
        with self._mutation() as tx:
            expense = self._get("expenses", expense_id)
            if patch.get("vendor_id"):
                self._get("vendors", patch["vendor_id"])
            expense = expense.evolve(**patch, updated_at=self._now())
            tx.put(expense)
        return expense

    def delete_expense(self, expense_id: str) -> Expense:
        with self._mutation() as tx:
            expense = self._get("expenses", expense_id)
            tx.remove("expenses", expense_id)
        return expense

    def get_expense(self, expense_id: str) -> Expense:
        with self._lock:
            return self._get("expenses", expense_id)

    def list_expenses(self) -> list[Expense]:
        return self._values("expenses")

    # =========================================================================
    # INVOICES
    # =========================================================================

    def generate_invoice_number(self) -> str:
        with self._lock:
            numbers = [inv.invoice_number for inv in self._collections["invoices"].values()]
        return invoice_service.next_invoice_number(
            numbers,
            prefix=self.profile.invoice_prefix,
            width=self.profile.invoice_number_width,
            floor=self.profile.last_invoice_number,
            numbering=self.profile.invoice_numbering,
            year=self._now().year,
        )

    def _ensure_unique_number(self, number: str, *, exclude_id: str | None = None) -> None:
        for inv in self._collections["invoices"].values():
            if inv.id != exclude_id and inv.invoice_number == number:
                raise ConflictError(f"Invoice number {number} already exists")

    def _build_items(self, raw_items: list) -> tuple:
        items = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{index}] must be an object")
            line = validate_payload(payload=raw, policy=INVOICE_ITEM_POLICY, partial=False)
            product = self._get("products", line["product_id"])
            items.append(invoice_service.build_item(product, line["quantity"], line.get("unit_price_cents")))
        return tuple(items)

    def _with_payment_state(self, invoice: Invoice) -> Invoice:
        state = invoice_service.apply_payments(
            invoice.total_cents, invoice.id, self._collections["payments"].values()
        )
        status = invoice.status
        if state.payment_status == PAYMENT_STATUS_PAID and status != INVOICE_STATUS_CANCELLED:
            status = INVOICE_STATUS_PAID
        elif status == INVOICE_STATUS_PAID:
            # total grew past the payments
            status = INVOICE_STATUS_FINALIZED
        return invoice.evolve(
            paid_cents=state.paid_cents,
            balance_cents=state.balance_cents,
            payment_status=state.payment_status,
            status=status,
        )

    @staticmethod
    def _check_paid_status(patch: dict, invoice: Invoice) -> None:
        if patch.get("status") == INVOICE_STATUS_PAID and invoice.payment_status != PAYMENT_STATUS_PAID:
            raise ValidationError("status paid is set by completed payments covering the total")

    @staticmethod
    def _ledger_sign(invoice: Invoice) -> int:
        if invoice.invoice_type == INVOICE_TYPE_SALE:
            return 1
        if invoice.invoice_type == INVOICE_TYPE_RETURN:
            return -1
        return 0

    def add_invoice(self, data: dict) -> Invoice:
        patch = validate_payload(payload=data, policy=INVOICE_POLICY, partial=False)
        enforce_rules_invoice(patch)
        with self._mutation() as tx:
            customer = self._get("customers", patch["customer_id"])
            items = self._build_items(patch["items"])
            tax_rate = patch.get("tax_rate_bps", self.profile.default_tax_rate_bps)
            totals = invoice_service.compute_totals(
                items, tax_rate_bps=tax_rate, discount_cents=patch.get("discount_cents", 0)
            )
            number = patch.get("invoice_number")
            if number:
                self._ensure_unique_number(number)
            else:
                number = self.generate_invoice_number()

            stamp = self._stamp()
            due_date = patch.get("due_date") or stamp["created_at"] + timedelta(days=self.profile.default_due_days)
            invoice = Invoice(
                invoice_number=number,
                customer_id=customer.id,
                customer_name=customer.name,
                invoice_type=patch.get("invoice_type", INVOICE_TYPE_SALE),
                items=items,
                subtotal_cents=totals.subtotal_cents,
                discount_cents=totals.discount_cents,
                tax_rate_bps=tax_rate,
                tax_cents=totals.tax_cents,
                total_cents=totals.total_cents,
                status=patch.get("status", INVOICE_STATUS_DRAFT),
                due_date=due_date,
                notes=patch.get("notes"),
                **stamp,
            )
            invoice = self._with_payment_state(invoice)
            self._check_paid_status(patch, invoice)
            tx.put(invoice)

            sign = self._ledger_sign(invoice)
            if sign:
                kind = TXN_SALE if sign > 0 else TXN_RETURN
                self._ledger(tx, customer.id, kind, sign * invoice.total_cents, invoice_id=invoice.id)
            self._refresh_customer(tx, customer.id)
        return invoice

    def update_invoice(self, invoice_id: str, data: dict) -> Invoice:
        """
        Merge fields into an invoice.

        Totals are recomputed from items whenever items, discount or tax rate
        change; payment fields are recomputed from payments. The customer and
        the invoice type are fixed once issued.
        """
        patch = validate_payload(payload=data, policy=INVOICE_POLICY, partial=True)
        enforce_rules_invoice(patch)
        with self._mutation() as tx:
            current = self._get("invoices", invoice_id)
            if "customer_id" in patch and patch["customer_id"] != current.customer_id:
                raise ValidationError("customer_id cannot be changed; cancel and re-issue the invoice")
            if "invoice_type" in patch and patch["invoice_type"] != current.invoice_type:
                raise ValidationError("invoice_type cannot be changed once issued")
            if current.is_cancelled and patch.get("status", INVOICE_STATUS_CANCELLED) != INVOICE_STATUS_CANCELLED:
                raise ValidationError("cancelled invoices cannot be reopened")
            if patch.get("invoice_number"):
                self._ensure_unique_number(patch["invoice_number"], exclude_id=invoice_id)

            changes = {k: v for k, v in patch.items() if k in ("invoice_number", "status", "due_date", "notes")}
            items = self._build_items(patch["items"]) if "items" in patch else current.items
            if {"items", "discount_cents", "tax_rate_bps"} & patch.keys():
                tax_rate = patch.get("tax_rate_bps", current.tax_rate_bps)
                totals = invoice_service.compute_totals(
                    items,
                    tax_rate_bps=tax_rate,
                    discount_cents=patch.get("discount_cents", current.discount_cents),
                )
                changes.update(
                    items=items,
                    tax_rate_bps=tax_rate,
                    subtotal_cents=totals.subtotal_cents,
                    discount_cents=totals.discount_cents,
                    tax_cents=totals.tax_cents,
                    total_cents=totals.total_cents,
                )

            invoice = self._with_payment_state(current.evolve(**changes, updated_at=self._now()))
            self._check_paid_status(patch, invoice)
            tx.put(invoice)

            sign = self._ledger_sign(invoice)
            if sign and not current.is_cancelled:
                delta = invoice.total_cents - current.total_cents
                if delta:
                    self._ledger(tx, invoice.customer_id, TXN_ADJUSTMENT, sign * delta,
                                 invoice_id=invoice.id, note="invoice total changed")
                if invoice.is_cancelled:
                    self._ledger(tx, invoice.customer_id, TXN_ADJUSTMENT, -sign * invoice.balance_cents,
                                 invoice_id=invoice.id, note="invoice cancelled")
            self._refresh_customer(tx, invoice.customer_id)
        return invoice

    def delete_invoice(self, invoice_id: str) -> Invoice:
        """Removes the invoice and its payments; the customer ledger records the reversal."""
        with self._mutation() as tx:
            invoice = self._get("invoices", invoice_id)
            for payment in list(self._collections["payments"].values()):
                if payment.invoice_id == invoice_id:
                    tx.remove("payments", payment.id)
            tx.remove("invoices", invoice_id)
            sign = self._ledger_sign(invoice)
            if sign and not invoice.is_cancelled and invoice.balance_cents:
                self._ledger(tx, invoice.customer_id, TXN_ADJUSTMENT, -sign * invoice.balance_cents,
                             invoice_id=invoice.id, note=f"invoice {invoice.invoice_number} deleted")
            self._refresh_customer(tx, invoice.customer_id)
        return invoice

    def get_invoice(self, invoice_id: str) -> Invoice:
        with self._lock:
            return self._get("invoices", invoice_id)

    def list_invoices(self) -> list[Invoice]:
        return self._values("invoices")

    def search_invoices(self, query: str, *, status: str | None = None) -> list[Invoice]:
        q = (query or "").strip().lower()
        return [
            inv for inv in self._values("invoices")
            if (not q or _matches(q, inv.invoice_number, inv.customer_name))
            and (status is None or inv.status == status or inv.payment_status == status)
        ]

    def get_pending_invoices(self) -> list[Invoice]:
        return [inv for inv in self._values("invoices") if inv.is_open]

    def get_overdue_invoices(self) -> list[Invoice]:
        now = self._now()
        return [
            inv for inv in self.get_pending_invoices()
            if inv.due_date is not None and inv.due_date < now
        ]

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def _apply_invoice_payments(self, tx, invoice: Invoice) -> Invoice:
        refreshed = self._with_payment_state(invoice)
        if refreshed != invoice:
            refreshed = refreshed.evolve(updated_at=self._now())
            tx.put(refreshed)
        return refreshed

    def add_payment(self, data: dict) -> Payment:
        """
        Record a payment and recompute the invoice from all of its payments.

        Raises:
            NotFoundError: invoice does not exist
            ValidationError: invoice is cancelled or not a sale
        """
        patch = validate_payload(payload=data, policy=PAYMENT_POLICY, partial=False)
        with self._mutation() as tx:
            invoice = self._get("invoices", patch["invoice_id"])
            if invoice.is_cancelled:
                raise ValidationError("Cannot add payment to a cancelled invoice")
            if invoice.invoice_type != INVOICE_TYPE_SALE:
                raise ValidationError(f"Cannot add payment to a {invoice.invoice_type} invoice")

            payment = Payment(
                invoice_id=invoice.id,
                amount_cents=patch["amount_cents"],
                method=patch.get("method", METHOD_CASH),
                status=patch.get("status", PAYMENT_COMPLETED),
                reference=patch.get("reference"),
                **self._stamp(),
            )
            tx.put(payment)
            self._apply_invoice_payments(tx, invoice)
            if payment.status == PAYMENT_COMPLETED:
                self._ledger(tx, invoice.customer_id, TXN_PAYMENT, -payment.amount_cents,
                             invoice_id=invoice.id, payment_id=payment.id)
            self._refresh_customer(tx, invoice.customer_id)
        return payment

    def update_payment_status(self, payment_id: str, status: str) -> Payment:
        """Settle a pending payment as completed or failed. Completed payments are final."""
        if status not in (PAYMENT_COMPLETED, PAYMENT_FAILED):
            raise ValidationError(f"status must be {PAYMENT_COMPLETED} or {PAYMENT_FAILED}")
        with self._mutation() as tx:
            payment = self._get("payments", payment_id)
            if payment.status != PAYMENT_PENDING:
                raise ValidationError(f"Only pending payments can change status (payment is {payment.status})")
            payment = payment.evolve(status=status, updated_at=self._now())
            tx.put(payment)
            invoice = self._collections["invoices"].get(payment.invoice_id)
            if invoice is not None:
                self._apply_invoice_payments(tx, invoice)
                if status == PAYMENT_COMPLETED:
                    self._ledger(tx, invoice.customer_id, TXN_PAYMENT, -payment.amount_cents,
                                 invoice_id=invoice.id, payment_id=payment.id)
                self._refresh_customer(tx, invoice.customer_id)
        return payment

    def get_payment(self, payment_id: str) -> Payment:
        with self._lock:
            return self._get("payments", payment_id)

    def list_payments(self, invoice_id: str | None = None) -> list[Payment]:
        return [p for p in self._values("payments") if invoice_id is None or p.invoice_id == invoice_id]

    # =========================================================================
    # REMOTE CHANGES
    # =========================================================================

    def apply_remote_change(self, notification: ChangeNotification) -> str | None:
        """Apply a change pushed by another writer. Returns the action applied."""
        if notification.origin is not None and notification.origin == self.origin:
            logger.debug("Skipping own change for %s %s", notification.entity_type, notification.entity_id)
            return None
        with self._lock:
            if self.state != STATE_READY:
                if self._held_changes is not None:
                    self._held_changes.append(notification)
                else:
                    logger.debug("Ignoring remote change while %s", self.state)
                return None
            action = apply_change(self._collections, notification, ENTITY_CLASSES)
        if action is not None:
            logger.debug(
                "Applied remote %s for %s %s",
                notification.event_type,
                notification.entity_type,
                notification.entity_id,
            )
            self._emit([StoreEvent(notification.event_type, notification.entity_type,
                                   notification.entity_id, SOURCE_REMOTE)])
        return action

    def sync_remote(self) -> int:
        """Ask the port to deliver pending change notifications."""
        return self.port.poll()

    def export_state(self) -> dict[str, list[dict]]:
        with self._lock:
            return {
                entity_type: [entity.to_dict() for entity in collection.values()]
                for entity_type, collection in self._collections.items()
            }

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    def get_total_sales(self, start: datetime | None = None, end: datetime | None = None) -> int:
        return reporting_service.total_sales(self._values("invoices"), start, end)

    def get_total_expenses(self, start: datetime | None = None, end: datetime | None = None) -> int:
        return reporting_service.total_expenses(self._values("expenses"), start, end)

    def get_profit(self, start: datetime | None = None, end: datetime | None = None) -> int:
        with self._lock:
            invoices = list(self._collections["invoices"].values())
            expenses = list(self._collections["expenses"].values())
        return reporting_service.profit(invoices, expenses, start, end)

    def get_top_products(self, n: int = 5) -> list[dict]:
        with self._lock:
            products = list(self._collections["products"].values())
            invoices = list(self._collections["invoices"].values())
        return reporting_service.top_products(products, invoices, n)

    def get_top_customers(self, n: int = 5) -> list[dict]:
        with self._lock:
            customers = list(self._collections["customers"].values())
            invoices = list(self._collections["invoices"].values())
        return reporting_service.top_customers(customers, invoices, n)

    def get_sales_by_period(self, group_by: str = "month", start=None, end=None) -> dict:
        return reporting_service.sales_by_period(self._values("invoices"), group_by=group_by, start=start, end=end)

    def get_expenses_by_category(self, start=None, end=None) -> list[dict]:
        return reporting_service.expenses_by_category(self._values("expenses"), start, end)

    def get_inventory_value(self) -> int:
        return reporting_service.inventory_value(self._values("products"))

    def get_inventory_by_category(self) -> list[dict]:
        return reporting_service.inventory_by_category(self._values("products"))

    def get_stock_summary(self) -> dict:
        return reporting_service.stock_summary(self._values("products"))

    def get_invoice_status_counts(self) -> dict:
        return reporting_service.invoice_status_counts(self._values("invoices"))

    def get_average_invoice_value(self) -> int:
        return reporting_service.average_invoice_value(self._values("invoices"))

    def get_outstanding_total(self) -> int:
        return reporting_service.outstanding_total(self._values("invoices"))

    def get_repeat_customer_count(self) -> int:
        return reporting_service.repeat_customer_count(self._values("invoices"))

    def get_dashboard_summary(self, time_range: str | None = None, *, start=None, end=None, top_n: int = 5) -> dict:
        now = self._now()
        if time_range is not None:
            start, end = reporting_service.resolve_time_range(time_range, now)
        with self._lock:
            products = list(self._collections["products"].values())
            customers = list(self._collections["customers"].values())
            invoices = list(self._collections["invoices"].values())
            expenses = list(self._collections["expenses"].values())
        summary = reporting_service.dashboard_summary(
            products=products,
            customers=customers,
            invoices=invoices,
            expenses=expenses,
            now=now,
            start=start,
            end=end,
            top_n=top_n,
        )
        summary["currency"] = self.profile.currency
        summary["time_range"] = time_range
        return summary
