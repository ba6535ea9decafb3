from bizmanager.services.seed_service import seed_sample_data


def test_seed_creates_sample_business(store):
    counts = seed_sample_data(store)

    assert counts == {"products": 5, "customers": 3, "invoices": 2}
    assert [p.sku for p in store.list_products()] == ["WH001", "CM001", "OC001", "SC001", "WB001"]
    assert [p.sku for p in store.get_low_stock_products()] == ["CM001", "WB001"]


def test_seeded_invoices_and_balances(store):
    seed_sample_data(store)
    by_number = {inv.invoice_number: inv for inv in store.list_invoices()}

    first = by_number["INV-001"]
    assert first.subtotal_cents == 22497
    assert first.tax_cents == 2250
    assert first.total_cents == 24747
    assert first.payment_status == "pending"

    second = by_number["INV-002"]
    assert second.payment_status == "paid"
    assert second.status == "paid"

    john = store.get_customer(first.customer_id)
    assert john.outstanding_balance_cents == 24747
    assert store.get_customer(second.customer_id).outstanding_balance_cents == 0
    assert store.generate_invoice_number() == "INV-003"


def test_load_seeds_only_an_empty_scope(make_store):
    first = make_store(load=False)
    first.load(seed=seed_sample_data)
    assert len(first.list_products()) == 5

    second = make_store(load=False)
    second.load(seed=seed_sample_data)
    assert len(second.list_products()) == 5
