"""
`flask store` commands against the in-memory app.
"""

from bizmanager.errors import ConflictError
from bizmanager.extensions import get_business_store


def get_business_store_for(app):
    with app.app_context():
        return get_business_store()


def test_next_number_on_empty_store(app):
    result = app.test_cli_runner().invoke(args=["store", "next-number"])
    assert result.exit_code == 0
    assert result.output.strip() == "INV-001"


def test_seed_then_skip(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["store", "seed"])
    assert result.exit_code == 0
    assert "Seeded 5 products, 3 customers, 2 invoices" in result.output

    again = runner.invoke(args=["store", "seed"])
    assert again.exit_code == 0
    assert "SKIP" in again.output
    assert len(get_business_store_for(app).list_products()) == 5


def test_low_stock_and_summary_after_seed(app):
    runner = app.test_cli_runner()
    runner.invoke(args=["store", "seed"])

    low = runner.invoke(args=["store", "low-stock"])
    assert "CM001" in low.output
    assert "WB001" in low.output
    assert "OC001" not in low.output

    summary = runner.invoke(args=["store", "summary"])
    assert summary.exit_code == 0
    assert "INR 164.99" in summary.output
    assert "all time" in summary.output

    bad = runner.invoke(args=["store", "summary", "--range", "decade"])
    assert bad.exit_code != 0


def test_empty_low_stock_and_flush(app):
    runner = app.test_cli_runner()
    assert "No low stock products." in runner.invoke(args=["store", "low-stock"]).output

    result = runner.invoke(args=["store", "flush"])
    assert result.exit_code == 0
    assert "PASS Flushed 0 pending write(s)" in result.output


def test_commands_refuse_unready_store(app):
    store = get_business_store_for(app)
    store.state = "failed"
    try:
        result = app.test_cli_runner().invoke(args=["store", "next-number"])
    finally:
        store.state = "ready"
    assert result.exit_code != 0
    assert "Business store is failed" in result.output


def test_forced_reseed_reports_conflict(app):
    runner = app.test_cli_runner()
    runner.invoke(args=["store", "seed"])

    result = runner.invoke(args=["store", "seed", "--force"])
    assert result.exit_code == 1
    assert "Seeding failed" in result.output
    assert "WH001" in result.output
    assert not isinstance(result.exception, ConflictError)
