"""
CLI command tests (flask system/catalog/transactions groups).
"""

from cashier.models import Product, Store
from cashier.services import transaction_service
from cashier.services.cart_service import Cart


def test_add_store_converts_tax_rate(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["catalog", "add-store", "--name", "Toko Baru", "--tax-rate", "0.11"])

    assert result.exit_code == 0
    assert "PASS" in result.output
    assert db_session.query(Store).filter_by(name="Toko Baru").one().tax_rate_bps == 1100


def test_add_store_rejects_bad_rate(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["catalog", "add-store", "--name", "Toko Baru", "--tax-rate", "1.5"])
    assert result.exit_code == 1
    assert db_session.query(Store).count() == 0


def test_add_product_and_low_stock(app, db_session, store):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "catalog", "add-product", "--store-id", str(store.id), "--sku", "GUL-1",
        "--name", "Gula Pasir", "--price-cents", "1500", "--stock", "2",
    ])
    assert result.exit_code == 0
    assert db_session.query(Product).filter_by(sku="GUL-1").one().stock == 2

    result = runner.invoke(args=["catalog", "low-stock", "--store-id", str(store.id)])
    assert "LOW" in result.output
    assert "Gula Pasir" in result.output


def test_receipt_reprint(app, db_session, store, cashier, tea):
    cart = Cart()
    cart.add_line(tea.id, 1, tea.price_cents, name=tea.name)
    tx = transaction_service.commit(cart.build_checkout_request(1100, "cash"), store.id, cashier.id).transaction

    runner = app.test_cli_runner()
    result = runner.invoke(args=["transactions", "receipt", tx.id])

    assert result.exit_code == 0
    assert result.output.startswith("TOKO MAJU\n")
    assert "Total: Rp 11.10" in result.output


def test_show_missing_transaction(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["transactions", "show", "nope"])
    assert result.exit_code == 1
    assert "FAIL" in result.output
