import asyncio
import logging
from datetime import date
from decimal import Decimal

import httpx
import pytest

from conftest import TODAY, line
from planner.models import CurrentMonthSale, HistoricalMonthlySale, Product, SyncLogEntry
from planner.models.product import AUTO_CREATED_DESCRIPTION
from planner.services.erp_client import ERPAuthenticationError
from planner.services.sync_service import (
    fetch_sales_window,
    refresh_stock,
    sync_current_month,
    sync_day_sales,
    sync_full_month,
    sync_initial,
    sync_product_catalog,
)


def _history(db, sku, year, month):
    return (
        db.query(HistoricalMonthlySale)
        .join(Product)
        .filter(Product.sku == sku, HistoricalMonthlySale.year == year, HistoricalMonthlySale.month == month)
        .one_or_none()
    )


def _current(db, sku):
    return db.query(CurrentMonthSale).join(Product).filter(Product.sku == sku).one_or_none()


def test_full_month_sync_is_idempotent(db, erp_client, fake_erp, make_product):
    make_product("A")
    fake_erp.add_document("FAVE", date(2026, 1, 5), [line("A", 4, 100)])
    fake_erp.add_document("BOVE", date(2026, 1, 20), [line("A", 6, 100)])

    asyncio.run(sync_full_month(db, erp_client, 2026, 1, today=TODAY))
    first = _history(db, "A", 2026, 1)
    assert first.quantity_sold == Decimal("10")
    assert first.net_amount == Decimal("1000")

    asyncio.run(sync_full_month(db, erp_client, 2026, 1, today=TODAY))
    db.expire_all()
    again = _history(db, "A", 2026, 1)
    assert again.quantity_sold == Decimal("10")
    assert db.query(HistoricalMonthlySale).count() == 1


def test_full_month_sync_removes_rows_without_sales(db, erp_client, fake_erp, make_product, add_history):
    stale = make_product("STALE")
    add_history(stale, 2026, 1, 9)
    fake_erp.add_document("FAVE", date(2026, 1, 5), [line("A", 1)])

    stats = asyncio.run(sync_full_month(db, erp_client, 2026, 1, today=TODAY))

    assert stats["rows_removed"] == 1
    assert _history(db, "STALE", 2026, 1) is None


def test_full_month_sync_rejects_future_month(db, erp_client):
    with pytest.raises(ValueError):
        asyncio.run(sync_full_month(db, erp_client, 2026, 5, today=TODAY))


def test_day_sync_accumulates(db, erp_client, fake_erp, make_product):
    make_product("A")
    fake_erp.add_document("FAVE", date(2026, 2, 10), [line("A", 3, 10)])

    asyncio.run(sync_day_sales(db, erp_client, date(2026, 2, 10)))
    asyncio.run(sync_day_sales(db, erp_client, date(2026, 2, 10)))

    row = _history(db, "A", 2026, 2)
    assert row.quantity_sold == Decimal("6")
    assert row.net_amount == Decimal("60")


def test_unknown_sku_in_sales_is_auto_created_once(db, erp_client, fake_erp):
    fake_erp.add_document("FAVE", date(2026, 2, 10), [line("NEW-1", 2)])
    fake_erp.add_document("BOVE", date(2026, 2, 11), [line("NEW-1", 1)])

    stats = asyncio.run(sync_full_month(db, erp_client, 2026, 2, today=TODAY))

    products = db.query(Product).filter(Product.sku == "NEW-1").all()
    assert len(products) == 1
    assert products[0].description == AUTO_CREATED_DESCRIPTION
    assert stats["products_created"] == 1
    assert _history(db, "NEW-1", 2026, 2).quantity_sold == Decimal("3")


def test_documents_without_inline_detail_are_hydrated(db, erp_client, fake_erp, make_product, sleeper):
    make_product("A")
    for day in (2, 3, 4):
        fake_erp.add_document("FAVE", date(2026, 2, day), [line("A", 1)], inline=False)

    window = asyncio.run(fetch_sales_window(erp_client, date(2026, 2, 1), date(2026, 2, 28), batch_size=2, batch_delay=0.25))

    assert window.hydrated_count == 3
    assert window.totals["A"].quantity == Decimal("3")
    # one pause between the two batches
    assert sleeper.calls == [0.25]


def test_detail_failures_are_tallied_and_first_payload_dumped(erp_client, fake_erp, caplog):
    fake_erp.add_document("FAVE", date(2026, 2, 2), [line("A", 1)], inline=False)
    fake_erp.add_document("FAVE", date(2026, 2, 3), [line("A", 2)], docnumreg="gone-1", inline=False)
    fake_erp.add_document("FAVE", date(2026, 2, 4), [line("A", 2)], docnumreg="gone-2", inline=False)
    del fake_erp.details["gone-1"]
    del fake_erp.details["gone-2"]

    with caplog.at_level(logging.ERROR, logger="planner.services.sync_service"):
        window = asyncio.run(fetch_sales_window(erp_client, date(2026, 2, 1), date(2026, 2, 28), batch_delay=0))

    assert window.detail_failures == 2
    assert window.totals["A"].quantity == Decimal("1")
    dumps = [record for record in caplog.records if "First extraction failure" in record.getMessage()]
    assert len(dumps) == 1


def test_authentication_failure_aborts_sales_window(erp_client, fake_erp):
    fake_erp.add_document("FAVE", date(2026, 2, 2), [line("A", 1)], inline=False)
    fake_erp.overrides["/auth/"] = [httpx.Response(401), httpx.Response(401)]

    with pytest.raises(ERPAuthenticationError):
        asyncio.run(fetch_sales_window(erp_client, date(2026, 2, 1), date(2026, 2, 28)))


def test_current_month_sync_upserts_and_reconciles(db, erp_client, fake_erp, make_product, add_current):
    a = make_product("A")
    make_product("B")
    gone = make_product("GONE")
    add_current(a, quantity=99, stock=1)
    add_current(gone, quantity=5, stock=5)

    fake_erp.add_document("FAVE", date(2026, 3, 3), [line("A", 4, 10)])
    fake_erp.add_document("FAVE", date(2026, 3, 15), [line("A", 100)])  # today: excluded
    fake_erp.stock = [
        {"cod_prod": "A", "saldo": 12},
        {"cod_prod": "B", "saldo": 7},
        {"cod_prod": "UNKNOWN", "saldo": 3},
    ]

    stats = asyncio.run(sync_current_month(db, erp_client, today=TODAY))

    db.expire_all()
    assert _current(db, "A").quantity_sold == Decimal("4")
    assert _current(db, "A").stock_on_hand == Decimal("12")
    assert _current(db, "B").quantity_sold == Decimal("0")
    assert _current(db, "B").stock_on_hand == Decimal("7")
    assert _current(db, "GONE") is None
    assert db.query(Product).filter(Product.sku == "UNKNOWN").count() == 0
    assert stats["stock_unknown_skus"] == 1
    assert stats["rows_removed"] == 1
    assert stats["date_to"] == "2026-03-14"

    log = db.query(SyncLogEntry).filter(SyncLogEntry.sync_type == "current_month_sales").one()
    assert log.products_with_sales_count == 1
    assert log.target_month == 3


def test_current_month_sync_including_today(db, erp_client, fake_erp, make_product):
    make_product("A")
    fake_erp.add_document("FAVE", date(2026, 3, 3), [line("A", 4)])
    fake_erp.add_document("FAVE", date(2026, 3, 15), [line("A", 1)])

    asyncio.run(sync_current_month(db, erp_client, include_today=True, today=TODAY))

    assert _current(db, "A").quantity_sold == Decimal("5")


def test_current_month_sync_on_first_day_skips_sales(db, erp_client, fake_erp, make_product):
    make_product("A")
    fake_erp.stock = [{"cod_prod": "A", "saldo": 2}]

    stats = asyncio.run(sync_current_month(db, erp_client, today=date(2026, 3, 1)))

    assert stats["documents"] == 0
    assert not [r for r in fake_erp.requests if r.url.path.startswith("/documents/")]
    assert _current(db, "A").stock_on_hand == Decimal("2")


def test_refresh_stock_leaves_sales_untouched(db, erp_client, fake_erp, make_product, add_current):
    a = make_product("A")
    make_product("B")
    add_current(a, quantity=8, stock=1)
    fake_erp.stock = [{"cod_prod": "A", "saldo": 30}, {"cod_prod": "B", "saldo": 2}, {"cod_prod": "Z", "saldo": 1}]

    stats = asyncio.run(refresh_stock(db, erp_client, today=TODAY))

    db.expire_all()
    assert _current(db, "A").quantity_sold == Decimal("8")
    assert _current(db, "A").stock_on_hand == Decimal("30")
    assert _current(db, "B").stock_on_hand == Decimal("2")
    assert stats == {"stock_skus": 3, "updated": 1, "created": 1, "unknown_skus": 1}


def test_product_catalog_sync_creates_and_updates(db, erp_client, fake_erp, make_product):
    make_product("KC-1", description="Old name", family="")
    make_product("KC-9", description="Local only")
    fake_erp.products = [
        {"codigo_prod": "KC-1", "nombre": "Kitchen Cloth", "familia": "Cleaning"},
        {"codigo_prod": "KC-2", "nombre": "Sponge", "familia": "Cleaning"},
    ]

    stats = asyncio.run(sync_product_catalog(db, erp_client))

    assert stats == {"fetched": 2, "created": 1, "updated": 1, "unchanged": 0}
    assert db.query(Product).filter(Product.sku == "KC-1").one().family == "Cleaning"
    assert db.query(Product).filter(Product.sku == "KC-9").count() == 1


def test_initial_sync_backfills_trailing_months(db, erp_client, fake_erp):
    fake_erp.products = [{"codigo_prod": "A", "nombre": "Alpha"}]
    fake_erp.add_document("FAVE", date(2026, 1, 10), [line("A", 2)])
    fake_erp.add_document("FAVE", date(2026, 2, 10), [line("A", 3)])
    fake_erp.add_document("FAVE", date(2026, 3, 10), [line("A", 4)])

    results = asyncio.run(sync_initial(db, erp_client, months=2, today=TODAY))

    assert [(m["year"], m["month"]) for m in results["months"]] == [(2026, 1), (2026, 2)]
    assert _history(db, "A", 2026, 1).quantity_sold == Decimal("2")
    assert _history(db, "A", 2026, 2).quantity_sold == Decimal("3")
    assert _history(db, "A", 2026, 3) is None
    assert _current(db, "A").quantity_sold == Decimal("4")


def test_failed_sync_log_write_keeps_the_sales(db, erp_client, fake_erp, make_product, monkeypatch, caplog):
    make_product("A")
    fake_erp.add_document("FAVE", date(2026, 2, 10), [line("A", 3, 10)])
    real_commit = db.commit
    failures = []

    def flaky_commit():
        if not failures and any(isinstance(obj, SyncLogEntry) for obj in db.new):
            failures.append(True)
            raise RuntimeError("simulated audit write failure")
        return real_commit()

    monkeypatch.setattr(db, "commit", flaky_commit)

    with caplog.at_level(logging.ERROR, logger="planner.services.sync_log_service"):
        stats = asyncio.run(sync_day_sales(db, erp_client, date(2026, 2, 10)))

    assert failures == [True]
    assert stats["products_with_sales"] == 1
    assert "Failed to write sync log entry" in caplog.text
    monkeypatch.undo()
    db.expire_all()
    assert _history(db, "A", 2026, 2).quantity_sold == Decimal("3")
    assert db.query(SyncLogEntry).count() == 0
