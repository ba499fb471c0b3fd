import asyncio
from datetime import date
from decimal import Decimal

import httpx
import pytest

from conftest import COMPANY, make_erp_client
from planner.services.erp_client import (
    ERPAuthenticationError,
    ERPRateLimitError,
    ERPRequestError,
    _unwrap,
    is_general_warehouse,
)


def test_concurrent_callers_share_one_login(erp_client, fake_erp):
    async def scenario():
        return await asyncio.gather(*(erp_client.authenticator.get_auth_headers() for _ in range(10)))

    headers = asyncio.run(scenario())

    assert fake_erp.auth_calls == 1
    assert all(h["Authorization"] == "Token token-1" for h in headers)
    assert erp_client.authenticator.pending is None


def test_token_is_reused_until_expiry(fake_erp):
    now = [1000.0]
    client = make_erp_client(fake_erp)
    client.authenticator.clock = lambda: now[0]

    asyncio.run(client.authenticator.get_token())
    asyncio.run(client.authenticator.get_token())
    assert fake_erp.auth_calls == 1

    now[0] += 3601
    asyncio.run(client.authenticator.get_token())
    assert fake_erp.auth_calls == 2


def test_rejected_credentials_raise_and_clear_pending(erp_client, fake_erp):
    fake_erp.overrides["/auth/"] = [httpx.Response(401, json={"detail": "bad credentials"})]

    with pytest.raises(ERPAuthenticationError):
        asyncio.run(erp_client.authenticator.get_auth_headers())

    assert erp_client.authenticator.pending is None
    assert erp_client.authenticator.token is None


def test_rate_limit_waits_server_hint_plus_one_then_succeeds(erp_client, fake_erp, sleeper):
    fake_erp.add_document("FAVE", date(2026, 3, 2), [{"codigo": "A", "cant": 1}])
    fake_erp.overrides["/documents/"] = [httpx.Response(429, json={"retry": 3})]

    documents = asyncio.run(erp_client.fetch_sales_documents("FAVE", date(2026, 3, 1), date(2026, 3, 31)))

    assert len(documents) == 1
    assert documents[0]["_doc_kind"] == "FAVE"
    assert sleeper.calls == [4]


def test_rate_limit_uses_retry_after_header_or_default(fake_erp, sleeper):
    client = make_erp_client(fake_erp, sleeper, rate_limit_default_retry=10)
    fake_erp.overrides["/stock/"] = [
        httpx.Response(429, headers={"Retry-After": "2"}),
        httpx.Response(429, text="slow down"),
    ]

    asyncio.run(client.fetch_stock_snapshot(date(2026, 3, 15)))

    assert sleeper.calls == [3, 11]


def test_rate_limit_is_bounded(fake_erp, sleeper):
    client = make_erp_client(fake_erp, sleeper, rate_limit_max_attempts=3)
    fake_erp.overrides["/documents/"] = [httpx.Response(429, json={"retry": 1}) for _ in range(10)]

    with pytest.raises(ERPRateLimitError) as excinfo:
        asyncio.run(client.fetch_sales_documents("FAVE", date(2026, 3, 1), date(2026, 3, 2)))

    assert excinfo.value.retry_after == 1
    assert len(sleeper.calls) == 2


def test_server_error_on_list_is_not_retried(erp_client, fake_erp, sleeper):
    fake_erp.overrides["/documents/"] = [httpx.Response(503)]

    with pytest.raises(ERPRequestError) as excinfo:
        asyncio.run(erp_client.fetch_sales_documents("FAVE", date(2026, 3, 1), date(2026, 3, 2)))

    assert excinfo.value.status_code == 503
    assert sleeper.calls == []


def test_long_ranges_are_split_into_windows(erp_client, fake_erp):
    asyncio.run(erp_client.fetch_sales_documents("BOVE", date(2024, 1, 1), date(2025, 6, 30)))

    ranges = [
        (request.url.params["df"], request.url.params["dt"])
        for request in fake_erp.requests
        if request.url.path.startswith("/documents/")
    ]
    assert ranges == [("20240101", "20241230"), ("20241231", "20250630")]


def test_all_kinds_are_fetched_and_tagged(erp_client, fake_erp):
    fake_erp.add_document("FAVE", date(2026, 3, 2), [{"codigo": "A", "cant": 1}])
    fake_erp.add_document("NCVE", date(2026, 3, 2), [{"codigo": "A", "cant": -1}])

    documents = asyncio.run(erp_client.fetch_all_sales_documents(date(2026, 3, 1), date(2026, 3, 2)))

    assert sorted(document["_doc_kind"] for document in documents) == ["FAVE", "NCVE"]


def test_detail_fetch_retries_transient_errors_with_linear_backoff(erp_client, fake_erp, sleeper):
    number = fake_erp.add_document("FAVE", date(2026, 3, 2), [{"codigo": "A", "cant": 1}], docnumreg="555")
    fake_erp.overrides["/documents/"] = [httpx.Response(500), httpx.Response(502)]

    detail = asyncio.run(erp_client.fetch_document_detail(number, "FAVE", max_retries=2))

    assert detail["docnumreg"] == "555"
    assert sleeper.calls == [1, 2]


def test_detail_fetch_returns_none_when_exhausted(erp_client, fake_erp, sleeper):
    fake_erp.overrides["/documents/"] = [httpx.Response(500) for _ in range(5)]

    assert asyncio.run(erp_client.fetch_document_detail("777", "FAVE", max_retries=2)) is None
    assert len(sleeper.calls) == 2


def test_detail_fetch_returns_none_on_not_found(erp_client):
    assert asyncio.run(erp_client.fetch_document_detail("missing", "FAVE")) is None


def test_detail_fetch_picks_matching_entry(erp_client, fake_erp):
    fake_erp.overrides["/documents/"] = [
        httpx.Response(200, json=[{"docnumreg": 1, "detalles": []}, {"docnumreg": 2, "detalles": []}])
    ]

    detail = asyncio.run(erp_client.fetch_document_detail(2, "FAVE"))

    assert detail["docnumreg"] == 2


def test_stock_snapshot_counts_general_warehouses_only(erp_client, fake_erp):
    fake_erp.stock = [
        {"cod_prod": "A", "bodega": "Bodega General", "saldo": "10"},
        {"cod_prod": "A", "bodega": "Bodega Temporal", "saldo": "99"},
        {"cod_prod": "B", "saldo": 4},
        {"codigo": "C", "stock": [
            {"bodega": "General", "saldo": 3},
            {"bodega": "Temporary transit", "saldo": 7},
            {"bodega": "Sala", "saldo": -2},
        ]},
    ]

    stock = asyncio.run(erp_client.fetch_stock_snapshot(date(2026, 3, 15)))

    assert stock == {"A": Decimal("10"), "B": Decimal("4"), "C": Decimal("3")}
    stock_request = [r for r in fake_erp.requests if r.url.path.startswith("/stock/")][0]
    assert stock_request.url.params["dt"] == "20260315"


def test_warehouse_heuristic():
    assert is_general_warehouse({"bodega": "Bodega General"})
    assert is_general_warehouse({})
    assert not is_general_warehouse({"almacen": "TEMPORAL"})


def test_product_catalog_skips_entries_without_sku(erp_client, fake_erp):
    fake_erp.products = [
        {"codigo_prod": " KC-1 ", "nombre": "Kitchen  Cloth", "familia": "Cleaning"},
        {"nombre": "No code"},
        {"cod": "KC-2", "descrip": "Sponge"},
    ]

    products = asyncio.run(erp_client.fetch_product_catalog())

    assert [(p.sku, p.description, p.family) for p in products] == [
        ("KC-1", "Kitchen Cloth", "Cleaning"),
        ("KC-2", "Sponge", ""),
    ]


def test_unwrap_accepts_envelope_bare_list_and_object():
    assert _unwrap({"data": [{"a": 1}]}) == [{"a": 1}]
    assert _unwrap([{"a": 1}, "junk"]) == [{"a": 1}]
    assert _unwrap({"a": 1}) == [{"a": 1}]
    assert _unwrap(None) == []


def test_failing_kind_cancels_the_other_fetches(fake_erp):
    async def yielding_sleep(seconds):
        await asyncio.sleep(0)

    client = make_erp_client(fake_erp, yielding_sleep, document_kinds=("FAVE", "BOVE"), rate_limit_max_attempts=50)
    fake_erp.overrides[f"/documents/{COMPANY}/FAVE"] = [httpx.Response(429, json={"retry": 0}) for _ in range(50)]
    fake_erp.overrides[f"/documents/{COMPANY}/BOVE"] = [httpx.Response(503)]

    def fave_requests():
        return sum(1 for request in fake_erp.requests if request.url.path.endswith("/FAVE/V"))

    async def scenario():
        with pytest.raises(ERPRequestError) as excinfo:
            await client.fetch_all_sales_documents(date(2026, 3, 1), date(2026, 3, 2))
        seen = fave_requests()
        for _ in range(20):
            await asyncio.sleep(0)
        return excinfo.value, seen

    error, seen = asyncio.run(scenario())

    assert error.status_code == 503
    assert fave_requests() == seen
    assert len(fake_erp.overrides[f"/documents/{COMPANY}/FAVE"]) > 40
