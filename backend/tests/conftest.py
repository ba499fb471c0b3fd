"""Shared fixtures: in-memory database per test and a fake ERP behind httpx.MockTransport."""
import copy
import os
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ERP_BASE_URL", "")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from planner.core.database import build_engine  # noqa: E402
from planner.models import Base, CurrentMonthSale, HistoricalMonthlySale, Product  # noqa: E402
from planner.services.erp_auth import ERPAuthenticator  # noqa: E402
from planner.services.erp_client import ERPClient  # noqa: E402

ERP_BASE = "http://erp.test"
COMPANY = "76000000-0"


class FakeERP:
    """Minimal ERP: documents filtered by df/dt, details by docnumreg, stock, catalog."""

    def __init__(self):
        self.documents: Dict[str, List[Dict[str, Any]]] = {}
        self.details: Dict[str, Dict[str, Any]] = {}
        self.stock: List[Dict[str, Any]] = []
        self.products: List[Dict[str, Any]] = []
        self.auth_calls = 0
        self.requests: List[httpx.Request] = []
        # path prefix -> list of responses served (in order) before normal handling
        self.overrides: Dict[str, List[httpx.Response]] = {}

    def add_document(self, kind: str, on: date, lines: List[Dict[str, Any]], docnumreg: Optional[str] = None, inline: bool = True):
        number = docnumreg or f"{kind}-{len(self.documents.get(kind, [])) + 1}"
        document = {"docnumreg": number, "fecha": on.strftime("%Y%m%d")}
        if inline:
            document["detalles"] = lines
        self.documents.setdefault(kind, []).append(document)
        self.details[number] = {"docnumreg": number, "fecha": on.strftime("%Y%m%d"), "detalles": lines}
        return number

    def _override(self, path: str) -> Optional[httpx.Response]:
        for prefix, queue in self.overrides.items():
            if path.startswith(prefix) and queue:
                return queue.pop(0)
        return None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if path == "/auth/":
            self.auth_calls += 1
            override = self._override(path)
            if override is not None:
                return override
            return httpx.Response(200, json={"auth_token": f"token-{self.auth_calls}"})

        override = self._override(path)
        if override is not None:
            return override

        if path.startswith(f"/documents/{COMPANY}/"):
            kind = path.split("/")[3]
            if "docnumreg" in params:
                detail = self.details.get(params["docnumreg"])
                if detail is None:
                    return httpx.Response(404, json={"error": "not found"})
                return httpx.Response(200, json={"data": [copy.deepcopy(detail)]})
            date_from, date_to = params["df"], params["dt"]
            rows = [
                copy.deepcopy(document)
                for document in self.documents.get(kind, [])
                if date_from <= document["fecha"] <= date_to
            ]
            return httpx.Response(200, json={"data": rows})

        if path == f"/stock/{COMPANY}":
            return httpx.Response(200, json={"data": copy.deepcopy(self.stock)})

        if path == f"/products/{COMPANY}":
            return httpx.Response(200, json=copy.deepcopy(self.products))

        return httpx.Response(404, json={"error": f"unknown path {path}"})


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_erp_client(fake: FakeERP, sleep: Optional[RecordingSleep] = None, **kwargs) -> ERPClient:
    http_client = httpx.AsyncClient(base_url=ERP_BASE, transport=httpx.MockTransport(fake.handler))
    authenticator = ERPAuthenticator(http_client, username="planner", password="secret")
    return ERPClient(
        http_client,
        authenticator,
        company_id=COMPANY,
        sleep=sleep or RecordingSleep(),
        **kwargs,
    )


def line(sku: str, quantity, price=0, **extra) -> Dict[str, Any]:
    return {"codigo": sku, "cant": quantity, "precio_unitario": price, **extra}


@pytest.fixture
def engine():
    engine_obj = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine_obj)
    yield engine_obj
    engine_obj.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_erp() -> FakeERP:
    return FakeERP()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def erp_client(fake_erp, sleeper) -> ERPClient:
    return make_erp_client(fake_erp, sleeper, document_kinds=("FAVE", "BOVE", "NCVE"))


@pytest.fixture
def make_product(db):
    def _make(sku: str, description: str = "Product", family: str = "") -> Product:
        product = Product(sku=sku, description=description, family=family)
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def add_history(db):
    def _add(product: Product, year: int, month: int, quantity) -> HistoricalMonthlySale:
        row = HistoricalMonthlySale(
            product_id=product.product_id,
            year=year,
            month=month,
            quantity_sold=Decimal(str(quantity)),
            net_amount=Decimal("0"),
        )
        db.add(row)
        db.commit()
        return row

    return _add


@pytest.fixture
def add_current(db):
    def _add(product: Product, quantity, stock, amount=0) -> CurrentMonthSale:
        row = CurrentMonthSale(
            product_id=product.product_id,
            quantity_sold=Decimal(str(quantity)),
            net_amount=Decimal(str(amount)),
            stock_on_hand=Decimal(str(stock)),
        )
        db.add(row)
        db.commit()
        return row

    return _add


TODAY = date(2026, 3, 15)
