import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
)

from planner.core.config import Settings, settings
from planner.services.erp_auth import ERPAuthenticator
from planner.services.erp_errors import (
    ERPAuthenticationError,
    ERPError,
    ERPRateLimitError,
    ERPRequestError,
)
from planner.utils.periods import erp_date, iter_date_windows, local_today
from planner.utils.text_cleaner import clean_decimal, normalize_sku, normalize_whitespace

__all__ = [
    "CatalogProduct",
    "ERPAuthenticationError",
    "ERPClient",
    "ERPError",
    "ERPRateLimitError",
    "ERPRequestError",
    "build_erp_client",
    "is_general_warehouse",
]

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

CATALOG_SKU_FIELDS = ("codigo_prod", "cod_producto", "codigo", "cod", "sku")
CATALOG_NAME_FIELDS = ("nombre", "descripcion", "descrip")
STOCK_SKU_FIELDS = ("cod_prod", "codigo_prod", "codigo")
WAREHOUSE_NAME_FIELDS = ("bodega", "almacen", "descripcion_bodega", "nombre_bodega", "bod")
EXCLUDED_WAREHOUSE_MARKERS = ("temporal", "temporary")


@dataclass(frozen=True)
class CatalogProduct:
    sku: str
    description: str
    family: str = ""


def _first_present(row: Dict[str, Any], fields: Iterable[str]) -> Any:
    for field in fields:
        value = row.get(field)
        if value is not None and value != "":
            return value
    return None


def _unwrap(payload: Any) -> List[Dict[str, Any]]:
    """Accept `{data: [...]}`, a bare list, or a single object."""
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    if isinstance(payload, dict):
        return [payload]
    return []


def is_general_warehouse(entry: Dict[str, Any]) -> bool:
    """Temporary/transit warehouses are excluded; entries without a name count as General."""
    name = _first_present(entry, WAREHOUSE_NAME_FIELDS)
    if name is None:
        return True
    lowered = str(name).lower()
    return not any(marker in lowered for marker in EXCLUDED_WAREHOUSE_MARKERS)


def _retry_after_seconds(response: httpx.Response, default: float) -> float:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        hinted = clean_decimal(body.get("retry"))
        if hinted is not None and hinted >= 0:
            return float(hinted)
    header = clean_decimal(response.headers.get("Retry-After"))
    if header is not None and header >= 0:
        return float(header)
    return default


def _rate_limit_wait(retry_state: RetryCallState) -> float:
    exc = retry_state.outcome.exception()
    return exc.retry_after + 1


def _detail_wait(retry_state: RetryCallState) -> float:
    exc = retry_state.outcome.exception()
    if isinstance(exc, ERPRateLimitError):
        return exc.retry_after + 1
    # linear backoff: 1s, 2s, 3s...
    return float(retry_state.attempt_number)


def _is_retryable_detail_error(exc: BaseException) -> bool:
    if isinstance(exc, ERPRateLimitError):
        return True
    return isinstance(exc, ERPRequestError) and exc.is_transient


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception()
    logger.warning(
        "ERP request failed, retrying",
        extra={
            "attempt": retry_state.attempt_number,
            "error": str(exc),
            "sleep_seconds": retry_state.next_action.sleep if retry_state.next_action else None,
        },
    )


class ERPClient:
    """
    Async adapter over the ERP REST API.

    All calls share one `httpx.AsyncClient` and one `ERPAuthenticator`. Bulk
    document lists retry only on 429 and only up to `rate_limit_max_attempts`;
    detail fetches also retry transient failures and return None when exhausted.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        authenticator: ERPAuthenticator,
        company_id: str,
        document_kinds: Optional[Iterable[str]] = None,
        list_timeout: float = 120.0,
        detail_timeout: float = 60.0,
        rate_limit_default_retry: float = 10.0,
        rate_limit_max_attempts: int = 5,
        detail_max_retries: int = 2,
        max_range_days: int = 365,
        sleep: Sleep = asyncio.sleep,
    ):
        self.http_client = http_client
        self.authenticator = authenticator
        self.company_id = company_id
        self.document_kinds = tuple(document_kinds or ("FAVE", "BOVE", "NCVE"))
        self.list_timeout = list_timeout
        self.detail_timeout = detail_timeout
        self.rate_limit_default_retry = rate_limit_default_retry
        self.rate_limit_max_attempts = rate_limit_max_attempts
        self.detail_max_retries = detail_max_retries
        self.max_range_days = max_range_days
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls,
        config: Settings = settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> "ERPClient":
        http_client = httpx.AsyncClient(
            base_url=config.ERP_BASE_URL,
            timeout=httpx.Timeout(config.ERP_DETAIL_TIMEOUT_SECONDS, connect=10.0),
            limits=httpx.Limits(max_connections=30, max_keepalive_connections=10, keepalive_expiry=30),
            headers={"Accept": "application/json"},
            transport=transport,
        )
        authenticator = ERPAuthenticator(
            http_client,
            username=config.ERP_USERNAME,
            password=config.ERP_PASSWORD,
            ttl_seconds=config.ERP_TOKEN_TTL_SECONDS,
            scheme=config.ERP_AUTH_SCHEME,
        )
        return cls(
            http_client,
            authenticator,
            company_id=config.ERP_COMPANY_ID,
            document_kinds=config.ERP_DOCUMENT_KINDS,
            list_timeout=config.ERP_LIST_TIMEOUT_SECONDS,
            detail_timeout=config.ERP_DETAIL_TIMEOUT_SECONDS,
            rate_limit_default_retry=config.ERP_RATE_LIMIT_DEFAULT_RETRY_SECONDS,
            rate_limit_max_attempts=config.ERP_RATE_LIMIT_MAX_ATTEMPTS,
            detail_max_retries=config.ERP_DETAIL_MAX_RETRIES,
            max_range_days=config.ERP_MAX_RANGE_DAYS,
            sleep=sleep,
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def __aenter__(self) -> "ERPClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: Dict[str, Any], timeout: float) -> Any:
        headers = await self.authenticator.get_auth_headers()
        try:
            response = await self.http_client.get(path, params=params, headers=headers, timeout=timeout)
        except httpx.HTTPError as exc:
            raise ERPRequestError(f"ERP request to {path} failed: {exc}") from exc

        if response.status_code == 429:
            retry_after = _retry_after_seconds(response, self.rate_limit_default_retry)
            raise ERPRateLimitError(f"ERP rate limit on {path}", retry_after=retry_after)
        if response.status_code == 401:
            # next call logs in again
            self.authenticator.invalidate()
        if response.is_error:
            raise ERPRequestError(
                f"ERP returned HTTP {response.status_code} for {path}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ERPRequestError(f"ERP returned invalid JSON for {path}", status_code=response.status_code) from exc

    async def _get_rate_limited(self, path: str, params: Dict[str, Any], timeout: float) -> Any:
        """GET that waits out 429s up to a fixed number of attempts, then raises ERPRateLimitError."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ERPRateLimitError),
            stop=stop_after_attempt(self.rate_limit_max_attempts),
            wait=_rate_limit_wait,
            sleep=self.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._get(path, params, timeout)

    def _documents_path(self, kind: str) -> str:
        return f"/documents/{self.company_id}/{kind}/V"

    # ------------------------------------------------------------------
    # sales documents
    # ------------------------------------------------------------------

    async def fetch_sales_documents(self, kind: str, date_from: date, date_to: date) -> List[Dict[str, Any]]:
        """Documents of one kind between two dates (inclusive) with inline line items."""
        documents: List[Dict[str, Any]] = []
        for window_start, window_end in iter_date_windows(date_from, date_to, self.max_range_days):
            payload = await self._get_rate_limited(
                self._documents_path(kind),
                {"details": 1, "df": erp_date(window_start), "dt": erp_date(window_end)},
                self.list_timeout,
            )
            for document in _unwrap(payload):
                document["_doc_kind"] = kind
                documents.append(document)

        logger.info(
            "Fetched ERP sales documents",
            extra={"kind": kind, "date_from": str(date_from), "date_to": str(date_to), "count": len(documents)},
        )
        return documents

    async def fetch_all_sales_documents(self, date_from: date, date_to: date) -> List[Dict[str, Any]]:
        """All configured document kinds, fetched concurrently. One kind failing cancels the others."""
        tasks = [
            asyncio.ensure_future(self.fetch_sales_documents(kind, date_from, date_to))
            for kind in self.document_kinds
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [document for batch in results for document in batch]

    async def fetch_document_detail(
        self,
        document_ref: Any,
        kind: str,
        max_retries: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        One document by registry id (`docnumreg`).

        Transient failures are retried with linear backoff and 429s honour the
        server hint. Returns None once retries are exhausted or on a non-transient
        HTTP error; authentication failures still propagate.
        """
        retries = self.detail_max_retries if max_retries is None else max_retries
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable_detail_error),
            stop=stop_after_attempt(retries + 1),
            wait=_detail_wait,
            sleep=self.sleep,
            before_sleep=_log_retry,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    payload = await self._get(
                        self._documents_path(kind),
                        {"docnumreg": document_ref, "details": 1},
                        self.detail_timeout,
                    )
        except RetryError as exc:
            logger.warning(
                "Giving up on ERP document detail",
                extra={"docnumreg": document_ref, "kind": kind, "error": str(exc.last_attempt.exception())},
            )
            return None
        except ERPRequestError as exc:
            logger.warning(
                "ERP document detail request failed",
                extra={"docnumreg": document_ref, "kind": kind, "status_code": exc.status_code},
            )
            return None

        rows = _unwrap(payload)
        if not rows:
            return None
        for row in rows:
            if str(row.get("docnumreg")) == str(document_ref):
                return row
        return rows[0]

    # ------------------------------------------------------------------
    # stock and catalog
    # ------------------------------------------------------------------

    async def fetch_stock_snapshot(self, on_date: Optional[date] = None) -> Dict[str, Decimal]:
        """SKU -> units on hand, summed over General warehouses only."""
        payload = await self._get_rate_limited(
            f"/stock/{self.company_id}",
            {"dt": erp_date(on_date or local_today())},
            self.detail_timeout,
        )

        stock: Dict[str, Decimal] = {}
        for row in _unwrap(payload):
            raw_sku = _first_present(row, STOCK_SKU_FIELDS)
            if raw_sku is None:
                continue
            sku = normalize_sku(raw_sku)
            if not sku:
                continue

            nested = row.get("stock")
            entries = [entry for entry in nested if isinstance(entry, dict)] if isinstance(nested, list) else [row]

            total = stock.get(sku, Decimal("0"))
            for entry in entries:
                if not is_general_warehouse(entry):
                    continue
                balance = clean_decimal(entry.get("saldo"))
                if balance is None and not isinstance(entry.get("stock"), list):
                    balance = clean_decimal(entry.get("stock"))
                if balance is not None and balance > 0:
                    total += balance
            stock[sku] = total

        logger.info("Fetched ERP stock snapshot", extra={"skus": len(stock)})
        return stock

    async def fetch_product_catalog(self, with_stock: bool = False) -> List[CatalogProduct]:
        params = {"con_stock": "S"} if with_stock else {}
        payload = await self._get_rate_limited(f"/products/{self.company_id}", params, self.detail_timeout)

        products: List[CatalogProduct] = []
        for row in _unwrap(payload):
            raw_sku = _first_present(row, CATALOG_SKU_FIELDS)
            sku = normalize_sku(raw_sku) if raw_sku is not None else ""
            if not sku:
                continue
            products.append(
                CatalogProduct(
                    sku=sku,
                    description=normalize_whitespace(_first_present(row, CATALOG_NAME_FIELDS) or ""),
                    family=normalize_whitespace(row.get("familia") or ""),
                )
            )

        logger.info("Fetched ERP product catalog", extra={"count": len(products)})
        return products


def build_erp_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> ERPClient:
    return ERPClient.from_settings(settings, transport=transport)
