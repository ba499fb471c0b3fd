from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable

from planner.services.document_extractor import LineItem, extract_line_items


@dataclass
class SaleTotals:
    quantity: Decimal = field(default_factory=lambda: Decimal("0"))
    net_amount: Decimal = field(default_factory=lambda: Decimal("0"))

    def add(self, quantity: Decimal, net_amount: Decimal) -> None:
        self.quantity += quantity
        self.net_amount += net_amount


def aggregate_line_items(items: Iterable[LineItem], totals: Dict[str, SaleTotals] | None = None) -> Dict[str, SaleTotals]:
    totals = {} if totals is None else totals
    for item in items:
        totals.setdefault(item.sku, SaleTotals()).add(item.quantity, item.net_amount)
    return totals


def aggregate_sales(documents: Iterable[Dict[str, Any]]) -> Dict[str, SaleTotals]:
    """
    Per-SKU totals over a set of raw documents.

    Plain summation: feeding the same document twice counts it twice.
    """
    totals: Dict[str, SaleTotals] = {}
    for document in documents:
        aggregate_line_items(extract_line_items(document), totals)
    return totals
