"""
Line-item extraction from raw ERP sales documents.

The ERP names fields differently per document kind and API version, so each
line item is matched against an ordered tuple of extraction strategies. The
first strategy that resolves both a SKU and a quantity wins.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from planner.utils.text_cleaner import clean_decimal, normalize_sku

LINE_ITEM_COLLECTION_FIELDS = ("detalles", "detalle", "details", "detail", "items", "productos", "line_items")

ZERO = Decimal("0")


@dataclass(frozen=True)
class LineItem:
    sku: str
    quantity: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    sku_fields: Tuple[str, ...]
    quantity_fields: Tuple[str, ...]
    unit_price_fields: Tuple[str, ...] = ()
    amount_fields: Tuple[str, ...] = ()

    def _first_present(self, row: Dict[str, Any], fields: Sequence[str]) -> Any:
        for field in fields:
            value = row.get(field)
            if value is not None and value != "":
                return value
        return None

    def _first_decimal(self, row: Dict[str, Any], fields: Sequence[str]) -> Optional[Decimal]:
        for field in fields:
            parsed = clean_decimal(row.get(field))
            if parsed is not None:
                return parsed
        return None

    def extract(self, row: Dict[str, Any]) -> Optional[LineItem]:
        raw_sku = self._first_present(row, self.sku_fields)
        if raw_sku is None:
            return None
        sku = normalize_sku(raw_sku)
        quantity = self._first_decimal(row, self.quantity_fields)
        if not sku or quantity is None:
            return None

        unit_price = self._first_decimal(row, self.unit_price_fields) or ZERO
        net_amount = unit_price * quantity
        if net_amount == ZERO:
            direct = self._first_decimal(row, self.amount_fields)
            if direct is not None:
                net_amount = direct
        return LineItem(sku=sku, quantity=quantity, net_amount=net_amount)


SKU_FIELDS = ("codigo", "cod_prod", "codigo_prod", "cod_producto", "cod_art", "cod", "sku")
QUANTITY_FIELDS = ("cant", "cantidad", "quantity")
UNIT_PRICE_FIELDS = ("precio_unitario", "precio_unit", "unit_price", "precio")
AMOUNT_FIELDS = ("monto_neto", "neto", "precio_neto", "total", "monto")


def _preferring(preferred: Tuple[str, ...], aliases: Tuple[str, ...]) -> Tuple[str, ...]:
    """`preferred` first, then every remaining alias."""
    return preferred + tuple(field for field in aliases if field not in preferred)


# SKU and quantity are looked up independently: every strategy knows every alias
# and only differs in which spelling it tries first.
STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    ExtractionStrategy(
        name="manager_details",
        sku_fields=_preferring(("codigo",), SKU_FIELDS),
        quantity_fields=_preferring(("cant",), QUANTITY_FIELDS),
        unit_price_fields=_preferring(("precio_unitario",), UNIT_PRICE_FIELDS),
        amount_fields=_preferring(("monto_neto",), AMOUNT_FIELDS),
    ),
    ExtractionStrategy(
        name="product_code",
        sku_fields=_preferring(("cod_prod", "codigo_prod", "cod_producto", "cod_art"), SKU_FIELDS),
        quantity_fields=_preferring(("cantidad",), QUANTITY_FIELDS),
        unit_price_fields=_preferring(("precio_unitario", "precio_unit"), UNIT_PRICE_FIELDS),
        amount_fields=_preferring(("monto_neto", "neto", "precio_neto"), AMOUNT_FIELDS),
    ),
    ExtractionStrategy(
        name="generic",
        sku_fields=_preferring(("sku", "cod"), SKU_FIELDS),
        quantity_fields=_preferring(("quantity",), QUANTITY_FIELDS),
        unit_price_fields=_preferring(("unit_price", "precio"), UNIT_PRICE_FIELDS),
        amount_fields=_preferring(("total", "monto"), AMOUNT_FIELDS),
    ),
    ExtractionStrategy(
        name="any_alias",
        sku_fields=SKU_FIELDS,
        quantity_fields=QUANTITY_FIELDS,
        unit_price_fields=UNIT_PRICE_FIELDS,
        amount_fields=AMOUNT_FIELDS,
    ),
)


def find_line_items(document: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    """The document's line-item collection, or None when it has none."""
    for field in LINE_ITEM_COLLECTION_FIELDS:
        value = document.get(field)
        if value is None:
            continue
        if isinstance(value, dict):
            value = list(value.values())
        if isinstance(value, list):
            return [row for row in value if isinstance(row, dict)]
    return None


def extract_line_item(
    row: Dict[str, Any],
    strategies: Sequence[ExtractionStrategy] = STRATEGIES,
) -> Optional[LineItem]:
    for strategy in strategies:
        item = strategy.extract(row)
        if item is not None:
            return item
    return None


def extract_line_items(
    document: Dict[str, Any],
    strategies: Sequence[ExtractionStrategy] = STRATEGIES,
) -> List[LineItem]:
    """Normalized line items; rows with no SKU or a zero quantity are dropped, negatives kept."""
    rows = find_line_items(document) or []
    items = []
    for row in rows:
        item = extract_line_item(row, strategies)
        if item is None or item.quantity == ZERO:
            continue
        items.append(item)
    return items
