import re
from decimal import Decimal, InvalidOperation
from typing import Any


def normalize_whitespace(text: Any) -> str:
    if text is None:
        return ""
    text = str(text).strip()
    text = re.sub(r"\s+", " ", text)
    return text


def normalize_sku(text: Any) -> str:
    """
    SKUs as string, trimmed. Internal spaces are kept: the ERP uses them in some codes.
    """
    if text is None:
        return ""
    return str(text).strip()


def clean_decimal(value: Any) -> Decimal | None:
    """Parse ERP numbers (int, float or numeric strings, comma decimals allowed)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return None
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed
