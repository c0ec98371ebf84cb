from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

CURRENCY_SYMBOLS = {"BOB": "Bs.", "USD": "$us"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands datetimes back naive; every stored value is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def money(value: Decimal | float | int, currency: str = "BOB") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    formatted = f"{Decimal(value):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{symbol} {formatted}"


def clamp_page(page: int | None, page_size: int | None, default_size: int, max_size: int) -> tuple[int, int]:
    safe_page = page if page and page > 0 else 1
    size = page_size if page_size else default_size
    safe_size = max(1, min(size, max_size))
    return safe_page, safe_size


def paginate_query(query, page: int | None, page_size: int | None, default_size: int = 20, max_size: int = 100):
    """Return ``(rows, total)`` for the requested slice of ``query``."""
    safe_page, safe_size = clamp_page(page, page_size, default_size, max_size)
    total = query.order_by(None).count()
    rows = query.offset((safe_page - 1) * safe_size).limit(safe_size).all()
    return rows, total


def parse_iso_date(value: str | date | None, field_name: str) -> date:
    if isinstance(value, date):
        return value
    raw = (value or "").strip()
    if not raw:
        raise ValueError(f"Falta {field_name}")
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Formato de fecha invalido para {field_name}") from exc


def parse_optional_iso_date(value: str | date | None, field_name: str) -> date | None:
    if value is None or not str(value).strip():
        return None
    return parse_iso_date(value, field_name)


def parse_decimal(value: str | int | float | Decimal | None, field_name: str) -> Decimal:
    raw = str(value if value is not None else "").strip().replace(",", ".")
    if not raw:
        raise ValueError(f"Falta {field_name}")
    try:
        return Decimal(raw).quantize(Decimal("0.01"))
    except InvalidOperation as exc:
        raise ValueError(f"Importe invalido en {field_name}") from exc


def parse_optional_decimal(value: str | int | float | Decimal | None, field_name: str) -> Decimal | None:
    if value is None or not str(value).strip():
        return None
    return parse_decimal(value, field_name)


def parse_optional_int(value: str | int | None, field_name: str) -> int | None:
    if value is None or not str(value).strip():
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Identificador invalido en {field_name}") from exc


def isoformat(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value.isoformat()
