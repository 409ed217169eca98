"""Время и деньги: общие помощники движка"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

Clock = Callable[[], datetime]

CENT = Decimal("0.01")


def utc_now() -> datetime:
    """Текущее время в UTC (часы по умолчанию)"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Привести datetime из базы к aware UTC"""
    if value is None:
        return None
    # Naive значения (SQLite, старые записи) считаем UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_decimal(value) -> Decimal:
    """Decimal без округления. float идет через str(), чтобы не тащить двоичную погрешность"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value) -> Optional[Decimal]:
    """Привести сумму к Decimal с точностью до копеек"""
    if value is None:
        return None
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
