import math
from decimal import Decimal
from typing import Any


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def required_quantity(qty_per_item: Any, units: Any) -> Decimal:
    """Расход на units единиц с округлением вверх до целого: лист нельзя израсходовать частично."""
    return Decimal(math.ceil(to_decimal(qty_per_item) * to_decimal(units)))
