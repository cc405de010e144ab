from .conversion import (
    Conversion,
    calculate_base_amount,
    convert,
    convert_amount,
    get_exchange_rate,
    validate_amount_calculation,
)
from .resolver import RateResolver

__all__ = [
    "Conversion",
    "RateResolver",
    "calculate_base_amount",
    "convert",
    "convert_amount",
    "get_exchange_rate",
    "validate_amount_calculation",
]
