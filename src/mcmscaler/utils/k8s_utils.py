# src/mcmscaler/utils/k8s_utils.py

import math
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

_BINARY_SUFFIXES = {
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
    "Ti": 1024**4,
    "Pi": 1024**5,
    "Ei": 1024**6,
}

_DECIMAL_SUFFIXES = {
    "n": Decimal("0.000000001"),
    "u": Decimal("0.000001"),
    "m": Decimal("0.001"),
    "k": Decimal(1000),
    "M": Decimal(1000**2),
    "G": Decimal(1000**3),
    "T": Decimal(1000**4),
    "P": Decimal(1000**5),
    "E": Decimal(1000**6),
}

MIB = 1024**2


def parse_quantity(quantity: Union[str, int, float, Decimal, None]) -> Decimal:
    """
    Parse a Kubernetes quantity (e.g. '500m', '3840Mi', '2') to Decimal.

    Raises:
        ValueError: If the quantity is not a valid number with an optional suffix.
    """
    if quantity is None:
        return Decimal(0)
    if isinstance(quantity, (int, float, Decimal)):
        return Decimal(quantity)

    text = str(quantity).strip()
    number, multiplier = text, Decimal(1)
    if text[-2:] in _BINARY_SUFFIXES:
        number, multiplier = text[:-2], Decimal(_BINARY_SUFFIXES[text[-2:]])
    elif text[-1:] in _DECIMAL_SUFFIXES:
        number, multiplier = text[:-1], _DECIMAL_SUFFIXES[text[-1:]]

    try:
        return Decimal(number) * multiplier
    except InvalidOperation as e:
        raise ValueError(f"Invalid Kubernetes quantity: '{quantity}'") from e


def quantity_to_cores(quantity: Optional[str]) -> int:
    """Converts a CPU quantity to whole cores, rounding partial cores up."""
    if not quantity:
        return 0
    return int(math.ceil(parse_quantity(quantity)))


def quantity_to_mib(quantity: Optional[str]) -> int:
    """Converts a memory quantity to MiB."""
    if not quantity:
        return 0
    return int(parse_quantity(quantity) / MIB)
