"""Enumerations and defaults shared across the till modules.

Keeps the payment identifiers and catalog file conventions in one place so the
data access layer, the transaction engine and the terminal front-end agree on
the same values.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


DEFAULT_CATALOG_FILE = "products.csv"
DEFAULT_DELIMITER = ";"
DEFAULT_STORE_NAME = "Till POS"
CATALOG_COLUMNS = ("Name", "Code", "Price")
WORKBOOK_SUFFIXES = (".xlsx", ".xlsm")

ZERO = Decimal("0.00")
CENTS = Decimal("0.01")


class PaymentMethod(str, Enum):
    """Enumerate the tender types a receipt can be settled with."""

    CASH = "cash"
    CARD = "card"


class ReopenPolicy(str, Enum):
    """What a shift does with its running totals when ``open`` is called again."""

    RESET = "reset"
    ACCUMULATE = "accumulate"


__all__ = [
    "DEFAULT_CATALOG_FILE",
    "DEFAULT_DELIMITER",
    "DEFAULT_STORE_NAME",
    "CATALOG_COLUMNS",
    "WORKBOOK_SUFFIXES",
    "ZERO",
    "CENTS",
    "PaymentMethod",
    "ReopenPolicy",
]
