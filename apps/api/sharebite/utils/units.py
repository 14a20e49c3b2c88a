"""Quantity unit normalization."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sharebite.db.enums import QuantityUnit

QUANTITY_SCALE = Decimal("0.001")

# alias -> (canonical unit, multiplier)
UNIT_ALIASES: dict[str, tuple[QuantityUnit, Decimal]] = {
    "kg": (QuantityUnit.KG, Decimal(1)),
    "kgs": (QuantityUnit.KG, Decimal(1)),
    "kilogram": (QuantityUnit.KG, Decimal(1)),
    "kilograms": (QuantityUnit.KG, Decimal(1)),
    "g": (QuantityUnit.KG, Decimal("0.001")),
    "gram": (QuantityUnit.KG, Decimal("0.001")),
    "grams": (QuantityUnit.KG, Decimal("0.001")),
    "liters": (QuantityUnit.LITERS, Decimal(1)),
    "liter": (QuantityUnit.LITERS, Decimal(1)),
    "litres": (QuantityUnit.LITERS, Decimal(1)),
    "litre": (QuantityUnit.LITERS, Decimal(1)),
    "l": (QuantityUnit.LITERS, Decimal(1)),
    "ml": (QuantityUnit.LITERS, Decimal("0.001")),
    "packs": (QuantityUnit.PACKS, Decimal(1)),
    "pack": (QuantityUnit.PACKS, Decimal(1)),
    "packet": (QuantityUnit.PACKS, Decimal(1)),
    "packets": (QuantityUnit.PACKS, Decimal(1)),
    "plates": (QuantityUnit.PLATES, Decimal(1)),
    "plate": (QuantityUnit.PLATES, Decimal(1)),
    "items": (QuantityUnit.ITEMS, Decimal(1)),
    "item": (QuantityUnit.ITEMS, Decimal(1)),
}


def normalize_quantity(quantity: Decimal, unit: str) -> tuple[Decimal, QuantityUnit]:
    """
    Convert a submitted quantity to its canonical unit.

    2000 g -> (Decimal("2.000"), QuantityUnit.KG)

    Raises:
        ValueError: unknown unit or non-positive quantity
    """
    key = (unit or "").strip().lower()
    if key not in UNIT_ALIASES:
        raise ValueError(f"Unsupported quantity unit '{unit}'")
    if quantity <= 0:
        raise ValueError("Quantity must be greater than zero")

    canonical, factor = UNIT_ALIASES[key]
    converted = (Decimal(quantity) * factor).quantize(QUANTITY_SCALE, rounding=ROUND_HALF_UP)
    if converted <= 0:
        raise ValueError("Quantity is too small to record")
    return converted, canonical
