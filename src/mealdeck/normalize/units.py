"""Unit canonicalization utilities.

Two canonical forms live here on purpose:

- display canonicalization (``canon_unit_str``) keeps the unit the recipe
  author chose, spelled one way: g, kg, ml, L, tsp, tbsp.
- merge canonicalization (``to_canonical``) reduces compatible units to a
  common base (g or ml) so shopping-list quantities can be summed.
"""

import re


# =============================================================================
# Unit Tables
# =============================================================================

DISPLAY_UNITS: tuple[str, ...] = ("g", "kg", "ml", "L", "tsp", "tbsp")

# Spelling -> display-canonical unit (keys are lower-case)
UNIT_SYNONYMS: dict[str, str] = {
    # Weight
    "g": "g",
    "gram": "g",
    "grams": "g",
    "kg": "kg",
    "kilogram": "kg",
    "kilograms": "kg",
    # Volume
    "ml": "ml",
    "milliliter": "ml",
    "millilitre": "ml",
    "milliliters": "ml",
    "millilitres": "ml",
    "l": "L",
    "liter": "L",
    "litre": "L",
    "liters": "L",
    "litres": "L",
    # Spoons
    "tsp": "tsp",
    "teaspoon": "tsp",
    "teaspoons": "tsp",
    "tbsp": "tbsp",
    "tablespoon": "tbsp",
    "tablespoons": "tbsp",
}

# Display-canonical unit -> (merge base unit, factor)
MERGE_CONVERSIONS: dict[str, tuple[str, float]] = {
    "kg": ("g", 1000.0),
    "L": ("ml", 1000.0),
    "tbsp": ("ml", 15.0),
    "tsp": ("ml", 5.0),
}

# Quantity token: "2", "1.5", "1,5", "2-3", "2 – 3"
DECIMAL_RE = re.compile(r"^\s*(\d+(?:[.,]\d+)?)(?:\s*[–-]\s*(\d+(?:[.,]\d+)?))?\s*$")

_WHITESPACE_RE = re.compile(r"\s+")


# =============================================================================
# Canonicalization
# =============================================================================


def canon_unit_str(unit: str | None) -> str | None:
    """
    Map a unit spelling to its display-canonical token.

    Case-insensitive; returns None for unknown units. Idempotent:
    ``canon_unit_str(canon_unit_str(u)) == canon_unit_str(u)``.
    """
    if not unit:
        return None
    return UNIT_SYNONYMS.get(unit.strip().lower())


def to_canonical(
    unit: str | None,
    quantity: float | None,
) -> tuple[str | None, float | None]:
    """
    Merge-canonicalize a unit/quantity pair.

    kg -> g (x1000), L -> ml (x1000), tbsp -> ml (x15), tsp -> ml (x5).
    Without a quantity the unit is only display-canonicalized; unknown
    units become None.

    Examples:
        ("kg", 2.5) -> ("g", 2500.0)
        ("tbsp", 2) -> ("ml", 30.0)
        ("cup", None) -> (None, None)
    """
    if unit is None:
        return None, quantity

    canonical = canon_unit_str(unit)
    if quantity is not None and canonical in MERGE_CONVERSIONS:
        base_unit, factor = MERGE_CONVERSIONS[canonical]
        return base_unit, quantity * factor

    return canonical, quantity


def parse_decimal(token: str) -> float | None:
    """
    Parse a quantity token, accepting comma decimals and ranges.

    Ranges ("2-3", "2–3") collapse to their mean.
    """
    match = DECIMAL_RE.match(token)
    if not match:
        return None

    low = float(match.group(1).replace(",", "."))
    if match.group(2) is None:
        return low

    high = float(match.group(2).replace(",", "."))
    return (low + high) / 2


# =============================================================================
# Names and Display
# =============================================================================


def norm_whitespace(text: str) -> str:
    """Collapse internal whitespace runs to one space and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_name(text: str) -> str:
    """Lower-case and whitespace-normalize a name for merge identity."""
    return norm_whitespace(text.lower())


def format_quantity(quantity: float) -> str:
    """
    Render a quantity compactly.

    Examples:
        300.0 -> "300"
        0.5 -> "0.5"
        2.3333333 -> "2.33333"
    """
    return f"{quantity:g}"


def format_item_text(quantity: float | None, unit: str | None, name: str) -> str:
    """Render an item as "300 g flour", "2 eggs" or "salt"."""
    if quantity is not None and unit:
        return f"{format_quantity(quantity)} {unit} {name}"
    if quantity is not None:
        return f"{format_quantity(quantity)} {name}"
    return name
