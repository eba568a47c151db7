"""Normalize free text and units into canonical forms."""

from mealdeck.normalize.ingredients import ParsedIngredient, parse_ingredient_line
from mealdeck.normalize.units import (
    canon_unit_str,
    format_item_text,
    format_quantity,
    norm_whitespace,
    normalize_name,
    parse_decimal,
    to_canonical,
)

__all__ = [
    "ParsedIngredient",
    "canon_unit_str",
    "format_item_text",
    "format_quantity",
    "norm_whitespace",
    "normalize_name",
    "parse_decimal",
    "parse_ingredient_line",
    "to_canonical",
]
