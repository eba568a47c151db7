"""Free-text ingredient line parsing."""

import re
from dataclasses import dataclass
from typing import Any

from mealdeck.normalize.units import UNIT_SYNONYMS, canon_unit_str, norm_whitespace

# Longest spellings first so "grams" is not read as "g" + "rams"
_UNIT_ALTERNATION = "|".join(
    re.escape(u) for u in sorted(UNIT_SYNONYMS, key=len, reverse=True)
)

# Matches lines like:
#   "120 g flour", "120g flour"
#   "2-3 tbsp sugar", "2–3 tbsp sugar"
#   "1,5 L water"
#   "100 grams of butter"
#   "2 carrots, diced"
INGREDIENT_LINE_RE = re.compile(
    rf"""
    ^\s*
    (?P<a1>\d+(?:[.,]\d+)?)                    # first number
    (?:\s*[–-]\s*(?P<a2>\d+(?:[.,]\d+)?))?     # optional range end
    (?:\s*(?P<unit>{_UNIT_ALTERNATION})\b)?    # optional unit
    (?:\s+of\b)?                               # optional "of"
    \s*(?P<rest>.*?)\s*$                       # name
    """,
    re.IGNORECASE | re.VERBOSE,
)


@dataclass(frozen=True)
class ParsedIngredient:
    """A structured ingredient: optional quantity, display-canonical unit, name."""

    quantity: float | None
    unit: str | None
    name: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {"quantity": self.quantity, "unit": self.unit, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedIngredient":
        """Build from a stored dictionary."""
        quantity = data.get("quantity")
        return cls(
            quantity=float(quantity) if quantity is not None else None,
            unit=data.get("unit"),
            name=data.get("name") or "",
        )


def _to_float(raw: str | None) -> float | None:
    if raw is None:
        return None
    return float(raw.replace(",", "."))


def parse_ingredient_line(line: str) -> ParsedIngredient:
    """
    Convert one free-text ingredient line into a ParsedIngredient.

    A line without a leading number, or whose remainder is empty once the
    number, unit and "of" are removed, becomes a name-only ingredient made
    of the whole trimmed line. The name keeps its original casing.

    Examples:
        "120 g flour" -> (120.0, "g", "flour")
        "2-4 cups sugar" -> (3.0, None, "cups sugar")
        "salt to taste" -> (None, None, "salt to taste")
        "2 kg" -> (None, None, "2 kg")
    """
    text = line.strip()
    if not text:
        return ParsedIngredient(quantity=None, unit=None, name="")

    match = INGREDIENT_LINE_RE.match(text)
    if not match:
        return ParsedIngredient(quantity=None, unit=None, name=norm_whitespace(text))

    name = norm_whitespace(match.group("rest").strip(" ,"))
    if not name:
        return ParsedIngredient(quantity=None, unit=None, name=norm_whitespace(text))

    quantity = _to_float(match.group("a1"))
    range_end = _to_float(match.group("a2"))
    if quantity is not None and range_end is not None:
        quantity = (quantity + range_end) / 2

    return ParsedIngredient(
        quantity=quantity,
        unit=canon_unit_str(match.group("unit")),
        name=name,
    )
