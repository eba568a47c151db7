"""Shopping-list merge engine.

Every entry is identified by its merge key, ``"{unit}|{name}"`` or
``"|{name}"`` for unitless entries, built from the lower-cased name and
the merge-canonical unit (g, ml, tsp and tbsp collapse to g or ml).

Writing to an existing key:

- quantity accumulates on every write (a missing quantity on either side
  counts as "nothing to add", never as zero)
- name and unit take the latest normalized values
- category is first-write-wins: it is only filled while still empty

The quantity/category asymmetry is intentional; keep both rules.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mealdeck.logging_config import get_logger
from mealdeck.models import ShoppingItem
from mealdeck.normalize.units import (
    canon_unit_str,
    norm_whitespace,
    normalize_name,
    parse_decimal,
    to_canonical,
)

logger = get_logger(__name__)


class EmptyItemError(ValueError):
    """Raised for empty or malformed shopping input, before any write."""


class MergeConflictError(Exception):
    """Raised when a key-changing update collides with a different entry."""

    def __init__(self, merge_key: str, existing_id: int | None = None):
        super().__init__(f"an item with key {merge_key!r} already exists")
        self.merge_key = merge_key
        self.existing_id = existing_id


# Order matters; first match wins.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Produce", (
        "apple", "banana", "tomato", "cucumber", "lettuce", "carrot", "onion", "garlic",
        "pepper", "spinach", "potato", "avocado", "lemon", "lime", "orange", "berry",
    )),
    ("Dairy", ("milk", "yogurt", "cheese", "feta", "mozzarella", "butter", "cream", "egg")),
    ("Bakery", ("bread", "bun", "baguette", "roll", "tortilla", "pita")),
    ("Meat & Fish", (
        "chicken", "beef", "pork", "turkey", "ham", "salmon", "tuna", "shrimp", "sausage",
        "bacon",
    )),
    ("Pantry", (
        "flour", "sugar", "salt", "rice", "pasta", "noodle", "bean", "lentil", "canned",
        "tomato paste", "tomato sauce", "oil", "vinegar", "mustard", "ketchup", "honey",
    )),
    ("Spices", (
        "cumin", "paprika", "oregano", "basil", "thyme", "coriander", "curry", "chili",
        "turmeric", "peppercorn", "spice",
    )),
    ("Frozen", ("frozen", "ice cream", "frozen berries", "frozen peas")),
    ("Beverages", ("coffee", "tea", "juice", "soda", "water", "sparkling")),
    ("Household", (
        "paper", "towel", "foil", "wrap", "detergent", "soap", "shampoo", "bag", "trash",
    )),
)


@dataclass(frozen=True)
class MergeInput:
    """One item of a merge request, as sent by the caller."""

    name: str
    quantity: float | None = None
    unit: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class MergeCandidate:
    """A fully normalized item, ready to be upserted under its merge key."""

    name: str
    unit: str | None
    quantity: float | None
    category: str | None = None

    @property
    def merge_key(self) -> str:
        return make_merge_key(self.name, self.unit)


# =============================================================================
# Pure Helpers
# =============================================================================


def make_merge_key(name_norm: str, unit_norm: str | None) -> str:
    """
    Build the merge key.

    Examples:
        ("flour", "g") -> "g|flour"
        ("milk", None) -> "|milk"
    """
    if unit_norm:
        return f"{unit_norm}|{name_norm}"
    return f"|{name_norm}"


def guess_category(name_norm: str) -> str | None:
    """Keyword-table category for a normalized name, or None."""
    for category, needles in CATEGORY_KEYWORDS:
        if any(needle in name_norm for needle in needles):
            return category
    return None


def accumulate(existing: float | None, incoming: float | None) -> float | None:
    """Sum two quantities where None means "no quantity" rather than zero."""
    if incoming is None:
        return existing
    if existing is None:
        return incoming
    return existing + incoming


def _unit_token(token: str) -> str | None:
    # "grams", "tbsps", "liters" -> singular spelling first
    return canon_unit_str(token) or canon_unit_str(token.rstrip("s"))


def _split_qty_unit(tokens: list[str]) -> tuple[float, str | None, int] | None:
    """Read ``<qty> [unit] [of]`` from the front of a token list."""
    if not tokens:
        return None

    quantity = parse_decimal(tokens[0].replace(",", "."))
    if quantity is None:
        return None

    index = 1
    unit = _unit_token(tokens[1]) if len(tokens) > 1 else None
    if unit is not None:
        index = 2

    if index < len(tokens) and tokens[index].lower() == "of":
        index += 1

    return quantity, unit, index


def parse_free_text_item(text: str) -> MergeCandidate | None:
    """
    Parse a structured shopping line such as ``"100 ml water"`` or ``"2-3 apples"``.

    Returns None for text that does not start with a quantity, or that has
    nothing left to name once the quantity and unit are removed. The result
    is merge-canonicalized ("1 kg flour" -> 1000 g).
    """
    tokens = text.split()
    split = _split_qty_unit(tokens)
    if split is None:
        return None

    quantity, unit, index = split
    if index >= len(tokens):
        return None

    name = normalize_name(" ".join(tokens[index:]))
    unit_norm, qty_norm = to_canonical(unit, quantity)
    return MergeCandidate(name=name, unit=unit_norm, quantity=qty_norm)


def strip_leading_qty_unit(name: str) -> tuple[float | None, str | None, str]:
    """
    Pull a leading ``<qty> [unit] [of]`` out of an item name.

    Returns ``(quantity, display_unit, rest)``. Without a leading quantity
    the trimmed name comes back unchanged; when nothing follows the
    quantity the rest is empty.
    """
    tokens = name.strip().lower().split()
    split = _split_qty_unit(tokens)
    if split is None:
        return None, None, name.strip()

    quantity, unit, index = split
    return quantity, unit, " ".join(tokens[index:])


def resolve_item(
    quantity: float | None,
    unit: str | None,
    name: str,
    category: str | None = None,
) -> MergeCandidate:
    """
    Normalize one explicit merge item.

    Explicit quantity and unit win over values embedded in ``name``. An
    item without a quantity is always unitless. Category precedence is the
    explicit value, then the keyword guess.

    Raises:
        EmptyItemError: If no name remains after normalization.
    """
    name_qty, name_unit, rest = strip_leading_qty_unit(name or "")
    base_name = normalize_name(rest)
    if not base_name:
        raise EmptyItemError("shopping item has no name")

    explicit_unit = unit.strip().lower() if unit and unit.strip() else None
    chosen_qty = quantity if quantity is not None else name_qty
    chosen_unit = explicit_unit if explicit_unit is not None else name_unit

    unit_norm, qty_norm = to_canonical(chosen_unit, chosen_qty)
    if qty_norm is None:
        unit_norm = None

    chosen_category = norm_whitespace(category) if category else None
    return MergeCandidate(
        name=base_name,
        unit=unit_norm,
        quantity=qty_norm,
        category=chosen_category or guess_category(base_name),
    )


def candidate_from_text(text: str) -> MergeCandidate:
    """
    Turn a free-text line into a candidate.

    Raises:
        EmptyItemError: If the text is empty or whitespace-only.
    """
    stripped = text.strip() if text else ""
    if not stripped:
        raise EmptyItemError("empty shopping item")

    parsed = parse_free_text_item(stripped)
    if parsed is None:
        name = normalize_name(stripped)
        return MergeCandidate(name=name, unit=None, quantity=None, category=guess_category(name))

    return MergeCandidate(
        name=parsed.name,
        unit=parsed.unit,
        quantity=parsed.quantity,
        category=guess_category(parsed.name),
    )


# =============================================================================
# Store-bound Engine
# =============================================================================


class ShoppingMergeEngine:
    """Applies shopping-list writes through an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_by_key(self, merge_key: str) -> ShoppingItem | None:
        result = await self.session.execute(
            select(ShoppingItem).where(ShoppingItem.merge_key == merge_key)
        )
        return result.scalar_one_or_none()

    async def _upsert(self, candidate: MergeCandidate) -> ShoppingItem:
        key = candidate.merge_key
        item = await self._get_by_key(key)

        if item is None:
            item = ShoppingItem(
                name=candidate.name,
                unit=candidate.unit,
                quantity=candidate.quantity,
                done=False,
                category=candidate.category,
                merge_key=key,
            )
            self.session.add(item)
            logger.debug(f"New shopping item {key}")
            return item

        item.quantity = accumulate(item.quantity, candidate.quantity)
        item.name = candidate.name
        item.unit = candidate.unit
        if item.category is None:
            item.category = candidate.category
        logger.debug(f"Merged into shopping item {key}: quantity now {item.quantity}")
        return item

    async def _commit_or_conflict(self, merge_key: str) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise MergeConflictError(merge_key) from e

    async def add_text(self, text: str) -> ShoppingItem:
        """
        Add one free-text line ("2 kg flour", "milk") to the list.

        Raises:
            EmptyItemError: If the text is empty.
            MergeConflictError: If a concurrent writer created the same key.
        """
        candidate = candidate_from_text(text)
        item = await self._upsert(candidate)
        await self._commit_or_conflict(candidate.merge_key)
        await self.session.refresh(item)
        logger.info(f"Added shopping item {candidate.merge_key}")
        return item

    async def merge_items(self, items: Sequence[MergeInput]) -> list[ShoppingItem]:
        """
        Merge a batch of items and return the full list.

        Every item is validated before the first write, and the batch is
        committed once: either all items are applied or none are.

        Raises:
            EmptyItemError: If any item has no name.
        """
        candidates = [
            resolve_item(item.quantity, item.unit, item.name, item.category) for item in items
        ]

        try:
            for candidate in candidates:
                await self._upsert(candidate)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise MergeConflictError(", ".join(sorted({c.merge_key for c in candidates}))) from e
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Merged {len(candidates)} shopping items")
        return await self.list_items()

    async def list_items(self) -> list[ShoppingItem]:
        result = await self.session.execute(select(ShoppingItem).order_by(ShoppingItem.id))
        return list(result.scalars().all())

    async def get_item(self, item_id: int) -> ShoppingItem | None:
        return await self.session.get(ShoppingItem, item_id)

    async def update_item(
        self,
        item_id: int,
        done: bool | None = None,
        category: str | None = None,
        text: str | None = None,
    ) -> ShoppingItem | None:
        """
        Update an entry's done flag, category and/or text.

        An empty category clears it. New text is parsed like ``add_text``
        and re-derives the merge key; the entry keeps its category.

        Returns:
            The updated item, or None if it does not exist.

        Raises:
            EmptyItemError: If nothing is being changed, or the text is empty.
            MergeConflictError: If the new key belongs to another entry.
        """
        if done is None and category is None and text is None:
            raise EmptyItemError("nothing to update")

        candidate = candidate_from_text(text) if text is not None else None

        item = await self.get_item(item_id)
        if item is None:
            return None

        if candidate is not None and candidate.merge_key != item.merge_key:
            other = await self._get_by_key(candidate.merge_key)
            if other is not None and other.id != item.id:
                raise MergeConflictError(candidate.merge_key, existing_id=other.id)

        if done is not None:
            item.done = done
        if category is not None:
            item.category = norm_whitespace(category) or None
        if candidate is not None:
            item.name = candidate.name
            item.unit = candidate.unit
            item.quantity = candidate.quantity
            item.merge_key = candidate.merge_key

        await self._commit_or_conflict(item.merge_key)
        await self.session.refresh(item)
        return item

    async def delete_item(self, item_id: int) -> bool:
        item = await self.get_item(item_id)
        if item is None:
            return False
        await self.session.delete(item)
        await self.session.commit()
        logger.info(f"Deleted shopping item {item.merge_key}")
        return True
