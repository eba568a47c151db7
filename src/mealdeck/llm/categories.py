"""Advisory shopping-item category classification.

The classifier never fails its caller: a missing API key, a transport error,
unrecoverable JSON or an unknown category all degrade to ``Category.OTHER``.
"""

from enum import Enum

from mealdeck.config import get_settings
from mealdeck.llm.client import LlmClient, LlmError, LlmNotConfiguredError
from mealdeck.llm.json_recovery import JsonRecoveryError
from mealdeck.logging_config import get_logger
from mealdeck.normalize.units import normalize_name

logger = get_logger(__name__)


class Category(str, Enum):
    """Shopping categories in aisle order."""

    OTHER = "Other"
    FRUITS = "Fruits"
    VEGETABLES = "Vegetables"
    BAKERY = "Bakery"
    VEGAN = "Vegan"
    DRINKS = "Drinks"
    ALCOHOL = "Alcohol"
    SEASONING = "Seasoning"
    CANNED = "Canned"
    PANTRY = "Pantry"
    NON_FOOD = "Non-Food"
    PHARMACY = "Pharmacy"
    ONLINE = "Online"
    ONLINE_ALCOHOL = "Online Alcohol"

    @property
    def sort_key(self) -> int:
        return list(Category).index(self)

    @classmethod
    def parse(cls, value: object) -> "Category | None":
        """Exact, case-sensitive lookup by display string."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


def build_category_prompt() -> str:
    allowed = ", ".join(c.value for c in Category)
    return (
        "You are a strict shopping-item category classifier.\n"
        "Your job is to map a single shopping item name to EXACTLY ONE category.\n\n"
        f"Allowed categories (case-sensitive strings): {allowed}\n\n"
        "Return STRICT JSON with exactly this shape:\n"
        '{"category": "<one of the allowed categories>"}\n\n'
        "Rules:\n"
        "- Do NOT invent new categories.\n"
        '- If unsure, choose "Other".\n'
        "- The item name can be in any language.\n"
        "- Do not include commentary."
    )


async def classify_category(client: LlmClient, name: str) -> Category:
    """Ask the LLM for one category for a shopping item, defaulting to Other."""
    if not client.is_configured:
        return Category.OTHER

    settings = get_settings()
    user = (
        f"Item: {name.strip()}\n"
        f"Normalized: {normalize_name(name)}\n\n"
        "Choose one allowed category."
    )

    try:
        payload = await client.chat_json(
            build_category_prompt(),
            user,
            temperature=0.0,
            timeout=settings.llm_category_timeout,
            max_tokens=settings.llm_category_max_tokens,
        )
    except LlmNotConfiguredError:
        return Category.OTHER
    except (LlmError, JsonRecoveryError) as e:
        logger.warning(f"Category classification failed for {name!r}: {e}")
        return Category.OTHER

    raw = payload.get("category") if isinstance(payload, dict) else None
    category = Category.parse(raw)
    if category is None:
        logger.info(f"LLM proposed unknown category {raw!r}, using Other")
        return Category.OTHER
    return category
