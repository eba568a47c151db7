"""LLM-backed structured recipe extraction."""

from dataclasses import dataclass, field
from typing import Any

from mealdeck.config import get_settings
from mealdeck.llm.client import LlmClient
from mealdeck.logging_config import get_logger
from mealdeck.normalize.ingredients import ParsedIngredient, parse_ingredient_line
from mealdeck.normalize.units import canon_unit_str, norm_whitespace, parse_decimal

logger = get_logger(__name__)

VISION_PROMPT = (
    "Extract the recipe from the image(s). "
    "If multiple images are provided they show different parts of the same recipe. "
    "Return the combined recipe as JSON."
)

QUANTITY_KEYS = ("quantity", "qty", "amount")


@dataclass
class ExtractionResult:
    """Deduplicated ingredients and instructions, in first-seen order."""

    ingredients: list[ParsedIngredient] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "title": self.title,
            "ingredients": [i.to_dict() for i in self.ingredients],
            "instructions": list(self.instructions),
        }


# =============================================================================
# Normalization
# =============================================================================


def ingredient_key(ingredient: ParsedIngredient) -> str:
    """Dedup key: lower(unit) | lower(trimmed name). Quantity is not part of it."""
    return f"{(ingredient.unit or '').lower()}|{ingredient.name.strip().lower()}"


def _coerce_quantity(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_decimal(value)
    return None


def _ingredient_from_object(data: dict[str, Any]) -> ParsedIngredient | None:
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    name = norm_whitespace(name)

    prep = data.get("prep")
    if isinstance(prep, str) and prep.strip() and prep.strip().lower() not in name.lower():
        name = f"{name}, {norm_whitespace(prep)}"

    quantity = None
    for key in QUANTITY_KEYS:
        if key in data:
            quantity = _coerce_quantity(data[key])
            break

    raw_unit = data.get("unit")
    unit = None
    if isinstance(raw_unit, str) and raw_unit.strip():
        unit = canon_unit_str(raw_unit)
        if unit is None:
            # Off-list units ("cloves", "pinch") stay readable as part of the name
            name = f"{norm_whitespace(raw_unit)} {name}"

    return ParsedIngredient(quantity=quantity, unit=unit, name=name)


def normalize_ingredients(value: Any) -> list[ParsedIngredient]:
    """
    Normalize the model's ``ingredients`` value.

    Accepts a list of objects, a list of free-text lines, or one
    newline-separated string. Duplicates (same unit and name, any quantity)
    keep the first occurrence.
    """
    if isinstance(value, str):
        items: list[Any] = value.splitlines()
    elif isinstance(value, list):
        items = value
    else:
        return []

    seen: set[str] = set()
    out: list[ParsedIngredient] = []
    for item in items:
        if isinstance(item, dict):
            ingredient = _ingredient_from_object(item)
        elif isinstance(item, str) and item.strip():
            ingredient = parse_ingredient_line(item)
        else:
            ingredient = None

        if ingredient is None or not ingredient.name:
            continue

        key = ingredient_key(ingredient)
        if key in seen:
            continue
        seen.add(key)
        out.append(ingredient)

    return out


def normalize_instructions(value: Any) -> list[str]:
    """Normalize the model's ``instructions`` value, dropping empty and repeated steps."""
    if isinstance(value, str):
        items: list[Any] = value.splitlines()
    elif isinstance(value, list):
        items = value
    else:
        return []

    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if isinstance(item, bool):
            step = str(item).lower()
        elif isinstance(item, (str, int, float)):
            step = str(item).strip()
        else:
            continue

        if not step:
            continue
        key = step.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(step)

    return out


def normalize_extraction(payload: Any) -> ExtractionResult:
    """Turn a recovered JSON payload into an ExtractionResult."""
    if not isinstance(payload, dict):
        logger.warning(f"LLM payload is {type(payload).__name__}, expected an object")
        return ExtractionResult()

    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        title = None

    return ExtractionResult(
        ingredients=normalize_ingredients(payload.get("ingredients")),
        instructions=normalize_instructions(payload.get("instructions")),
        title=title.strip() if title else None,
    )


# =============================================================================
# Extractor
# =============================================================================


class StructuredExtractor:
    """
    Extracts a recipe from page text or photos through the chat-completion client.

    Failures (missing key, transport, non-2xx, unrecoverable JSON) are raised
    to the caller unchanged.
    """

    def __init__(
        self,
        client: LlmClient,
        system_prompt: str | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        max_page_chars: int | None = None,
        max_images: int | None = None,
    ):
        settings = get_settings()
        self.client = client
        self.system_prompt = system_prompt or settings.system_prompt_import
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.timeout = timeout or settings.llm_import_timeout
        self.max_tokens = max_tokens if max_tokens is not None else settings.llm_import_max_tokens
        self.max_page_chars = max_page_chars or settings.max_page_chars
        self.max_images = max_images or settings.max_import_images

    def build_user_message(self, text: str, url: str = "", title: str = "") -> str:
        """Compact user message with the page text cut to the configured budget."""
        excerpt = text[: self.max_page_chars]
        return f"URL: {url}\nTITLE: {title}\n\nCONTENT:\n{excerpt}"

    async def extract_from_text(
        self,
        text: str,
        url: str = "",
        title: str = "",
        model: str | None = None,
    ) -> ExtractionResult:
        """Extract ingredients and instructions from plain page text."""
        user = self.build_user_message(text, url=url, title=title)
        logger.info(f"Extracting recipe from {len(text)} chars of page text")

        payload = await self.client.chat_json(
            self.system_prompt,
            user,
            temperature=self.temperature,
            timeout=self.timeout,
            max_tokens=self.max_tokens,
            model=model,
        )
        result = normalize_extraction(payload)

        logger.info(
            f"Extracted {len(result.ingredients)} ingredients, "
            f"{len(result.instructions)} instructions"
        )
        return result

    async def extract_from_images(
        self,
        images: list[tuple[str, str]],
        model: str | None = None,
    ) -> ExtractionResult:
        """
        Extract a recipe from base64-encoded photos.

        Args:
            images: ``(mime_type, base64_data)`` pairs; only the first
                ``max_images`` are sent.
            model: Optional vision model override.
        """
        if not images:
            raise ValueError("no images provided")

        settings = get_settings()
        batch = images[: self.max_images]
        logger.info(f"Extracting recipe from {len(batch)} image(s)")

        payload = await self.client.chat_json(
            self.system_prompt,
            VISION_PROMPT,
            temperature=self.temperature,
            timeout=self.timeout,
            max_tokens=settings.llm_vision_max_tokens,
            images=batch,
            model=model or settings.llm_vision_model,
        )
        return normalize_extraction(payload)
