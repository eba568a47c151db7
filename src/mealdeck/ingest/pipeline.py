"""Recipe import pipeline: page -> text -> LLM extraction -> stored recipe -> hero image."""

from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mealdeck.config import get_settings
from mealdeck.ingest.fetcher import FetchError, PageFetcher
from mealdeck.ingest.html_text import clean_title, fallback_title_from_url
from mealdeck.ingest.images import extract_main_image_url
from mealdeck.ingest.media import ImageEncodeError, store_recipe_image
from mealdeck.llm.extractor import ExtractionResult, StructuredExtractor
from mealdeck.logging_config import LoggingContext, get_logger
from mealdeck.models import Recipe

logger = get_logger(__name__)

DEFAULT_TITLE = "Imported recipe"


def choose_title(llm_title: str | None, page_title: str | None, url: str | None = None) -> str:
    """
    Pick the recipe title.

    Cleaned LLM title, else cleaned page title, else a title derived from
    the URL, else ``"Imported recipe"``.
    """
    for candidate in (llm_title, page_title):
        if candidate:
            cleaned = clean_title(candidate)
            if cleaned:
                return cleaned

    if url:
        fallback = fallback_title_from_url(url)
        if fallback:
            return fallback
    return DEFAULT_TITLE


class RecipeImporter:
    """
    Imports recipes from web pages or photos into the store.

    Fetch and extraction failures propagate. The hero image step runs after
    the recipe is committed and never fails the import.
    """

    def __init__(
        self,
        session: AsyncSession,
        fetcher: PageFetcher,
        extractor: StructuredExtractor,
        media_dir: str | Path | None = None,
    ):
        self.session = session
        self.fetcher = fetcher
        self.extractor = extractor
        self.media_dir = media_dir if media_dir is not None else get_settings().media_dir

    async def _save(self, title: str, source: str | None, result: ExtractionResult) -> Recipe:
        recipe = Recipe(
            title=title,
            source=source,
            ingredients=[i.to_dict() for i in result.ingredients],
            instructions=list(result.instructions),
        )
        self.session.add(recipe)
        await self.session.commit()
        await self.session.refresh(recipe)
        return recipe

    async def import_from_url(self, url: str, model: str | None = None) -> Recipe:
        """
        Import a recipe from a web page.

        Raises:
            FetchError: If the page cannot be fetched or has no readable text.
            LlmError: If the LLM call fails (``LlmNotConfiguredError`` when
                no key is set).
            JsonRecoveryError: If the LLM reply holds no JSON.
        """
        with LoggingContext(source_url=url):
            page = await self.fetcher.fetch_page(url)
            if not page.text.strip():
                raise FetchError("page has no readable text", url=url)

            result = await self.extractor.extract_from_text(
                page.text,
                url=url,
                title=clean_title(page.title) if page.title else "",
                model=model,
            )

            title = choose_title(result.title, page.title, url)
            recipe = await self._save(title, url, result)
            logger.info(
                f"Imported recipe {recipe.id} '{title}' with "
                f"{len(result.ingredients)} ingredients"
            )

            with LoggingContext(recipe_id=recipe.id):
                await self.attach_hero_image(recipe, page.html, url)

            return recipe

    async def import_from_images(self, images: list[tuple[str, str]]) -> Recipe:
        """Import a recipe from ``(mime_type, base64_data)`` photos."""
        result = await self.extractor.extract_from_images(images)
        title = choose_title(result.title, None)

        recipe = await self._save(title, None, result)
        logger.info(f"Imported recipe {recipe.id} '{title}' from {len(images)} image(s)")
        return recipe

    async def attach_hero_image(self, recipe: Recipe, html: str, page_url: str) -> bool:
        """
        Select, fetch, encode and attach a hero image.

        Returns True when the recipe row was updated. Failures are logged
        and leave the recipe without an image.
        """
        image_url = None
        try:
            image_url = extract_main_image_url(html, page_url)
            if image_url is None:
                logger.info("No hero image candidate found")
                return False

            data, content_type = await self.fetcher.fetch_image(image_url)
            small, full = await store_recipe_image(self.media_dir, recipe.id, data)

            recipe.image_path_small = small
            recipe.image_path_full = full
            await self.session.commit()
            await self.session.refresh(recipe)
        except (FetchError, ImageEncodeError, OSError, ValueError) as e:
            logger.warning(f"Hero image import failed for {image_url}: {e}")
            return False
        except SQLAlchemyError as e:
            logger.warning(f"Saving hero image paths failed: {e}")
            await self.session.rollback()
            await self.session.refresh(recipe)
            return False

        logger.info(f"Attached hero image from {image_url} ({content_type})")
        return True
