"""API routes for recipe import, editing and browsing."""

import base64
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mealdeck.config import get_settings
from mealdeck.database import get_db
from mealdeck.ingest.fetcher import FetchError, PageFetcher
from mealdeck.ingest.media import ImageEncodeError, delete_recipe_images, store_recipe_image
from mealdeck.ingest.pipeline import RecipeImporter
from mealdeck.llm.client import LlmClient, LlmError, LlmNotConfiguredError
from mealdeck.llm.extractor import StructuredExtractor
from mealdeck.llm.json_recovery import JsonRecoveryError
from mealdeck.logging_config import get_logger
from mealdeck.models import Recipe
from mealdeck.normalize.ingredients import parse_ingredient_line
from mealdeck.schemas import IngredientSchema, RecipeListResponse, RecipeResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/recipes", tags=["recipes"])


# =============================================================================
# Request Schemas
# =============================================================================


class RecipeImportRequest(BaseModel):
    """Request to import a recipe from a web page."""

    url: str = Field(..., pattern=r"^https?://", description="Recipe page URL")
    model: str | None = Field(None, description="Override the configured LLM model")


class ParseIngredientRequest(BaseModel):
    """A single free-text ingredient line."""

    line: str


class RecipeCreate(BaseModel):
    """A recipe typed in by hand; ingredients are free-text lines."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    source: str | None = None
    yield_: str | None = Field(None, alias="yield")
    notes: str | None = None
    ingredients: list[str] = Field(default_factory=list, examples=[["120 g flour", "2 eggs"]])
    instructions: list[str] = Field(default_factory=list)


class RecipeUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    source: str | None = None
    yield_: str | None = Field(None, alias="yield")
    notes: str | None = None
    ingredients: list[str] | None = None
    instructions: list[str] | None = None


# =============================================================================
# Dependencies
# =============================================================================


async def get_llm_client() -> AsyncIterator[LlmClient]:
    """Chat-completion client for one request."""
    client = LlmClient()
    try:
        yield client
    finally:
        await client.close()


async def get_page_fetcher() -> AsyncIterator[PageFetcher]:
    """Page fetcher for one request."""
    fetcher = PageFetcher()
    try:
        yield fetcher
    finally:
        await fetcher.close()


def _extraction_error(e: Exception) -> HTTPException:
    """Map pipeline failures to gateway-class HTTP errors."""
    if isinstance(e, LlmNotConfiguredError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Recipe import is disabled: no LLM API key configured",
        )
    if isinstance(e, FetchError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Fetching the recipe page failed: {e}",
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Recipe extraction failed: {e}",
    )


async def _read_image_upload(upload: UploadFile) -> tuple[str, bytes]:
    """Return ``(mime_type, data)`` of an uploaded image, or raise 400/413."""
    max_bytes = get_settings().max_image_bytes
    mime = upload.content_type or "image/jpeg"
    if not mime.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{upload.filename or 'upload'} is not an image",
        )
    data = await upload.read()
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"image exceeds {max_bytes // (1024 * 1024)} MB limit",
        )
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="empty image")
    return mime, data


def _structured_ingredients(lines: list[str]) -> list[dict]:
    """Parse typed ingredient lines, skipping blank ones."""
    return [parse_ingredient_line(line).to_dict() for line in lines if line.strip()]


def _clean_instructions(steps: list[str]) -> list[str]:
    return [step.strip() for step in steps if step.strip()]


async def _get_recipe_or_404(db: AsyncSession, recipe_id: int) -> Recipe:
    recipe = await db.get(Recipe, recipe_id)
    if recipe is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Recipe not found: {recipe_id}",
        )
    return recipe


# =============================================================================
# Import Endpoints
# =============================================================================


@router.post("/import", response_model=RecipeResponse, status_code=status.HTTP_201_CREATED)
async def import_recipe(
    request: RecipeImportRequest,
    db: AsyncSession = Depends(get_db),
    client: LlmClient = Depends(get_llm_client),
    fetcher: PageFetcher = Depends(get_page_fetcher),
) -> Recipe:
    """
    Import a recipe from a URL.

    The page is fetched, reduced to visible text and handed to the LLM for
    structured extraction. A hero image is attached when one can be found.
    """
    logger.info(f"Importing recipe from {request.url}")

    if not client.is_configured:
        raise _extraction_error(LlmNotConfiguredError("LLM API key is not configured"))

    importer = RecipeImporter(db, fetcher, StructuredExtractor(client))
    try:
        return await importer.import_from_url(request.url, model=request.model)
    except (FetchError, LlmError, JsonRecoveryError) as e:
        logger.error(f"Import of {request.url} failed: {e}")
        raise _extraction_error(e) from e


@router.post(
    "/import/images",
    response_model=RecipeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_recipe_from_images(
    image: Annotated[list[UploadFile] | None, File(description="Recipe photos")] = None,
    db: AsyncSession = Depends(get_db),
    client: LlmClient = Depends(get_llm_client),
    fetcher: PageFetcher = Depends(get_page_fetcher),
) -> Recipe:
    """
    Import a recipe from up to three photos of it.

    Extra files beyond the limit are ignored.
    """
    settings = get_settings()
    uploads = (image or [])[: settings.max_import_images]
    if not uploads:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no images provided")

    images: list[tuple[str, str]] = []
    for upload in uploads:
        mime, data = await _read_image_upload(upload)
        images.append((mime, base64.b64encode(data).decode("ascii")))

    logger.info(f"Importing recipe from {len(images)} image(s)")

    importer = RecipeImporter(db, fetcher, StructuredExtractor(client))
    try:
        return await importer.import_from_images(images)
    except (LlmError, JsonRecoveryError) as e:
        logger.error(f"Image import failed: {e}")
        raise _extraction_error(e) from e


# =============================================================================
# Recipe Endpoints
# =============================================================================


@router.get("", response_model=RecipeListResponse)
async def list_recipes(
    limit: Annotated[int, Query(ge=1, le=100, description="Max recipes to return")] = 20,
    offset: Annotated[int, Query(ge=0, description="Offset for pagination")] = 0,
    db: AsyncSession = Depends(get_db),
) -> RecipeListResponse:
    """List stored recipes, newest first."""
    total = await db.scalar(select(func.count()).select_from(Recipe))
    result = await db.execute(
        select(Recipe).order_by(Recipe.id.desc()).offset(offset).limit(limit)
    )
    recipes = result.scalars().all()

    return RecipeListResponse(
        recipes=[RecipeResponse.model_validate(r) for r in recipes],
        total=total or 0,
        offset=offset,
        limit=limit,
    )


@router.get("/{recipe_id}", response_model=RecipeResponse)
async def get_recipe(recipe_id: int, db: AsyncSession = Depends(get_db)) -> Recipe:
    """Get a single recipe."""
    return await _get_recipe_or_404(db, recipe_id)


@router.post("", response_model=RecipeResponse, status_code=status.HTTP_201_CREATED)
async def create_recipe(request: RecipeCreate, db: AsyncSession = Depends(get_db)) -> Recipe:
    """
    Create a recipe by hand.

    Each ingredient line is parsed into quantity, unit and name the same
    way ``/parse-ingredient`` does.
    """
    title = request.title.strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")

    recipe = Recipe(
        title=title,
        source=request.source,
        yield_=request.yield_,
        notes=request.notes,
        ingredients=_structured_ingredients(request.ingredients),
        instructions=_clean_instructions(request.instructions),
    )
    db.add(recipe)
    await db.commit()
    await db.refresh(recipe)

    logger.info(f"Created recipe {recipe.id} '{title}' with {len(recipe.ingredients)} ingredients")
    return recipe


@router.put("/{recipe_id}", response_model=RecipeResponse)
async def update_recipe(
    recipe_id: int,
    request: RecipeUpdate,
    db: AsyncSession = Depends(get_db),
) -> Recipe:
    """Update the fields sent; ingredient lines are re-parsed."""
    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no fields to update")

    recipe = await _get_recipe_or_404(db, recipe_id)

    if "title" in changes:
        title = (request.title or "").strip()
        if not title:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="title cannot be empty"
            )
        recipe.title = title
    if "source" in changes:
        recipe.source = request.source
    if "yield_" in changes:
        recipe.yield_ = request.yield_
    if "notes" in changes:
        recipe.notes = request.notes
    if request.ingredients is not None:
        recipe.ingredients = _structured_ingredients(request.ingredients)
    if request.instructions is not None:
        recipe.instructions = _clean_instructions(request.instructions)

    await db.commit()
    await db.refresh(recipe)

    logger.info(f"Updated recipe {recipe_id}: {', '.join(sorted(changes))}")
    return recipe


@router.delete("/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recipe(recipe_id: int, db: AsyncSession = Depends(get_db)) -> None:
    """Delete a recipe and its stored images."""
    recipe = await _get_recipe_or_404(db, recipe_id)
    await db.delete(recipe)
    await db.commit()

    await delete_recipe_images(get_settings().media_dir, recipe_id)
    logger.info(f"Deleted recipe {recipe_id}")


@router.post("/{recipe_id}/image", response_model=RecipeResponse)
async def upload_recipe_image(
    recipe_id: int,
    image: Annotated[UploadFile, File(description="Hero image")],
    db: AsyncSession = Depends(get_db),
) -> Recipe:
    """Replace a recipe's hero image with an uploaded one, re-encoded to WebP."""
    recipe = await _get_recipe_or_404(db, recipe_id)
    _, data = await _read_image_upload(image)

    try:
        small, full = await store_recipe_image(get_settings().media_dir, recipe_id, data)
    except ImageEncodeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    recipe.image_path_small = small
    recipe.image_path_full = full
    await db.commit()
    await db.refresh(recipe)
    return recipe


@router.post("/parse-ingredient", response_model=IngredientSchema)
async def parse_ingredient(request: ParseIngredientRequest) -> IngredientSchema:
    """Parse one free-text ingredient line into quantity, unit and name."""
    parsed = parse_ingredient_line(request.line)
    return IngredientSchema(**parsed.to_dict())
