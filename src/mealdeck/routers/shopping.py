"""API routes for the shopping list."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from mealdeck.database import get_db
from mealdeck.llm.categories import classify_category
from mealdeck.llm.client import LlmClient
from mealdeck.logging_config import get_logger
from mealdeck.models import ShoppingItem
from mealdeck.plan.shopping import (
    EmptyItemError,
    MergeConflictError,
    MergeInput,
    ShoppingMergeEngine,
)
from mealdeck.routers.recipes import get_llm_client
from mealdeck.schemas import ShoppingItemResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/shopping", tags=["shopping"])


# =============================================================================
# Request/Response Schemas
# =============================================================================


class ShoppingTextRequest(BaseModel):
    """Free-text shopping line, e.g. "2 kg flour" or "milk"."""

    text: str


class MergeItemRequest(BaseModel):
    """One structured item; ``name`` may itself carry a quantity and unit."""

    name: str
    quantity: float | None = Field(None, ge=0)
    unit: str | None = None
    category: str | None = None


class MergeRequest(BaseModel):
    """Batch of items to merge into the list."""

    items: list[MergeItemRequest]


class ShoppingItemUpdate(BaseModel):
    """Partial update; an empty category clears it."""

    done: bool | None = None
    category: str | None = None
    text: str | None = None


class ClassifyRequest(BaseModel):
    """Item name to classify."""

    name: str


class ClassifyResponse(BaseModel):
    """Suggested category."""

    category: str


def get_engine(db: AsyncSession = Depends(get_db)) -> ShoppingMergeEngine:
    return ShoppingMergeEngine(db)


def _bad_request(e: EmptyItemError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _conflict(e: MergeConflictError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=list[ShoppingItemResponse])
async def list_items(engine: ShoppingMergeEngine = Depends(get_engine)) -> list[ShoppingItem]:
    """List every shopping item in insertion order."""
    return await engine.list_items()


@router.post("", response_model=ShoppingItemResponse, status_code=status.HTTP_201_CREATED)
async def add_item(
    request: ShoppingTextRequest,
    engine: ShoppingMergeEngine = Depends(get_engine),
) -> ShoppingItem:
    """
    Add a free-text item.

    "2 kg flour" merges into an existing "g|flour" entry (2000 g added);
    text without a leading quantity becomes a unitless entry.
    """
    try:
        return await engine.add_text(request.text)
    except EmptyItemError as e:
        raise _bad_request(e) from e
    except MergeConflictError as e:
        raise _conflict(e) from e


@router.post("/merge", response_model=list[ShoppingItemResponse])
async def merge_items(
    request: MergeRequest,
    engine: ShoppingMergeEngine = Depends(get_engine),
) -> list[ShoppingItem]:
    """Merge a batch of items atomically and return the full list."""
    logger.info(f"Merging {len(request.items)} shopping items")
    items = [
        MergeInput(name=i.name, quantity=i.quantity, unit=i.unit, category=i.category)
        for i in request.items
    ]
    try:
        return await engine.merge_items(items)
    except EmptyItemError as e:
        raise _bad_request(e) from e
    except MergeConflictError as e:
        raise _conflict(e) from e


@router.patch("/{item_id}", response_model=ShoppingItemResponse)
async def update_item(
    item_id: int,
    request: ShoppingItemUpdate,
    engine: ShoppingMergeEngine = Depends(get_engine),
) -> ShoppingItem:
    """Toggle done, set or clear the category, or replace the text."""
    try:
        item = await engine.update_item(
            item_id,
            done=request.done,
            category=request.category,
            text=request.text,
        )
    except EmptyItemError as e:
        raise _bad_request(e) from e
    except MergeConflictError as e:
        logger.warning(f"Update of shopping item {item_id} conflicts: {e}")
        raise _conflict(e) from e

    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Shopping item not found: {item_id}",
        )
    return item


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(item_id: int, engine: ShoppingMergeEngine = Depends(get_engine)) -> None:
    """Delete a shopping item."""
    if not await engine.delete_item(item_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Shopping item not found: {item_id}",
        )


@router.post("/classify", response_model=ClassifyResponse)
async def classify_item(
    request: ClassifyRequest,
    client: LlmClient = Depends(get_llm_client),
) -> ClassifyResponse:
    """Suggest a category for an item name; falls back to "Other"."""
    if not request.name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="empty item name")

    category = await classify_category(client, request.name)
    return ClassifyResponse(category=category.value)
