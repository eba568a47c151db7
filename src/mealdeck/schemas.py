"""Common API schemas shared by the routers."""

from datetime import datetime

from pydantic import BaseModel, Field


class IngredientSchema(BaseModel):
    """A structured ingredient: quantity, display-canonical unit, name."""

    quantity: float | None = None
    unit: str | None = Field(None, description="One of g, kg, ml, L, tsp, tbsp, or null")
    name: str


class RecipeResponse(BaseModel):
    """A stored recipe."""

    id: int
    title: str
    source: str | None = None
    yield_: str | None = Field(None, serialization_alias="yield")
    notes: str | None = None
    ingredients: list[IngredientSchema] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    image_path_small: str | None = None
    image_path_full: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class RecipeListResponse(BaseModel):
    """Paginated list of recipes."""

    recipes: list[RecipeResponse]
    total: int
    offset: int
    limit: int


class ShoppingItemResponse(BaseModel):
    """A shopping-list entry as shown to the user."""

    id: int
    text: str = Field(description='Display form, e.g. "300 g flour"')
    name: str
    unit: str | None = None
    quantity: float | None = None
    done: bool
    category: str | None = None
    merge_key: str

    class Config:
        from_attributes = True
