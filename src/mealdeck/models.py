"""SQLAlchemy database models."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mealdeck.database import Base
from mealdeck.normalize.units import format_item_text


class Recipe(Base):
    """An imported recipe with structured ingredients."""

    __tablename__ = "recipes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str | None] = mapped_column(Text, nullable=True)  # page URL; None for photo imports
    yield_: Mapped[str | None] = mapped_column("yield", String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [{"quantity": float | None, "unit": str | None, "name": str}, ...]
    ingredients: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    instructions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    # Paths relative to the media directory
    image_path_small: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_path_full: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (Index("idx_recipes_created_at", "created_at"),)


class ShoppingItem(Base):
    """
    One shopping-list entry.

    ``merge_key`` is ``"{unit}|{name}"`` (``"|{name}"`` when unitless) and
    is the only identity used when accumulating quantities.
    """

    __tablename__ = "shopping_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)  # lower-cased, normalized
    unit: Mapped[str | None] = mapped_column(String(8), nullable=True)  # g, ml, tsp, tbsp
    quantity: Mapped[float | None] = mapped_column(Float, nullable=True)
    done: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    merge_key: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (Index("idx_shopping_items_done", "done"),)

    @property
    def text(self) -> str:
        """Display form: "300 g flour", "2 eggs" or "salt"."""
        return format_item_text(self.quantity, self.unit, self.name)
