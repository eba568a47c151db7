"""Shopping-list planning: normalization, merge keys and accumulation."""

from mealdeck.plan.shopping import (
    EmptyItemError,
    MergeCandidate,
    MergeConflictError,
    MergeInput,
    ShoppingMergeEngine,
    accumulate,
    guess_category,
    make_merge_key,
    parse_free_text_item,
    resolve_item,
    strip_leading_qty_unit,
)

__all__ = [
    "EmptyItemError",
    "MergeCandidate",
    "MergeConflictError",
    "MergeInput",
    "ShoppingMergeEngine",
    "accumulate",
    "guess_category",
    "make_merge_key",
    "parse_free_text_item",
    "resolve_item",
    "strip_leading_qty_unit",
]
