"""LLM-backed extraction: chat client, JSON recovery and result normalization."""

from mealdeck.llm.categories import Category, classify_category
from mealdeck.llm.client import LlmClient, LlmError, LlmNotConfiguredError
from mealdeck.llm.extractor import (
    ExtractionResult,
    StructuredExtractor,
    normalize_extraction,
)
from mealdeck.llm.json_recovery import (
    JsonRecoveryError,
    extract_fenced_json,
    extract_largest_json_object,
    recover_json,
)

__all__ = [
    "Category",
    "ExtractionResult",
    "JsonRecoveryError",
    "LlmClient",
    "LlmError",
    "LlmNotConfiguredError",
    "StructuredExtractor",
    "classify_category",
    "extract_fenced_json",
    "extract_largest_json_object",
    "normalize_extraction",
    "recover_json",
]
