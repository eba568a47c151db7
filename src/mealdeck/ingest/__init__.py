"""Recipe ingestion: page fetching, text and image extraction, import pipeline."""

from mealdeck.ingest.fetcher import FetchError, PageFetcher
from mealdeck.ingest.html_text import (
    PageText,
    clean_title,
    decode_entities,
    extract_title,
    fallback_title_from_url,
    html_to_text,
)
from mealdeck.ingest.images import (
    ImageCandidate,
    collect_image_candidates,
    extract_main_image_url,
)
from mealdeck.ingest.media import ImageEncodeError, encode_full_and_thumb
from mealdeck.ingest.pipeline import RecipeImporter, choose_title

__all__ = [
    "FetchError",
    "ImageCandidate",
    "ImageEncodeError",
    "PageFetcher",
    "PageText",
    "RecipeImporter",
    "choose_title",
    "clean_title",
    "collect_image_candidates",
    "decode_entities",
    "encode_full_and_thumb",
    "extract_main_image_url",
    "extract_title",
    "fallback_title_from_url",
    "html_to_text",
]
