"""Hero image re-encoding and storage.

Every stored image is re-encoded through Pillow, which drops whatever the
upstream file carried besides pixels, and written as two WebP files:

- ``full.webp``: original dimensions, quality 90
- ``thumb.webp``: longest side at most 1024 px, quality 10
"""

import asyncio
import io
import shutil
from pathlib import Path

from PIL import Image

from mealdeck.logging_config import get_logger

logger = get_logger(__name__)

FULL_WEBP_QUALITY = 90
THUMB_WEBP_QUALITY = 10
THUMB_MAX_DIM = 1024

FULL_FILENAME = "full.webp"
THUMB_FILENAME = "thumb.webp"


class ImageEncodeError(Exception):
    """Raised when an image cannot be decoded or re-encoded."""


def _webp_ready(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info)
    return img.convert("RGBA" if has_alpha else "RGB")


def _encode_webp(img: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="WEBP", quality=quality)
    return buffer.getvalue()


def encode_full_and_thumb(data: bytes) -> tuple[bytes, bytes]:
    """
    Decode an image and return ``(full_webp, thumb_webp)``.

    CPU-bound; call through ``asyncio.to_thread`` from async code.

    Raises:
        ImageEncodeError: If the bytes are not a decodable image or
            encoding fails.
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            opened.load()
            img = _webp_ready(opened)

            full = _encode_webp(img, FULL_WEBP_QUALITY)

            thumb_img = img
            if img.width > THUMB_MAX_DIM or img.height > THUMB_MAX_DIM:
                thumb_img = img.copy()
                thumb_img.thumbnail((THUMB_MAX_DIM, THUMB_MAX_DIM), Image.Resampling.BILINEAR)
            thumb = _encode_webp(thumb_img, THUMB_WEBP_QUALITY)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageEncodeError(f"image encoding failed: {e}") from e

    return full, thumb


def recipe_image_dir(media_dir: str | Path, recipe_id: int) -> Path:
    return Path(media_dir) / "recipes" / str(recipe_id)


def write_recipe_images(
    media_dir: str | Path,
    recipe_id: int,
    full: bytes,
    thumb: bytes,
) -> tuple[str, str]:
    """
    Write both encodings under ``{media_dir}/recipes/{id}/``.

    Returns:
        ``(thumb_path, full_path)`` relative to ``media_dir``, with forward
        slashes, suitable for storing on the recipe row.
    """
    target = recipe_image_dir(media_dir, recipe_id)
    target.mkdir(parents=True, exist_ok=True)
    (target / FULL_FILENAME).write_bytes(full)
    (target / THUMB_FILENAME).write_bytes(thumb)

    prefix = f"recipes/{recipe_id}"
    return f"{prefix}/{THUMB_FILENAME}", f"{prefix}/{FULL_FILENAME}"


async def store_recipe_image(media_dir: str | Path, recipe_id: int, data: bytes) -> tuple[str, str]:
    """Encode in a worker thread, then write both files. Returns ``(thumb_path, full_path)``."""
    full, thumb = await asyncio.to_thread(encode_full_and_thumb, data)
    paths = await asyncio.to_thread(write_recipe_images, media_dir, recipe_id, full, thumb)
    logger.info(f"Stored hero image for recipe {recipe_id}: {len(full)} / {len(thumb)} bytes")
    return paths


async def delete_recipe_images(media_dir: str | Path, recipe_id: int) -> None:
    """Remove ``{media_dir}/recipes/{id}/`` if it exists."""
    target = recipe_image_dir(media_dir, recipe_id)
    if target.is_dir():
        await asyncio.to_thread(shutil.rmtree, target)
        logger.info(f"Removed images of recipe {recipe_id}")
