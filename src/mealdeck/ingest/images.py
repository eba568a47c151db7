"""Hero-image discovery and ranking for recipe pages.

Candidates come from several markup sources, each with a fixed signal
weight, and are then filtered and ranked:

==========================================  ======
Source                                      Signal
==========================================  ======
JSON-LD ``Recipe.image``                       100
``og:image`` / ``og:image:url`` / secure        90
``twitter:image*``                              80
``link[rel=image_src]`` / ``itemprop=image``    70
``<img>`` / ``<picture><source>`` srcset        60
``<img>`` src / lazy-src attributes             55
inline ``background-image``                     50
==========================================  ======
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Iterator
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from mealdeck.ingest.html_text import parse_html
from mealdeck.logging_config import get_logger

logger = get_logger(__name__)

SIGNAL_JSON_LD = 100
SIGNAL_OPEN_GRAPH = 90
SIGNAL_TWITTER = 80
SIGNAL_LINK_META = 70
SIGNAL_SRCSET = 60
SIGNAL_SRC = 55
SIGNAL_BACKGROUND = 50

TITLE_PROXIMITY_BONUS = 10
TITLE_PROXIMITY_DEPTH = 6

SRCSET_ATTRS = ("srcset", "data-srcset", "data-lazy-srcset")
SRC_ATTRS = ("src", "data-src", "data-original", "data-lazy")

PENALIZED_NAME_PARTS = ("logo", "sprite", "icon", "badge")
FAVORED_NAME_PARTS = ("hero", "main", "recipe")

OG_URL_PROPERTIES = ("og:image", "og:image:url", "og:image:secure_url")

BACKGROUND_URL_RE = re.compile(
    r"background-image\s*:[^;]*?url\(\s*['\"]?([^'\")]+?)['\"]?\s*\)",
    re.IGNORECASE,
)
SRCSET_WIDTH_RE = re.compile(r"^(\d+)w$")


@dataclass
class ImageCandidate:
    """One possible hero image, alive only while ranking a single page."""

    url: str
    signal: int
    declared_width: int | None = None
    declared_height: int | None = None
    dom_bonus: int = 0

    @property
    def size_hint(self) -> int:
        """Capped contribution from declared dimensions."""
        w, h = self.declared_width, self.declared_height
        if w is not None and h is not None:
            return max(0, min(200, (w * h) // 10000))
        if w is not None:
            return max(0, min(100, w // 100))
        return 0

    @property
    def score(self) -> int:
        return self.signal + self.dom_bonus + self.size_hint


# =============================================================================
# URL Helpers
# =============================================================================


def page_base_url(soup: BeautifulSoup, page_url: str) -> str:
    """Effective base: ``<base href>`` joined onto the page URL, else the page URL."""
    base = page_url
    tag = soup.find("base", href=True)
    if tag is not None:
        href = str(tag["href"]).strip()
        if href:
            try:
                base = urljoin(page_url, href)
                urlparse(base)
            except ValueError:
                logger.debug(f"Ignoring malformed <base href={href!r}>")
                base = page_url
    return base


def absolutize(base: str, raw: str) -> str | None:
    """
    Resolve ``raw`` against ``base``; protocol-relative URLs take the base scheme.

    Returns None for empty and ``data:`` values and for anything urllib
    cannot parse (e.g. ``https://[bad/x.jpg``).
    """
    raw = raw.strip()
    if not raw or raw.startswith("data:"):
        return None
    try:
        if raw.startswith(("http://", "https://")):
            url = raw
        elif raw.startswith("//"):
            url = f"{urlparse(base).scheme or 'https'}:{raw}"
        else:
            url = urljoin(base, raw)
        urlparse(url)
    except ValueError:
        return None
    return url


def is_plausible_url(url: str) -> bool:
    """Require http(s) and reject SVG paths (query strings are ignored)."""
    if not url.startswith(("http://", "https://")):
        return False
    try:
        path = urlparse(url).path
    except ValueError:
        return False
    return not path.lower().endswith(".svg")


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        # json.loads turns 1e999 into inf
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip().isdigit():
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


# =============================================================================
# Scoring
# =============================================================================


def filename_bonus(url: str) -> int:
    path = urlparse(url).path.lower()
    if any(part in path for part in PENALIZED_NAME_PARTS):
        return -30
    if any(part in path for part in FAVORED_NAME_PARTS):
        return 10
    return 0


def aspect_bonus(width: int | None, height: int | None) -> int:
    if not width or not height or width <= 0 or height <= 0:
        return 0
    ratio = width / height
    return 5 if 0.8 <= ratio <= 2.2 else -5


# =============================================================================
# Sources
# =============================================================================


def _is_recipe_type(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "recipe"
    if isinstance(value, list):
        return any(isinstance(v, str) and v.lower() == "recipe" for v in value)
    return False


def _image_object(obj: dict[str, Any]) -> tuple[str, int | None, int | None] | None:
    url = obj.get("url") or obj.get("contentUrl")
    if not isinstance(url, str):
        return None
    return url, _to_int(obj.get("width")), _to_int(obj.get("height"))


def _recipe_images(obj: dict[str, Any]) -> list[tuple[str, int | None, int | None]]:
    image = obj.get("image")
    items = image if isinstance(image, list) else [image]

    out = []
    for item in items:
        if isinstance(item, str):
            out.append((item, None, None))
        elif isinstance(item, dict):
            found = _image_object(item)
            if found:
                out.append(found)
    return out


def find_recipe_images_in_ld(data: Any) -> list[tuple[str, int | None, int | None]] | None:
    """
    Locate the first Recipe node in a JSON-LD value and return its images.

    Looks inside ``@graph`` and top-level arrays. Returns None when no
    Recipe node exists, and an empty list for a Recipe without images.
    """
    if isinstance(data, list):
        for item in data:
            found = find_recipe_images_in_ld(item)
            if found is not None:
                return found
        return None

    if not isinstance(data, dict):
        return None

    if "@graph" in data:
        found = find_recipe_images_in_ld(data["@graph"])
        if found is not None:
            return found

    if not _is_recipe_type(data.get("@type")):
        return None
    return _recipe_images(data)


def _json_ld_candidates(soup: BeautifulSoup, base: str) -> Iterator[ImageCandidate]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.get_text())
        except ValueError:
            logger.debug("Skipping unparseable JSON-LD block")
            continue

        for raw, width, height in find_recipe_images_in_ld(data) or []:
            url = absolutize(base, raw)
            if url:
                yield ImageCandidate(url, SIGNAL_JSON_LD, width, height)


def _open_graph_candidates(soup: BeautifulSoup, base: str) -> list[ImageCandidate]:
    """
    Group ``og:image`` metadata into blocks.

    Each ``og:image`` tag closes a block with the dimensions seen so far;
    a trailing url (e.g. only ``og:image:secure_url``) is emitted at the end.
    """
    out: list[ImageCandidate] = []
    url: str | None = None
    width: int | None = None
    height: int | None = None

    for meta in soup.find_all("meta", attrs={"property": re.compile(r"^og:image")}):
        prop = str(meta.get("property", ""))
        content = str(meta.get("content", ""))

        if prop in OG_URL_PROPERTIES:
            url = absolutize(base, content) or url
        elif prop == "og:image:width":
            width = _to_int(content)
        elif prop == "og:image:height":
            height = _to_int(content)

        if prop == "og:image" and url:
            out.append(ImageCandidate(url, SIGNAL_OPEN_GRAPH, width, height))
            width = height = None

    if url:
        out.append(ImageCandidate(url, SIGNAL_OPEN_GRAPH, width, height))
    return out


def _twitter_candidates(soup: BeautifulSoup, base: str) -> Iterator[ImageCandidate]:
    for meta in soup.find_all("meta", attrs={"name": re.compile(r"^twitter:image")}):
        url = absolutize(base, str(meta.get("content", "")))
        if url:
            yield ImageCandidate(url, SIGNAL_TWITTER)


def _link_meta_candidates(soup: BeautifulSoup, base: str) -> Iterator[ImageCandidate]:
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        rels = rel if isinstance(rel, list) else str(rel).split()
        if "image_src" in rels:
            url = absolutize(base, str(link["href"]))
            if url:
                yield ImageCandidate(url, SIGNAL_LINK_META)

    for meta in soup.find_all("meta", attrs={"itemprop": "image"}):
        url = absolutize(base, str(meta.get("content", "")))
        if url:
            yield ImageCandidate(url, SIGNAL_LINK_META)


def _first_attr(tag: Tag, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = tag.get(name)
        if isinstance(value, str) and value.strip():
            return value
    return None


def parse_srcset(srcset: str) -> list[tuple[str, int | None]]:
    """Parse ``"a.jpg 800w, b.jpg 2x"`` into ``[("a.jpg", 800), ("b.jpg", None)]``."""
    out = []
    for part in srcset.split(","):
        tokens = part.split()
        if not tokens:
            continue
        width = None
        if len(tokens) > 1:
            match = SRCSET_WIDTH_RE.match(tokens[1])
            width = int(match.group(1)) if match else None
        out.append((tokens[0], width))
    return out


def title_like_text(soup: BeautifulSoup) -> str:
    og = soup.find("meta", attrs={"property": "og:title"})
    if og is not None and str(og.get("content", "")).strip():
        return str(og["content"]).strip()
    if soup.title is not None and soup.title.get_text().strip():
        return soup.title.get_text().strip()
    h1 = soup.find("h1")
    if h1 is not None and h1.get_text().strip():
        return h1.get_text().strip()
    return ""


def near_title(tag: Tag, title: str) -> bool:
    """True if one of the first six ancestors contains the title text."""
    if not title:
        return False
    parent = tag.parent
    for _ in range(TITLE_PROXIMITY_DEPTH):
        if parent is None or parent.name == "[document]":
            return False
        if any(title in text for text in parent.strings):
            return True
        parent = parent.parent
    return False


def _dom_candidates(soup: BeautifulSoup, base: str) -> Iterator[ImageCandidate]:
    title = title_like_text(soup)

    for tag in soup.select("img, picture source"):
        bonus = TITLE_PROXIMITY_BONUS if near_title(tag, title) else 0

        srcset = _first_attr(tag, SRCSET_ATTRS)
        if srcset:
            for raw, width in parse_srcset(srcset):
                url = absolutize(base, raw)
                if url:
                    yield ImageCandidate(url, SIGNAL_SRCSET, width, None, bonus)

        src = _first_attr(tag, SRC_ATTRS)
        if src:
            url = absolutize(base, src)
            if url:
                yield ImageCandidate(url, SIGNAL_SRC, dom_bonus=bonus)

        style = tag.get("style")
        if isinstance(style, str):
            match = BACKGROUND_URL_RE.search(style)
            if match:
                url = absolutize(base, match.group(1))
                if url:
                    yield ImageCandidate(url, SIGNAL_BACKGROUND)


# =============================================================================
# Selection
# =============================================================================


def collect_image_candidates(html: str, page_url: str) -> list[ImageCandidate]:
    """
    Collect, filter and rank every image candidate on a page.

    Candidates are deduplicated by absolute URL (first occurrence wins),
    implausible URLs are dropped, filename and aspect bonuses are added to
    ``dom_bonus``, then the list is sorted by ``score`` descending. The sort
    is stable, so ties keep source-priority order.
    """
    soup = parse_html(html)
    base = page_base_url(soup, page_url)

    raw: list[ImageCandidate] = []
    raw.extend(_json_ld_candidates(soup, base))
    raw.extend(_open_graph_candidates(soup, base))
    raw.extend(_twitter_candidates(soup, base))
    raw.extend(_link_meta_candidates(soup, base))
    raw.extend(_dom_candidates(soup, base))

    seen: set[str] = set()
    ranked: list[ImageCandidate] = []
    for candidate in raw:
        if candidate.url in seen:
            continue
        seen.add(candidate.url)
        if not is_plausible_url(candidate.url):
            continue
        candidate.dom_bonus += filename_bonus(candidate.url)
        candidate.dom_bonus += aspect_bonus(candidate.declared_width, candidate.declared_height)
        ranked.append(candidate)

    ranked.sort(key=lambda c: c.score, reverse=True)
    return ranked


def extract_main_image_url(html: str, page_url: str) -> str | None:
    """Return the best hero image URL for a page, or None."""
    ranked = collect_image_candidates(html, page_url)
    if not ranked:
        return None

    best = ranked[0]
    logger.debug(f"Selected hero image {best.url} (score {best.score}, {len(ranked)} candidates)")
    return best.url
