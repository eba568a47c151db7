"""Visible text and title extraction from raw HTML."""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

# Never rendered, or not recipe content
SKIP_TAGS = frozenset({
    "script", "style", "noscript", "template",
    "nav", "footer", "header", "aside",
    "form", "input", "button", "select", "textarea",
    "svg", "canvas", "iframe", "object", "embed",
    "video", "audio", "picture", "source", "img",
    "head", "meta", "link", "title",
})

BLOCK_TAGS = frozenset({
    "address", "article", "blockquote", "body", "caption", "dd", "details",
    "dialog", "div", "dl", "dt", "fieldset", "figcaption", "figure",
    "h1", "h2", "h3", "h4", "h5", "h6", "hr", "li", "main", "ol", "p",
    "pre", "section", "summary", "table", "tbody", "td", "tfoot", "th",
    "thead", "tr", "ul",
})

# Order matters: "&amp;" first so double-escaped entities resolve fully
ENTITY_MAP: tuple[tuple[str, str], ...] = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&#039;", "'"),
    ("&#x27;", "'"),
    ("&#8211;", "–"),
    ("&#8212;", "—"),
    ("&#8226;", "•"),
    ("&nbsp;", " "),
)

NUMERIC_ENTITY_RE = re.compile(r"&#(?:(\d+)|[xX]([0-9a-fA-F]+));")
HORIZONTAL_WS_RE = re.compile(r"[ \t\r\f\v\u00a0]+")
EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")
DISPLAY_NONE_RE = re.compile(r"display\s*:\s*none", re.IGNORECASE)
ANY_WS_RE = re.compile(r"\s+")

TITLE_SEPARATORS = ("•", "|", "—", "–", ":")
TITLE_ADJECTIVE_RE = re.compile(
    r"^(best|easy|quick|simple|ultimate|perfect|authentic|classic|vegan|keto|paleo|gluten[- ]free)\s+",
    re.IGNORECASE,
)
TITLE_RECIPE_TAIL_RE = re.compile(r"\s+recipes?$", re.IGNORECASE)

_BREAK = object()


@dataclass
class PageText:
    """A fetched page: best-effort title, visible text and the raw HTML."""

    title: str | None
    text: str
    html: str


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# =============================================================================
# Entities
# =============================================================================


def _numeric_entity(match: re.Match) -> str:
    decimal, hexadecimal = match.groups()
    try:
        codepoint = int(decimal) if decimal else int(hexadecimal, 16)
        return chr(codepoint)
    except (ValueError, OverflowError):
        return match.group(0)


def decode_entities(text: str) -> str:
    """Decode the fixed entity set plus ``&#NNN;`` / ``&#xHH;`` numerics."""
    for entity, replacement in ENTITY_MAP:
        text = text.replace(entity, replacement)
    return NUMERIC_ENTITY_RE.sub(_numeric_entity, text)


# =============================================================================
# Visible Text
# =============================================================================


def _is_hidden(tag: Tag) -> bool:
    if tag.has_attr("hidden"):
        return True
    if str(tag.get("aria-hidden", "")).strip().lower() == "true":
        return True
    style = tag.get("style")
    return bool(style and DISPLAY_NONE_RE.search(str(style)))


def _append_text(parts: list[str], text: str) -> None:
    text = ANY_WS_RE.sub(" ", text)
    if not text:
        return
    if parts and parts[-1] and not parts[-1][-1].isspace() and not text[0].isspace():
        parts.append(" ")
    parts.append(text)


def _collapse_lines(text: str) -> str:
    lines = [line.strip() for line in text.split("\n")]
    text = EXCESS_NEWLINES_RE.sub("\n\n", "\n".join(lines))

    out: list[str] = []
    for line in text.split("\n"):
        if line and out and out[-1] == line:
            continue
        out.append(line)
    return "\n".join(out).strip()


def html_to_text(html: str) -> str:
    """
    Convert an HTML document to the text a reader would see.

    Walks from ``<body>`` (or the document root), skipping non-visible and
    chrome elements and anything marked hidden. Block elements and ``<br>``
    produce line boundaries; inline runs are joined with single spaces.
    """
    soup = parse_html(html)
    root = soup.body or soup

    parts: list[str] = []
    stack: list[object] = [root]
    while stack:
        node = stack.pop()

        if node is _BREAK:
            parts.append("\n")
            continue

        if isinstance(node, PreformattedString):
            # comments, doctypes, CDATA
            continue

        if isinstance(node, NavigableString):
            _append_text(parts, str(node))
            continue

        if not isinstance(node, Tag):
            continue

        name = (node.name or "").lower()
        if name in SKIP_TAGS or _is_hidden(node):
            continue

        if name == "br":
            parts.append("\n")
            continue

        is_block = name in BLOCK_TAGS
        if is_block:
            parts.append("\n")
            stack.append(_BREAK)
        stack.extend(reversed(node.contents))

    # bs4 has already decoded entities in text nodes
    text = "".join(parts)
    text = HORIZONTAL_WS_RE.sub(" ", text)
    return _collapse_lines(text)


# =============================================================================
# Titles
# =============================================================================


def extract_title(html: str) -> str | None:
    """Best-effort page title: og:title, then ``<title>``, then the first ``<h1>``."""
    soup = parse_html(html)

    candidates: list[str] = []

    og = soup.find("meta", attrs={"property": "og:title"}) or soup.find(
        "meta", attrs={"name": "og:title"}
    )
    if og is not None:
        candidates.append(str(og.get("content") or ""))

    if soup.title is not None:
        candidates.append(soup.title.get_text())

    h1 = soup.find("h1")
    if h1 is not None:
        candidates.append(h1.get_text(" "))

    for candidate in candidates:
        cleaned = ANY_WS_RE.sub(" ", candidate).strip()
        if cleaned:
            return cleaned
    return None


def clean_title(title: str) -> str:
    """
    Normalize a noisy page title.

    Examples:
        "Best Pasta Recipe" -> "Pasta"
        "Pasta | Site Name" -> "Pasta"
        "gluten-free pizza" -> "Pizza"
    """
    # for LLM titles, which can echo escaped markup
    text = decode_entities(title).strip()

    cut = min((i for i in (text.find(sep) for sep in TITLE_SEPARATORS) if i >= 0), default=-1)
    if cut >= 0:
        text = text[:cut].strip()

    while True:
        stripped = TITLE_ADJECTIVE_RE.sub("", text, count=1).strip()
        if stripped == text:
            break
        text = stripped

    text = TITLE_RECIPE_TAIL_RE.sub("", text).strip()
    text = ANY_WS_RE.sub(" ", text).strip()

    if text:
        text = text[0].upper() + text[1:]
    return text


def fallback_title_from_url(url: str) -> str | None:
    """``"{host} — {path}"`` from a URL, or just the host when the path is empty."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None

    host = parsed.hostname
    if not parsed.scheme or not host:
        return None

    path = parsed.path.strip("/")
    return f"{host} — {path}" if path else host
