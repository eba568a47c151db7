"""Recover a JSON object from noisy LLM output.

Models are told to answer with strict JSON but regularly prepend commentary,
wrap the payload in a code fence or trail off with a remark. The recovery
chain tries, in order:

1. the whole text as JSON
2. the first fenced code block (```json or bare ```) holding an object
3. the largest balanced top-level ``{...}`` span, found with a string-aware
   brace scanner
"""

import enum
import json
import re
from typing import Any

from mealdeck.logging_config import get_logger

logger = get_logger(__name__)

PREVIEW_CHARS = 500

FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.IGNORECASE | re.DOTALL)


class JsonRecoveryError(ValueError):
    """Raised when no strategy could extract JSON from the text."""

    def __init__(self, message: str, preview: str = ""):
        super().__init__(f"{message}. Preview: {preview}" if preview else message)
        self.preview = preview


class _ScanState(enum.Enum):
    PLAIN = "plain"
    IN_STRING = "in_string"
    IN_STRING_ESCAPED = "in_string_escaped"


def extract_fenced_json(text: str) -> str | None:
    """Return the object inside the first ```json / ``` fence, if any."""
    match = FENCED_JSON_RE.search(text)
    if not match:
        return None
    return match.group(1).strip()


def extract_largest_json_object(text: str) -> str | None:
    """
    Return the largest balanced top-level ``{...}`` substring.

    Braces inside JSON strings are ignored. A backslash inside a string
    escapes exactly one following character, so ``"a\\"b"`` stays one string.
    Size is measured in characters; on a tie the earlier span wins.
    """
    best: tuple[int, int] | None = None
    state = _ScanState.PLAIN
    depth = 0
    start = 0

    for i, ch in enumerate(text):
        if state is _ScanState.IN_STRING_ESCAPED:
            state = _ScanState.IN_STRING
            continue

        if state is _ScanState.IN_STRING:
            if ch == "\\":
                state = _ScanState.IN_STRING_ESCAPED
            elif ch == '"':
                state = _ScanState.PLAIN
            continue

        if ch == '"':
            state = _ScanState.IN_STRING
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and (best is None or i - start > best[1] - best[0]):
                best = (start, i)

    if best is None:
        return None
    return text[best[0] : best[1] + 1]


def recover_json(text: str) -> Any:
    """
    Extract a JSON value from arbitrary LLM text.

    Raises:
        JsonRecoveryError: If direct parsing, the fenced block and the
            largest balanced object all fail.
    """
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass

    fenced = extract_fenced_json(text)
    if fenced is not None:
        try:
            return json.loads(fenced)
        except ValueError:
            logger.debug("Fenced block is not valid JSON, trying brace scan")

    candidate = extract_largest_json_object(text)
    if candidate is not None:
        try:
            return json.loads(candidate)
        except ValueError:
            logger.debug("Largest balanced object is not valid JSON")

    raise JsonRecoveryError(
        "LLM did not return valid JSON",
        preview=(text or "")[:PREVIEW_CHARS],
    )
