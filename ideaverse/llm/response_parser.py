"""
Structured response extraction for language-model output.

Model output is free text that usually, but not always, contains one JSON
document. It may be wrapped in markdown fences, surrounded by prose, carry
trailing commas, have scalar values wrapped in bold markers, or be cut off
mid-stream when the token budget runs out.

parse_structured_response() runs a cascade of extraction strategies and
returns the first candidate that decodes to a JSON object or array:

    1. ```json fenced block
    2. any ``` fenced block
    3. slice from the first "{" to the last "}"
    4. whole trimmed text
    5. aggressive strip of every "*" and "`", then 1-4 again
    6. truncation repair (close open string and brackets), then 1-4 again

Every candidate is cleaned (trailing commas, bold values) before decoding.
When everything fails, ResponseFormatError is raised with a fixed
user-facing message; the raw text only goes to the log.
"""

import json
import re
from typing import Any, Callable, List, Optional, Union

import structlog

from ideaverse.core.exceptions import ResponseFormatError

log = structlog.get_logger(__name__)

StructuredResult = Union[dict, list]

# Raw text is logged up to this many characters
LOG_PREVIEW_CHARS = 500

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE = re.compile(r"```\s*([\s\S]*?)\s*```")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_BOLD_QUOTED_VALUE = re.compile(r':\s*\*\*"([^"]*)"\*\*')
_BOLD_BARE_VALUE = re.compile(r':\s*\*\*([^,}\]"]+)\*\*')

_CLOSERS = {"{": "}", "[": "]"}


def clean_json_text(text: str) -> str:
    """Fix the malformations models most often produce in otherwise valid JSON.

    - trailing commas before a closing brace or bracket are removed
    - `"key": **"value"**` and `"key": **value**` become `"key": "value"`
    """
    cleaned = _TRAILING_COMMA.sub(r"\1", text)
    cleaned = _BOLD_QUOTED_VALUE.sub(r':"\1"', cleaned)
    cleaned = _BOLD_BARE_VALUE.sub(r':"\1"', cleaned)
    return cleaned


def _try_decode(candidate: str) -> Optional[StructuredResult]:
    try:
        result = json.loads(clean_json_text(candidate))
    except (ValueError, RecursionError):
        return None
    # A bare scalar is not a structured response
    if isinstance(result, (dict, list)):
        return result
    return None


def _extract(text: str) -> Optional[StructuredResult]:
    """Strategies 1-4 against one text variant."""
    match = _JSON_FENCE.search(text)
    if match:
        result = _try_decode(match.group(1).strip())
        if result is not None:
            return result

    match = _ANY_FENCE.search(text)
    if match:
        result = _try_decode(match.group(1).strip())
        if result is not None:
            return result

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        result = _try_decode(text[first_brace : last_brace + 1])
        if result is not None:
            return result

    return _try_decode(text.strip())


def strip_markup(text: str) -> str:
    """Remove every emphasis asterisk and backtick (fences included)."""
    return text.replace("*", "").replace("`", "")


def repair_truncated(text: str) -> Optional[str]:
    """Close a JSON document that was cut off mid-stream.

    Scans from the first "{" or "[" with a quote/escape-aware state machine,
    keeping a stack of expected closers. Characters inside string literals
    never affect the stack. At end of input an open string is closed, a
    dangling separator or object key is completed, and the pending closers
    are appended innermost first.

    Args:
        text: Raw (possibly truncated) model output

    Returns:
        Repaired text starting at the first opener, or None if the text has
        no opener at all
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    body = text[min(starts) :]

    stack: List[str] = []
    in_string = False
    escaped = False
    # Last structural character outside strings, and its value when the
    # most recent string opened (tells keys from values)
    last_sig = ""
    before_string = ""

    for ch in body:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
            before_string = last_sig
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]"):
            if stack and stack[-1] == ch:
                stack.pop()
        if not ch.isspace():
            last_sig = ch

    in_object = bool(stack) and stack[-1] == "}"
    repaired = body
    if in_string:
        if escaped:
            # Cut right after a backslash; the escape has nothing to consume
            repaired = repaired[:-1]
        repaired += '"'
        if in_object and before_string in ("{", ","):
            repaired += ": null"
    else:
        repaired = repaired.rstrip()
        if repaired.endswith(","):
            repaired = repaired[:-1]
        elif repaired.endswith(":"):
            repaired += "null"
        elif repaired.endswith('"') and in_object and before_string in ("{", ","):
            repaired += ": null"

    return repaired + "".join(reversed(stack))


def parse_structured_response(raw_text: str) -> StructuredResult:
    """
    Extract a JSON object or array from raw model output.

    Args:
        raw_text: Complete streamed text returned by the model

    Returns:
        Decoded dict or list (first successful strategy wins)

    Raises:
        ResponseFormatError: If every strategy fails
    """
    text = raw_text or ""

    result = _extract(text)
    if result is not None:
        return result

    log.warning(
        "structured_parse_fallback",
        strategy="aggressive_strip",
        raw_length=len(text),
        raw_preview=text[:LOG_PREVIEW_CHARS],
    )
    result = _extract(strip_markup(text))
    if result is not None:
        return result

    repaired = repair_truncated(text)
    if repaired is not None:
        log.warning(
            "structured_parse_fallback",
            strategy="truncation_repair",
            raw_length=len(text),
            repaired_length=len(repaired),
        )
        result = _extract(repaired)
        if result is not None:
            return result

    log.error(
        "structured_parse_failed",
        raw_length=len(text),
        raw_preview=text[:LOG_PREVIEW_CHARS],
    )
    raise ResponseFormatError(raw_text=text)


class StructuredResponseParser:
    """Injectable wrapper around parse_structured_response().

    The reasoning service depends on anything with a parse(text) method, so
    tests can substitute a stub without patching module functions.
    """

    def __init__(self, parse_fn: Optional[Callable[[str], StructuredResult]] = None):
        self._parse_fn = parse_fn or parse_structured_response

    def parse(self, raw_text: str) -> StructuredResult:
        return self._parse_fn(raw_text)


def normalize_item_list(value: Any, list_key: str, item_key: str) -> list:
    """Coerce a decoded reply into the list of items a stage expects.

    A bare list is returned as-is. A dict whose `list_key` entry is a list
    yields that list. A lone item dict (one carrying `item_key`) becomes a
    one-element list, which is what the brace slice makes of `[{...}]`.
    Anything else yields an empty list.
    """
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        items = value.get(list_key)
        if isinstance(items, list):
            return items
        if item_key in value:
            return [value]
    return []


def normalize_question_list(value: Any) -> list:
    """Accept every shape the interview step may come back in."""
    return normalize_item_list(value, "questions", "question")
