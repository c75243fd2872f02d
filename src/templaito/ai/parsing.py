"""Recovering usable payloads from model replies that ignore format instructions."""

from __future__ import annotations

import json
import re

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_HTML_FENCE_RE = re.compile(r"^```(?:html)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)


def strip_json_fence(text: str) -> str:
    """Return the body of the first ```json fenced block, or the stripped text."""
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1)
    return text.strip()


def parse_json_object(text: str) -> dict:
    """Parse a JSON object, unwrapping a markdown ```json fence first.

    Raises ValueError (json.JSONDecodeError included) if the text is not a
    JSON object.
    """
    parsed = json.loads(strip_json_fence(text))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def unwrap_html(text: str) -> str:
    """Extract an HTML document from a reply that may be JSON-wrapped.

    Handles ``{"html": "..."}``, the same inside a ```json fence, and a bare
    ```html fence. Anything else is returned stripped, as HTML.
    """
    html = text.strip()

    if "```json" in html or html.startswith("{"):
        try:
            parsed = parse_json_object(html)
        except ValueError:
            parsed = None
        if parsed is not None and isinstance(parsed.get("html"), str) and parsed["html"].strip():
            return parsed["html"].strip()

    match = _HTML_FENCE_RE.match(html)
    if match and "<" in match.group(1):
        return match.group(1).strip()

    return html
