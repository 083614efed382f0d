"""Response parsing shared by the concrete providers."""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def strip_code_fences(raw_text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    content = raw_text.strip()

    # Strip leading markdown fence (```json or ```)
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]

    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]

    return content.strip()


def parse_json_content(raw_text: str) -> Any:
    """Parse JSON from model output, handling markdown code fences.

    Models sometimes wrap JSON in ```json ... ``` fences despite being
    told not to. Non-JSON output is returned unchanged as text, since
    dimensions are free to produce prose.
    """
    content = strip_code_fences(raw_text)
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        logger.debug(f"Response is not JSON ({len(content)} chars), keeping raw text")
        return raw_text.strip()
