"""
Shared JSON Repair Utility

Extracts, repairs, and parses JSON from LLM responses. Small models asked for
JSON often wrap it in prose or code fences, or emit near-JSON.

Used by: KeywordExtractor
"""

import json
import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)


def extract_json_from_response(text: str) -> Optional[str]:
    """
    Extract JSON string from an LLM response.

    Tries (in order):
    1. ```json fenced code blocks
    2. Raw JSON object (outermost { ... })
    """
    if not text:
        return None

    json_match = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL)
    if json_match and json_match.group(1).lstrip().startswith("{"):
        return json_match.group(1).strip()

    json_match = re.search(r"\{[\s\S]*\}", text)
    if json_match:
        return json_match.group(0).strip()

    return None


def repair_json(json_str: str) -> str:
    """
    Attempt to repair malformed JSON from LLM output.

    Handles:
    1. Trailing content after the outermost object
    2. Python literals (None, True, False)
    3. Single-quoted keys and strings
    4. Trailing commas before } or ]
    5. Unclosed braces/brackets from truncation
    """
    original = json_str

    # Step 1: Truncate at last complete brace
    brace_count = 0
    last_valid_pos = 0
    for i, c in enumerate(json_str):
        if c == "{":
            brace_count += 1
        elif c == "}":
            brace_count -= 1
            if brace_count == 0:
                last_valid_pos = i + 1
    if 0 < last_valid_pos < len(json_str):
        json_str = json_str[:last_valid_pos]

    # Step 2: Python-style values
    json_str = re.sub(r"\bNone\b", "null", json_str)
    json_str = re.sub(r"\bTrue\b", "true", json_str)
    json_str = re.sub(r"\bFalse\b", "false", json_str)

    # Step 3: Single quotes that look like JSON delimiters
    json_str = re.sub(r"(?<=[{,:\[])\s*'([^']*?)'\s*(?=[},:\]])", r'"\1"', json_str)
    json_str = re.sub(r"'(\w+)':", r'"\1":', json_str)

    # Step 4: Trailing commas
    json_str = re.sub(r",\s*}", "}", json_str)
    json_str = re.sub(r",\s*]", "]", json_str)

    # Step 5: Close unclosed braces/brackets
    open_braces = json_str.count("{") - json_str.count("}")
    open_brackets = json_str.count("[") - json_str.count("]")
    if open_braces > 0 or open_brackets > 0:
        json_str += "]" * open_brackets + "}" * open_braces
        logger.debug(f"Closed {open_braces} braces and {open_brackets} brackets")

    if json_str != original:
        logger.debug("Applied JSON repairs")

    return json_str


def parse_json_response(text: str) -> Optional[Any]:
    """
    Full pipeline: extract JSON from LLM response, repair, and parse.

    Returns:
        Parsed Python object, or None if extraction/parsing fails
    """
    json_str = extract_json_from_response(text)
    if json_str is None:
        logger.warning("No JSON found in response")
        return None

    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        pass

    repaired = repair_json(json_str)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed after all repairs: {e}")
        return None
