"""Best-effort recovery of damaged JSON emitted by the model.

The model is asked for a bare JSON object but regularly returns it wrapped in
a markdown fence, cut off mid-string when it hits the token limit, or with raw
newlines inside string values. Each step below only runs if the previous one
did not produce a parseable object.
"""

import json
import logging
import re

from listing.errors import UnparseableResponse

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?(.*)", re.DOTALL)
# a key cut off before (or right after) its colon, with no value yet
_DANGLING_KEY_RE = re.compile(r'(?:,|(?<=\{))\s*"(?:[^"\\]|\\.)*"\s*:?\s*$')


def _try_parse(text: str) -> dict | None:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def strip_fence(text: str) -> str:
    """Return the body of a markdown code fence.

    A truncated fence with no closing marker yields everything after the
    opening one.
    """
    m = _FENCE_RE.search(text)
    if m:
        return m.group(1).strip()
    m = _OPEN_FENCE_RE.search(text)
    if m:
        return m.group(1).strip()
    return text


def escape_newlines_in_strings(text: str) -> str:
    """Turn raw CR/LF characters inside string literals into escape sequences."""
    out = []
    in_string = False
    escape_next = False
    for ch in text:
        if escape_next:
            out.append(ch)
            escape_next = False
            continue
        if ch == "\\":
            out.append(ch)
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            out.append(ch)
            continue
        if in_string and ch == "\n":
            out.append("\\n")
        elif in_string and ch == "\r":
            out.append("\\r")
        else:
            out.append(ch)
    return "".join(out)


def close_truncated(text: str) -> str:
    """Close an unterminated string and any unmatched braces."""
    depth = 0
    in_string = False
    escape_next = False
    for ch in text:
        if escape_next:
            escape_next = False
            continue
        if ch == "\\":
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1

    repaired = text
    if in_string:
        if escape_next:
            # a lone trailing backslash would escape our closing quote
            repaired = repaired[:-1]
        repaired += '"'
    repaired = repaired.rstrip()
    if repaired.endswith(","):
        repaired = repaired[:-1]
    repaired = _DANGLING_KEY_RE.sub("", repaired)
    return repaired + "}" * max(depth, 0)


def repair_json(raw: str) -> dict:
    """Parse model output into a dict, repairing it where possible.

    Raises UnparseableResponse when nothing can be recovered.
    """
    if not raw or not raw.strip():
        raise UnparseableResponse("Empty model response")

    text = raw.strip()

    # Step 1: direct parse
    data = _try_parse(text)
    if data is not None:
        return data

    # Step 2: markdown fence, possibly missing its closing marker
    if "```" in text:
        text = strip_fence(text)
        data = _try_parse(text)
        if data is not None:
            return data

    # Step 3: slice from the first brace
    start = text.find("{")
    if start == -1:
        raise UnparseableResponse(f"No JSON object in response: {raw[:120]!r}")
    body = text[start:]
    candidates = [body]
    end = body.rfind("}")
    if end != -1 and end < len(body) - 1:
        candidates.insert(0, body[: end + 1])

    for candidate in candidates:
        # Step 4: raw newlines inside strings
        fixed = escape_newlines_in_strings(candidate)
        data = _try_parse(fixed)
        if data is not None:
            return data

        # Step 5: truncation
        if not fixed.rstrip().endswith("}") or fixed.count("{") != fixed.count("}"):
            closed = close_truncated(fixed)
            data = _try_parse(closed)
            if data is not None:
                logger.debug("Recovered truncated model JSON")
                return data

    raise UnparseableResponse(f"Could not repair model response: {raw[:120]!r}")
