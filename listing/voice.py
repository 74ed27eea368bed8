"""Speech transcript -> partial product fields.

Only fields the speaker actually mentioned come back. A missing key means
"leave this field alone", which is different from a field being unset.
"""

import logging
import re
from typing import Optional

from config import VOICE_MAX_CHARS, VOICE_MAX_TOKENS, VOICE_MIN_CHARS, VOICE_MODEL
from listing.errors import InvalidRequest, ModelError, QuotaExhausted, RateLimited, UnparseableResponse
from listing.llm import ModelClient, get_client, text_part
from listing.prompts import VOICE_SYSTEM_PROMPT, build_voice_prompt
from listing.repair import repair_json
from listing.rules import extract_pit_to_pit
from listing.sanitize import normalize_size, sanitize_text, sanitize_value

logger = logging.getLogger(__name__)

VOICE_FIELDS = (
    "price",
    "size_label",
    "size_recommended",
    "pit_to_pit",
    "condition",
    "flaws",
    "department",
    "era",
    "brand",
    "material",
    "made_in",
    "colour_main",
    "colour_secondary",
    "pattern",
    "style",
    "fit",
    "garment_type",
    "notes",
    "selected_style",
    "description_note",
)

# Ordered so "very good" is tried before "good"
_CONDITIONS = [
    ("excellent", "Excellent"),
    ("very good", "Very good"),
    ("good", "Good"),
    ("fair", "Fair"),
]
_DEPARTMENTS = {
    "women": "Women",
    "womens": "Women",
    "woman": "Women",
    "ladies": "Women",
    "men": "Men",
    "mens": "Men",
    "man": "Men",
    "unisex": "Unisex",
    "kids": "Kids",
    "kid": "Kids",
    "children": "Kids",
    "childrens": "Kids",
}
_ERAS = {
    "80s": "80s",
    "1980s": "80s",
    "eighties": "80s",
    "90s": "90s",
    "1990s": "90s",
    "nineties": "90s",
    "y2k": "Y2K",
    "2000s": "Y2K",
}
_PAREN_RE = re.compile(r"\(([^)]*)\)")
_PRICE_RE = re.compile(r"\d+(?:\.\d+)?")


def snap_condition(value: Optional[str], existing: Optional[str] = None) -> Optional[str]:
    """Snap a spoken condition onto Excellent / Very good / Good / Fair.

    Parenthetical flaw notes are kept. A bare ``"(flaw)"`` is appended to the
    existing condition instead of replacing it.
    """
    value = sanitize_value(value)
    if value is None:
        return None
    value = str(value).strip()

    if value.startswith("("):
        notes = value
        base = sanitize_value(existing)
        if base is None:
            return None
        if notes in base:
            return base
        return f"{base} {notes}"

    head = _PAREN_RE.sub("", value).strip().lower()
    notes = " ".join(f"({n.strip()})" for n in _PAREN_RE.findall(value) if n.strip())
    for prefix, canonical in _CONDITIONS:
        if head.startswith(prefix):
            return f"{canonical} {notes}".strip()
    logger.debug(f"Dropping unrecognised spoken condition: {value!r}")
    return None


def _snap_department(value) -> Optional[str]:
    key = str(value).lower().replace("'", "").replace("’", "").strip()
    return _DEPARTMENTS.get(key)


def _snap_era(value) -> Optional[str]:
    key = str(value).lower().replace("'", "").replace("’", "").strip()
    return _ERAS.get(key)


def _snap_price(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None
    m = _PRICE_RE.search(str(value).replace(",", ""))
    return float(m.group(0)) if m else None


def _snap_style(value) -> Optional[str]:
    key = str(value).strip().lower()
    key = key.replace("style", "").strip()
    return key if key in ("a", "b") else None


def _snap_pit_to_pit(value) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return extract_pit_to_pit(str(value))
    return extract_pit_to_pit(str(value)) or sanitize_value(str(value))


def _clean_parsed(data: dict, existing_condition: Optional[str]) -> dict:
    cleaned: dict = {}
    for name in VOICE_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if isinstance(value, str):
            value = sanitize_value(sanitize_text(value))
        else:
            value = sanitize_value(value)
        if value is None or isinstance(value, (list, dict)):
            continue

        if name == "condition":
            value = snap_condition(value, existing_condition)
        elif name == "department":
            value = _snap_department(value)
        elif name == "era":
            value = _snap_era(value)
        elif name == "price":
            value = _snap_price(value)
        elif name in ("size_label", "size_recommended"):
            value = normalize_size(str(value))
        elif name == "pit_to_pit":
            value = _snap_pit_to_pit(value)
        elif name == "selected_style":
            value = _snap_style(value)
        else:
            value = str(value)

        if value is None:
            logger.debug(f"Voice value for {name} dropped: {data[name]!r}")
            continue
        cleaned[name] = value
    return cleaned


def validate_transcript(transcript) -> str:
    if not isinstance(transcript, str):
        raise InvalidRequest("No transcript provided")
    transcript = transcript.strip()
    if len(transcript) < VOICE_MIN_CHARS:
        raise InvalidRequest(f"Transcript must be at least {VOICE_MIN_CHARS} characters")
    if len(transcript) > VOICE_MAX_CHARS:
        raise InvalidRequest(f"Transcript exceeds {VOICE_MAX_CHARS} characters")
    return transcript


def parse_voice(
    transcript: str,
    existing_condition: Optional[str] = None,
    client: Optional[ModelClient] = None,
) -> dict:
    """Map a speech transcript onto listing fields.

    Raises InvalidRequest for out-of-bounds input and RateLimited /
    QuotaExhausted for provider limits. Unusable model output yields ``{}``.
    """
    transcript = validate_transcript(transcript)
    existing_condition = sanitize_value(existing_condition)

    client = client or get_client()
    prompt = build_voice_prompt(transcript, existing_condition)
    try:
        raw = client.complete(
            VOICE_SYSTEM_PROMPT,
            [text_part(prompt)],
            json_mode=True,
            max_tokens=VOICE_MAX_TOKENS,
            model=VOICE_MODEL,
        )
        data = repair_json(raw)
    except (RateLimited, QuotaExhausted):
        raise
    except (ModelError, UnparseableResponse) as e:
        logger.warning(f"Voice parsing failed, returning no fields: {e}")
        return {}

    parsed = _clean_parsed(data, existing_condition)
    logger.info(f"Voice input parsed: {', '.join(sorted(parsed)) or 'no fields'}")
    return parsed


def apply_voice_fields(product: dict, parsed: dict) -> dict:
    """Turn a voice parse into a product update.

    ``description_note`` is appended to the active description style rather
    than replacing it; the active style is the one just selected, else the
    product's current selection, else style A.
    """
    updates = {k: v for k, v in parsed.items() if k not in ("selected_style", "description_note", "notes")}

    style = parsed.get("selected_style") or product.get("selected_style") or "a"
    if parsed.get("selected_style"):
        updates["selected_style"] = parsed["selected_style"]

    note = parsed.get("description_note")
    if note:
        field = f"description_style_{style}"
        current = sanitize_value(product.get(field))
        updates[field] = f"{current}\n\n{note}" if current else note

    if parsed.get("notes"):
        current = sanitize_value(product.get("raw_input_text"))
        updates["raw_input_text"] = f"{current}\n{parsed['notes']}" if current else parsed["notes"]

    return updates
