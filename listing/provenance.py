"""Which source wins for each field.

Sources, from most to least trusted for garment attributes:

- ``ocr``: values the model read off the label / measurement sign
- ``caller``: values the user already entered on the product
- ``model``: values the model inferred from the photos
- ``regex``: values recovered by rules from the raw OCR text

Generated copy (title, descriptions, tags) prefers the model's fresh output
and falls back to what the caller already had.
"""

from typing import Any, Optional

from listing.models import ATTRIBUTE_FIELDS, OUTPUT_FIELDS
from listing.sanitize import is_placeholder

_ATTRIBUTE_ORDER = ("ocr", "caller", "model", "regex")
_OUTPUT_ORDER = ("model", "caller")

FIELD_PRIORITY: dict[str, tuple[str, ...]] = {
    **{name: _ATTRIBUTE_ORDER for name in ATTRIBUTE_FIELDS},
    **{name: _OUTPUT_ORDER for name in OUTPUT_FIELDS},
}


def resolve_field(name: str, sources: dict[str, Optional[dict]]) -> tuple[Any, Optional[str]]:
    """Return ``(value, source)`` for the first source holding a real value."""
    for source in FIELD_PRIORITY[name]:
        values = sources.get(source) or {}
        value = values.get(name)
        if not is_placeholder(value):
            return value, source
    return None, None


def resolve_all(sources: dict[str, Optional[dict]]) -> dict:
    """Resolve every schema field. Unresolved fields map to None."""
    return {name: resolve_field(name, sources)[0] for name in FIELD_PRIORITY}


def merge_for_storage(existing: dict, generated: dict) -> dict:
    """Merge a generation result into a stored product.

    Attributes already set on the product are never replaced by inferred
    ones; fresh copy replaces the old copy.
    """
    return resolve_all({"caller": existing, "model": generated})
