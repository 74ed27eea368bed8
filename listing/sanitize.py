"""Placeholder removal and normalization for model-produced fields."""

import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

_PLACEHOLDERS = {
    "null",
    "undefined",
    "n/a",
    "not available",
    "not specified",
    "not visible",
    "unknown",
}

_PLACEHOLDER_WORD_RE = re.compile(r"\b(?:null|undefined)\b", re.IGNORECASE)
_INLINE_SPACE_RE = re.compile(r"[ \t]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")

# Word form -> canonical abbreviation. Keys are lowercase with single spaces.
_SIZE_SYNONYMS: dict[str, str] = {
    "extra small": "XS",
    "x small": "XS",
    "x-small": "XS",
    "xsmall": "XS",
    "xs": "XS",
    "small": "S",
    "sm": "S",
    "s": "S",
    "medium": "M",
    "med": "M",
    "m": "M",
    "large": "L",
    "lg": "L",
    "l": "L",
    "extra large": "XL",
    "x large": "XL",
    "x-large": "XL",
    "xlarge": "XL",
    "xl": "XL",
    "extra extra large": "XXL",
    "xx large": "XXL",
    "xx-large": "XXL",
    "xxlarge": "XXL",
    "xxl": "XXL",
    "2xl": "XXL",
    "2x": "XXL",
    "extra extra extra large": "XXXL",
    "xxx large": "XXXL",
    "xxx-large": "XXXL",
    "xxxlarge": "XXXL",
    "xxxl": "XXXL",
    "3xl": "XXXL",
    "3x": "XXXL",
}

# Attribute lines of the trailing description block
STRUCTURED_LABELS = {
    "brand",
    "label size",
    "pit to pit",
    "recommended size",
    "material",
    "materials",
    "era",
    "condition",
    "made in",
    "colour",
    "color",
    "pattern",
    "style",
    "flaws",
}
_LABEL_LINE_RE = re.compile(r"^(\s*)([A-Za-z][A-Za-z ]{0,30}?)\s*:\s*(.*)$")

ETSY_MAX_TAGS = 13
ETSY_MAX_TAG_LENGTH = 20


def is_placeholder(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in _PLACEHOLDERS or not value.strip()
    return False


def sanitize_value(value: Any) -> Any:
    """Return None for placeholder-like values, otherwise the trimmed value."""
    if is_placeholder(value):
        return None
    if isinstance(value, str):
        return value.strip()
    return value


def sanitize_text(text: Optional[str]) -> Optional[str]:
    """Drop stray null/undefined words and collapse inline whitespace."""
    if text is None:
        return None
    cleaned = _PLACEHOLDER_WORD_RE.sub("", text)
    lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in cleaned.split("\n")]
    return "\n".join(lines).strip()


def normalize_size(value: Optional[str]) -> Optional[str]:
    """Map size words to XS..XXXL. Unrecognized sizes pass through."""
    value = sanitize_value(value)
    if value is None:
        return None
    value = str(value)
    key = re.sub(r"\s+", " ", value.lower()).strip()
    if key.startswith("size "):
        key = key[5:].strip()
    return _SIZE_SYNONYMS.get(key, value)


def sanitize_description(text: Optional[str]) -> Optional[str]:
    """Clean a generated description and its trailing attribute block.

    Block lines such as ``Era: null`` or ``Brand:`` are removed entirely so the
    copy never shows an empty attribute.
    """
    text = sanitize_value(text)
    if text is None:
        return None

    out_lines = []
    for line in str(text).replace("\r\n", "\n").split("\n"):
        m = _LABEL_LINE_RE.match(line)
        if m:
            indent, label, value = m.groups()
            clean_value = sanitize_value(sanitize_text(value))
            if clean_value is None:
                if label.strip().lower() in STRUCTURED_LABELS:
                    continue
                out_lines.append(f"{indent}{label}:")
                continue
            out_lines.append(f"{indent}{label}: {clean_value}")
            continue
        out_lines.append(line)

    result = sanitize_text("\n".join(out_lines))
    result = _BLANK_LINES_RE.sub("\n\n", result or "")
    return result or None


def sanitize_tags(
    value: Any, limit: Optional[int] = None, max_length: Optional[int] = None
) -> Optional[str]:
    """Normalize a comma-separated tag string (or list) to ``"a, b, c"``."""
    if isinstance(value, (list, tuple)):
        raw_tags = [str(v) for v in value]
    else:
        value = sanitize_value(value)
        if value is None:
            return None
        raw_tags = str(value).split(",")

    tags: list[str] = []
    seen: set[str] = set()
    for raw in raw_tags:
        tag = sanitize_value(sanitize_text(raw.strip().strip("#")))
        if tag is None:
            continue
        if max_length and len(tag) > max_length:
            logger.debug(f"Dropping over-long tag: {tag}")
            continue
        if tag.lower() in seen:
            continue
        seen.add(tag.lower())
        tags.append(tag)
        if limit and len(tags) >= limit:
            break
    return ", ".join(tags) if tags else None


def sanitize_attributes(fields: dict) -> dict:
    """Apply the right sanitizer to every schema field of a bundle."""
    cleaned = {}
    for name, value in fields.items():
        if name in ("description_style_a", "description_style_b"):
            cleaned[name] = sanitize_description(value)
        elif name == "title":
            cleaned[name] = sanitize_value(sanitize_text(sanitize_value(value)))
        elif name == "etsy_tags":
            cleaned[name] = sanitize_tags(value, ETSY_MAX_TAGS, ETSY_MAX_TAG_LENGTH)
        elif name in ("shopify_tags", "collections_tags"):
            cleaned[name] = sanitize_tags(value)
        elif name in ("size_label", "size_recommended"):
            cleaned[name] = normalize_size(value)
        elif isinstance(value, str):
            cleaned[name] = sanitize_value(sanitize_text(value))
        else:
            cleaned[name] = sanitize_value(value)
    return cleaned
