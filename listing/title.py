"""Marketplace title construction and repair.

Titles are capped at 80 characters, carry no commas, hyphens, dashes, colons
or semicolons, and end with ``Size <size>`` when a size is known. A usable
model title is repaired in place; a missing or sparse one is rebuilt from the
product fields in a fixed order:

    Brand, Era, Department, Colours, Pattern, Neckline, Material, Fit,
    Garment type, Size
"""

import logging
import re
from typing import Optional

from config import TITLE_MAX_LENGTH, TITLE_MIN_LENGTH
from listing.provenance import resolve_field
from listing.rules import extract_neckline
from listing.sanitize import normalize_size, sanitize_text, sanitize_value

logger = logging.getLogger(__name__)

_BANNED_PUNCT_RE = re.compile(r"[,\-–—:;]")
_DANGLING_SIZE_RE = re.compile(r"\s*\bSize\s*$", re.IGNORECASE)
_SIZE_SUFFIX_RE = re.compile(r"\s*\bSize\s+((?:\S+\s*){1,3})$", re.IGNORECASE)
_MAX_SIZE_LENGTH = 12

_ERAS = {
    "80s": "80s",
    "1980s": "80s",
    "90s": "90s",
    "1990s": "90s",
    "y2k": "Y2K",
    "2000s": "Y2K",
    "vintage": "Vintage",
}
_DEPARTMENTS = {
    "men": "Mens",
    "mens": "Mens",
    "man": "Mens",
    "male": "Mens",
    "women": "Womens",
    "womens": "Womens",
    "woman": "Womens",
    "ladies": "Womens",
    "female": "Womens",
    "unisex": "Unisex",
}
_NOOP_PATTERNS = {"solid", "plain", "basic", "none", "no pattern"}
_TITLE_FITS = {"oversized", "slim", "boxy", "relaxed"}
_MATERIAL_NOISE_RE = re.compile(r"100\s*%|\bblend(?:ed)?\b", re.IGNORECASE)
_MAX_MATERIAL_LENGTH = 15


def strip_banned_punctuation(text: str) -> str:
    """Replace banned title punctuation with spaces and collapse whitespace."""
    return re.sub(r"\s+", " ", _BANNED_PUNCT_RE.sub(" ", text)).strip()


def _clean_part(value) -> Optional[str]:
    value = sanitize_value(value)
    if value is None:
        return None
    value = sanitize_value(sanitize_text(strip_banned_punctuation(str(value))))
    return value


def canonical_title_size(value) -> Optional[str]:
    """Size as it should appear after ``Size`` in a title."""
    size = normalize_size(_clean_part(value))
    if not size:
        return None
    size = strip_banned_punctuation(size)
    if size.lower().startswith("size "):
        size = size[5:].strip()
    if not size or len(size) > _MAX_SIZE_LENGTH:
        return None
    return size


def resolve_title_size(sources: dict) -> Optional[str]:
    """Label size (OCR before caller before model), else recommended size."""
    label, _ = resolve_field("size_label", sources)
    size = canonical_title_size(label)
    if size:
        return size
    recommended, _ = resolve_field("size_recommended", sources)
    return canonical_title_size(recommended)


def split_size_suffix(title: str) -> tuple[str, Optional[str]]:
    """Split ``"... Size L"`` into ``("...", "L")``."""
    m = _SIZE_SUFFIX_RE.search(title)
    if m and len(m.group(1).strip()) <= _MAX_SIZE_LENGTH:
        return title[: m.start()].strip(), m.group(1).strip()
    return title.strip(), None


def fit_to_budget(body: str, size: Optional[str] = None) -> Optional[str]:
    """Drop trailing words until body plus size suffix fits the limit."""
    suffix = f"Size {size}" if size else ""
    budget = TITLE_MAX_LENGTH - (len(suffix) + 1 if suffix else 0)

    words = body.split()
    while words and len(" ".join(words)) > budget:
        words.pop()
    text = " ".join(words)
    if not text and body.strip():
        # a single word longer than the whole budget
        text = body.strip()[:budget].rstrip()

    result = f"{text} {suffix}".strip() if suffix else text
    return result[:TITLE_MAX_LENGTH].rstrip() or None


def _era_part(era) -> Optional[str]:
    era = _clean_part(era)
    return _ERAS.get(era.lower().replace("'", "")) if era else None


def _department_part(department) -> Optional[str]:
    department = _clean_part(department)
    if not department:
        return None
    key = department.lower().replace("'", "").strip()
    return _DEPARTMENTS.get(key)


def _material_part(material) -> Optional[str]:
    material = _clean_part(material)
    if not material:
        return None
    material = re.sub(r"\s+", " ", _MATERIAL_NOISE_RE.sub(" ", material)).strip()
    if material and len(material) <= _MAX_MATERIAL_LENGTH:
        return material
    return None


def _fit_part(fit) -> Optional[str]:
    fit = _clean_part(fit)
    if not fit:
        return None
    first = fit.split()[0].lower()
    return first.capitalize() if first in _TITLE_FITS else None


def build_title(sources: dict, size: Optional[str] = None) -> Optional[str]:
    """Assemble a title from resolved product fields."""

    def field(name: str) -> Optional[str]:
        return _clean_part(resolve_field(name, sources)[0])

    garment_type = field("garment_type")
    pattern = field("pattern")
    colour_main = field("colour_main")
    colour_secondary = field("colour_secondary")

    parts = [
        field("brand"),
        _era_part(resolve_field("era", sources)[0]),
        _department_part(resolve_field("department", sources)[0]),
        colour_main,
    ]
    if colour_secondary and (not colour_main or colour_secondary.lower() != colour_main.lower()):
        parts.append(colour_secondary)
    if pattern and pattern.lower() not in _NOOP_PATTERNS:
        parts.append(pattern)

    neckline = extract_neckline(pattern, field("style"), garment_type)
    if neckline:
        already_said = " ".join(p for p in (garment_type, pattern) if p).lower()
        if not all(word.lower() in already_said for word in neckline.split()):
            parts.append(neckline)

    parts.extend([
        _material_part(resolve_field("material", sources)[0]),
        _fit_part(resolve_field("fit", sources)[0]),
        garment_type,
    ])

    body = " ".join(p for p in parts if p)
    if not body and not size:
        return None
    return fit_to_budget(body, size)


def _clean_model_title(title) -> Optional[str]:
    title = sanitize_value(title)
    if title is None:
        return None
    title = strip_banned_punctuation(str(title))
    title = sanitize_text(title)
    title = _DANGLING_SIZE_RE.sub("", title).strip()
    return title or None


def _with_size(title: str, size: Optional[str]) -> Optional[str]:
    body, title_size = split_size_suffix(title)
    title_size = canonical_title_size(title_size)
    if title_size and size and title_size != size:
        logger.debug(f"Replacing title size {title_size!r} with {size!r}")
    return fit_to_budget(body, size or title_size)


def compose_title(
    model_title: Optional[str],
    product_fields: Optional[dict],
    generated_fields: Optional[dict],
    ocr_fields: Optional[dict] = None,
    fallback_fields: Optional[dict] = None,
    allow_rebuild: bool = True,
) -> Optional[str]:
    """Produce the final title from the model's attempt and known fields.

    With ``allow_rebuild=False`` an existing title is only repaired, never
    replaced by one built from fields.
    """
    sources = {
        "ocr": ocr_fields,
        "caller": product_fields,
        "model": generated_fields,
        "regex": fallback_fields,
    }
    size = resolve_title_size(sources)

    cleaned = _clean_model_title(model_title)
    if cleaned:
        repaired = _with_size(cleaned, size)
        if not allow_rebuild or (repaired and len(repaired) >= TITLE_MIN_LENGTH):
            return repaired
        built = build_title(sources, size)
        candidates = [t for t in (repaired, built) if t]
        if not candidates:
            return None
        # longest wins; the model's title wins ties
        return max(candidates, key=len)

    if not allow_rebuild:
        return None
    return build_title(sources, size)
