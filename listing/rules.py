"""Rule-based extraction over raw OCR text and free-text attributes."""

import re
from typing import Optional

# --- Pit to pit ---
_PTP_PREFIXED_RE = re.compile(
    r"(?:pit\s*(?:to|2|-)\s*pit|p2p|ptp)\s*[:=\-]?\s*(\d{1,2}(?:[.,]\d{1,2})?)",
    re.IGNORECASE,
)
_PTP_UNIT_RE = re.compile(
    r"(\d{1,2}(?:[.,]\d{1,2})?)\s*(?:inches|inch|ins|in\b|\"|”|'')",
    re.IGNORECASE,
)
_BARE_NUMBER_RE = re.compile(r"(?<![\d.])(\d{1,2}(?:\.\d{1,2})?)(?![\d.])")

# --- Label size ---
_SIZE_TOKEN = r"(XXXL|XXL|XXS|XL|XS|2XL|3XL|S|M|L|\d{1,2})"
_SIZE_PREFIXED_RE = re.compile(r"\bsize\s*[:\-]?\s*" + _SIZE_TOKEN + r"\b", re.IGNORECASE)
# bare tokens are case sensitive and must stand alone, so "Levi's" and "U.S.A."
# do not read as S
_SIZE_BARE_RE = re.compile(r"(?<!['’.\w])" + _SIZE_TOKEN + r"(?!['’.\w])(?!\s*%)")

# --- Neckline / style detail (order matters: more specific first) ---
_NECKLINES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"quarter[\s\-]*zip|1/4\s*zip", re.IGNORECASE), "Quarter Zip"),
    (re.compile(r"half[\s\-]*zip|1/2\s*zip", re.IGNORECASE), "Half Zip"),
    (re.compile(r"mock[\s\-]*neck", re.IGNORECASE), "Mock Neck"),
    (re.compile(r"turtle[\s\-]*neck|roll[\s\-]*neck", re.IGNORECASE), "Turtleneck"),
    (re.compile(r"\bv[\s\-]*neck", re.IGNORECASE), "V Neck"),
    (re.compile(r"crew[\s\-]*neck", re.IGNORECASE), "Crewneck"),
    (re.compile(r"\bcollar(?:ed)?", re.IGNORECASE), "Collared"),
    (re.compile(r"\bhood(?:ed|ie)?", re.IGNORECASE), "Hooded"),
    (re.compile(r"\bpolo\b", re.IGNORECASE), "Polo"),
]


def _format_number(raw: str) -> str:
    number = raw.replace(",", ".")
    if "." in number:
        number = number.rstrip("0").rstrip(".")
    return number


def extract_pit_to_pit(text: Optional[str]) -> Optional[str]:
    """Find a pit-to-pit measurement in raw sign text, as ``"<n> inches"``."""
    if not text:
        return None
    for pattern in (_PTP_PREFIXED_RE, _PTP_UNIT_RE, _BARE_NUMBER_RE):
        m = pattern.search(text)
        if m:
            return f"{_format_number(m.group(1))} inches"
    return None


def extract_size_label(text: Optional[str]) -> Optional[str]:
    """Find a size token in raw label text, uppercased."""
    if not text:
        return None
    m = _SIZE_PREFIXED_RE.search(text) or _SIZE_BARE_RE.search(text)
    if m:
        return m.group(1).upper()
    return None


def extract_neckline(*texts: Optional[str]) -> Optional[str]:
    """Return the first neckline keyword found across the given texts."""
    haystack = " ".join(t for t in texts if t)
    if not haystack:
        return None
    for pattern, label in _NECKLINES:
        if pattern.search(haystack):
            return label
    return None
