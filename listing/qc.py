"""Automatic quality check for generated listings.

Pure scoring, no I/O. Confidence starts at 100 and each failed check deducts
a fixed amount; the status then decides whether the listing can go out
unattended.
"""

from dataclasses import dataclass, field

from config import QC_PRICE_MAX, QC_PRICE_MIN, QC_READY_CONFIDENCE, QC_REVIEW_CONFIDENCE
from listing.sanitize import sanitize_value

REQUIRED_FIELDS = ("title", "description_style_a", "garment_type", "condition")
SIZE_FIELDS = ("size_label", "size_recommended")
CONDITIONS_NEEDING_FLAWS = ("Fair", "Good")

REQUIRED_FIELD_PENALTY = 15
MISSING_SIZE_PENALTY = 20
MISSING_MEASUREMENTS_PENALTY = 10
ERA_PENALTY = 5
BRAND_PENALTY = 10
UNDESCRIBED_DAMAGE_PENALTY = 10
MISSING_PRICE_PENALTY = 20
PRICE_BAND_PENALTY = 5


@dataclass
class QCResult:
    status: str  # ready | needs_review | blocked
    confidence: int
    flags: dict[str, bool] = field(default_factory=dict)


def _is_set(product: dict, name: str) -> bool:
    return sanitize_value(product.get(name)) is not None


def _price(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def decide_status(confidence: int, flags: dict, missing_required: bool) -> str:
    if missing_required:
        return "blocked"
    if confidence >= QC_READY_CONFIDENCE and not flags:
        return "ready"
    if confidence >= QC_REVIEW_CONFIDENCE:
        return "needs_review"
    return "blocked"


def score_product(product: dict) -> QCResult:
    """Score a merged product record.

    Any missing required field blocks the listing no matter how high the
    confidence is otherwise.
    """
    flags: dict[str, bool] = {}
    confidence = 100

    missing = [name for name in REQUIRED_FIELDS if not _is_set(product, name)]
    confidence -= REQUIRED_FIELD_PENALTY * len(missing)

    if not any(_is_set(product, name) for name in SIZE_FIELDS):
        flags["missing_size"] = True
        confidence -= MISSING_SIZE_PENALTY

    if not _is_set(product, "pit_to_pit"):
        flags["missing_measurements"] = True
        confidence -= MISSING_MEASUREMENTS_PENALTY

    if not _is_set(product, "era"):
        flags["era_uncertain"] = True
        confidence -= ERA_PENALTY

    if not _is_set(product, "brand"):
        flags["brand_unclear"] = True
        confidence -= BRAND_PENALTY

    condition = sanitize_value(product.get("condition"))
    if condition in CONDITIONS_NEEDING_FLAWS and not _is_set(product, "flaws"):
        flags["damage_present_not_described"] = True
        confidence -= UNDESCRIBED_DAMAGE_PENALTY

    price = _price(sanitize_value(product.get("price")))
    if price <= 0:
        flags["missing_price"] = True
        confidence -= MISSING_PRICE_PENALTY
    elif price < QC_PRICE_MIN or price > QC_PRICE_MAX:
        flags["price_out_of_band"] = True
        confidence -= PRICE_BAND_PENALTY

    confidence = max(0, min(100, confidence))
    status = decide_status(confidence, flags, bool(missing))
    if missing:
        flags["missing_required_fields"] = True

    return QCResult(status=status, confidence=confidence, flags=flags)
