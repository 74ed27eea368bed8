"""Pydantic models for the listing attribute schema."""

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    model_validator,
)

from config import MAX_IMAGE_URLS, MAX_NOTES_LENGTH, MAX_PRICE, MAX_STRING_LENGTH, MAX_URL_LENGTH
from listing.errors import InvalidRequest

# Attributes describing the garment itself
ATTRIBUTE_FIELDS = (
    "brand",
    "garment_type",
    "department",
    "era",
    "condition",
    "flaws",
    "colour_main",
    "colour_secondary",
    "pattern",
    "material",
    "made_in",
    "fit",
    "size_label",
    "size_recommended",
    "pit_to_pit",
    "price",
    "style",
)

# Marketplace copy written by the model
OUTPUT_FIELDS = (
    "title",
    "description_style_a",
    "description_style_b",
    "shopify_tags",
    "etsy_tags",
    "collections_tags",
)

ALL_FIELDS = ATTRIBUTE_FIELDS + OUTPUT_FIELDS

RegenerateTarget = Literal["title", "style_a", "style_b", "all"]

# Per-field input caps; anything not listed gets MAX_STRING_LENGTH
_INPUT_LIMITS = {
    "era": 50,
    "department": 50,
    "condition": 100,
    "description_style_a": MAX_NOTES_LENGTH * 2,
    "description_style_b": MAX_NOTES_LENGTH * 2,
    "raw_input_text": MAX_NOTES_LENGTH,
}

_ImageUrl = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=MAX_URL_LENGTH, pattern=r"(?i)^https?://.+"),
]


class ProductAttributes(BaseModel):
    """The canonical garment schema. ``None`` means unset."""

    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    brand: str | None = None
    garment_type: str | None = None
    department: str | None = None  # Mens / Womens / Unisex / Kids
    era: str | None = None  # 80s, 90s, Y2K
    condition: str | None = None
    flaws: str | None = None
    colour_main: str | None = None
    colour_secondary: str | None = None
    pattern: str | None = None
    material: str | None = None
    made_in: str | None = None
    fit: str | None = None
    size_label: str | None = None
    size_recommended: str | None = None
    pit_to_pit: str | None = None
    price: float | None = None
    style: str | None = None

    title: str | None = None
    description_style_a: str | None = None
    description_style_b: str | None = None
    shopify_tags: str | None = None
    etsy_tags: str | None = None
    collections_tags: str | None = None

    def set_fields(self) -> dict:
        """Fields that currently hold a value."""
        return {k: v for k, v in self.model_dump().items() if v not in (None, "")}


class ProductInput(ProductAttributes):
    """What the caller already knows about a product, plus free-text notes."""

    raw_input_text: str | None = None

    @model_validator(mode="after")
    def _check_limits(self):
        for name, value in self.model_dump().items():
            if name == "price":
                if value is not None and not 0 <= value <= MAX_PRICE:
                    raise ValueError(f"price must be between 0 and {MAX_PRICE}")
                continue
            if isinstance(value, str):
                limit = _INPUT_LIMITS.get(name, MAX_STRING_LENGTH)
                if len(value) > limit:
                    raise ValueError(f"{name} exceeds {limit} characters")
        return self


class OcrText(BaseModel):
    """Raw label / measurement-sign transcriptions, kept for diagnostics."""

    label_text: str | None = None
    measurement_text: str | None = None


class GenerationRequest(BaseModel):
    """Immutable input to the listing generator."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product: ProductInput
    image_urls: list[_ImageUrl] = Field(default_factory=list, max_length=MAX_IMAGE_URLS, alias="imageUrls")
    regenerate_only: RegenerateTarget | None = Field(default=None, alias="regenerateOnly")

    @classmethod
    def from_payload(cls, payload: dict) -> "GenerationRequest":
        """Validate a raw request body, raising InvalidRequest on shape errors."""
        if not isinstance(payload, dict):
            raise InvalidRequest("Request body must be an object")
        if not isinstance(payload.get("product"), dict):
            raise InvalidRequest("Product object is required")
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            problems = []
            for err in e.errors():
                loc = ".".join(str(p) for p in err["loc"])
                problems.append(f"{loc}: {err['msg']}" if loc else err["msg"])
            raise InvalidRequest("; ".join(problems)) from e

    @property
    def needs_full_bundle(self) -> bool:
        return self.regenerate_only in (None, "all")


class GenerationResult(ProductAttributes):
    """Every schema field (set or None) plus the OCR diagnostics."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    ocr_text: OcrText = Field(default_factory=OcrText)

    @classmethod
    def stub(cls) -> "GenerationResult":
        """Minimal valid bundle used when generation cannot produce anything."""
        return cls()

    def to_payload(self) -> dict:
        return self.model_dump()
