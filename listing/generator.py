"""Listing generation: photos + known fields -> complete listing bundle."""

import logging
import re
from typing import Optional, Union

from config import (
    CHUNKED_MAIN_CALL_IMAGES,
    LISTING_MAX_TOKENS,
    LISTING_MODEL,
    REGENERATE_CALL_IMAGES,
)
from listing.errors import ModelError, QuotaExhausted, RateLimited, UnparseableResponse
from listing.llm import ModelClient, get_client, image_part, text_part
from listing.models import ALL_FIELDS, OUTPUT_FIELDS, GenerationRequest, GenerationResult
from listing.ocr import (
    OcrResult,
    extract_ocr,
    is_chunked,
    ocr_from_response,
    regex_fallback,
    select_priority_images,
)
from listing.prompts import build_system_prompt, build_user_prompt
from listing.provenance import resolve_all
from listing.repair import repair_json
from listing.sanitize import sanitize_attributes, sanitize_value
from listing.title import compose_title

logger = logging.getLogger(__name__)

# Output fields the model is asked for under each regenerate mode
_REQUESTED_OUTPUTS = {
    "title": ("title",),
    "style_a": ("description_style_a",),
    "style_b": ("description_style_b",),
}

_PRICE_RE = re.compile(r"\d+(?:\.\d+)?")


def _coerce_price(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        m = _PRICE_RE.search(str(value).replace(",", ""))
        if not m:
            return None
        number = float(m.group(0))
    return number if number >= 0 else None


def _scalar(value):
    """Model values we can store: strings and numbers. Lists become CSV."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value if isinstance(v, (str, int, float))]
        return ", ".join(i for i in items if i) or None
    return None


def _caller_fields(request: GenerationRequest) -> dict:
    fields = {k: sanitize_value(v) for k, v in request.product.model_dump().items()}
    return fields


def _model_fields(data: dict, regenerate_only: Optional[str]) -> dict:
    """Schema fields from the model response, limited to what was asked for."""
    allowed = _REQUESTED_OUTPUTS.get(regenerate_only or "")
    fields = {}
    for name in ALL_FIELDS:
        if allowed is not None and name not in allowed:
            continue
        value = sanitize_value(_scalar(data.get(name)))
        if value is not None:
            fields[name] = value
    if "price" in fields:
        fields["price"] = _coerce_price(fields["price"])
    return fields


def _pick_images(request: GenerationRequest, ocr: OcrResult, chunked: bool) -> list[str]:
    images = list(request.image_urls)
    if not request.needs_full_bundle:
        return images[:REGENERATE_CALL_IMAGES]
    if chunked:
        return select_priority_images(images, ocr, CHUNKED_MAIN_CALL_IMAGES)
    return images


def generate_listing(
    request: Union[GenerationRequest, dict],
    client: Optional[ModelClient] = None,
) -> GenerationResult:
    """Generate the full listing bundle for one product.

    Raises InvalidRequest for malformed input, and RateLimited / QuotaExhausted
    so callers can back off. Every other failure returns the stub bundle.
    """
    if not isinstance(request, GenerationRequest):
        request = GenerationRequest.from_payload(request)

    try:
        return _generate(request, client)
    except (RateLimited, QuotaExhausted):
        raise
    except (ModelError, UnparseableResponse) as e:
        logger.warning(f"Listing generation degraded to stub: {e}")
        return GenerationResult.stub()
    except Exception as e:
        logger.exception(f"Unexpected error in listing generation, returning stub: {e}")
        return GenerationResult.stub()


def _generate(request: GenerationRequest, client: Optional[ModelClient]) -> GenerationResult:
    client = client or get_client()
    caller = _caller_fields(request)
    n_images = len(request.image_urls)

    # Step 1: OCR pre-pass for large photo sets
    chunked = request.needs_full_bundle and is_chunked(n_images)
    ocr = OcrResult()
    if chunked:
        ocr = extract_ocr(list(request.image_urls), client)
        logger.info(
            f"OCR pre-pass: {ocr.chunks_called} chunks ({ocr.chunks_failed} failed), "
            f"label={'yes' if ocr.label_text else 'no'} "
            f"measurement={'yes' if ocr.measurement_text else 'no'}"
        )

    # Step 2: main generation call
    call_images = _pick_images(request, ocr, chunked)
    include_ocr = request.needs_full_bundle and bool(call_images) and not chunked
    system_prompt = build_system_prompt(include_ocr)
    user_prompt = build_user_prompt(
        caller,
        request.regenerate_only if not request.needs_full_bundle else None,
        ocr_hint=ocr.to_ocr_text().model_dump() if chunked else None,
    )
    content = [text_part(user_prompt)] + [image_part(url) for url in call_images]

    raw = client.complete(
        system_prompt, content, json_mode=True, max_tokens=LISTING_MAX_TOKENS, model=LISTING_MODEL
    )
    logger.debug(f"Raw model response: {raw[:500]}")

    # Step 3: parse, repairing what we can
    data = repair_json(raw)

    if include_ocr:
        ocr = ocr_from_response(data)
    ocr_text = ocr.to_ocr_text()

    # Step 4: resolve each field across OCR / caller / model / regex
    generated = _model_fields(data, request.regenerate_only)
    fallback = regex_fallback(ocr_text.label_text, ocr_text.measurement_text)
    resolved = resolve_all({
        "ocr": ocr.fields(),
        "caller": caller,
        "model": generated,
        "regex": fallback,
    })

    # Step 5: title
    title_requested = request.regenerate_only in (None, "all", "title")
    resolved["title"] = compose_title(
        resolved["title"],
        caller,
        generated,
        ocr_fields=ocr.fields(),
        fallback_fields=fallback,
        allow_rebuild=title_requested,
    )

    # Step 6: sanitize everything
    cleaned = sanitize_attributes(resolved)
    cleaned["price"] = _coerce_price(cleaned.get("price"))

    missing_outputs = [f for f in OUTPUT_FIELDS if cleaned.get(f) is None]
    if missing_outputs:
        logger.debug(f"Generated bundle is missing: {', '.join(missing_outputs)}")

    return GenerationResult(**cleaned, ocr_text=ocr_text)
