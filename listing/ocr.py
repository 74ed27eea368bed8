"""Label and measurement-sign transcription over a product's photos.

Up to SINGLE_CALL_MAX_IMAGES photos go out with the main generation call and
the model transcribes labels there. Larger sets get a chunked OCR-only pre-pass
that stops as soon as both a label and a measurement sign have been read.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from config import OCR_CHUNK_SIZE, OCR_MAX_TOKENS, OCR_MODEL, SINGLE_CALL_MAX_IMAGES
from listing.errors import ModelError, QuotaExhausted, UnparseableResponse
from listing.llm import ModelClient, image_part, text_part
from listing.models import OcrText
from listing.prompts import OCR_SYSTEM_PROMPT
from listing.repair import repair_json
from listing.rules import extract_pit_to_pit, extract_size_label
from listing.sanitize import is_placeholder, sanitize_value

logger = logging.getLogger(__name__)


@dataclass
class OcrResult:
    label_text: Optional[str] = None
    measurement_text: Optional[str] = None
    size_label: Optional[str] = None
    pit_to_pit: Optional[str] = None
    label_image: Optional[int] = None  # index into the product's photo list
    measurement_image: Optional[int] = None
    chunks_called: int = 0
    chunks_failed: int = 0

    def found_both(self) -> bool:
        return has_content(self.label_text) and has_content(self.measurement_text)

    def fields(self) -> dict:
        """Structured values read off the label / sign."""
        return {"size_label": self.size_label, "pit_to_pit": self.pit_to_pit}

    def to_ocr_text(self) -> OcrText:
        return OcrText(label_text=self.label_text, measurement_text=self.measurement_text)


def has_content(text: Optional[str]) -> bool:
    return not is_placeholder(text)


def is_chunked(n_images: int) -> bool:
    return n_images > SINGLE_CALL_MAX_IMAGES


def chunk_images(images: list[str], size: int) -> list[list[str]]:
    return [images[i:i + size] for i in range(0, len(images), size)]


def _join(existing: Optional[str], new: Optional[str]) -> Optional[str]:
    if not has_content(new):
        return existing
    new = new.strip()
    return f"{existing} | {new}" if existing else new


def _image_index(value, offset: int, chunk_len: int) -> Optional[int]:
    try:
        idx = int(value)
    except (TypeError, ValueError):
        return None
    if 0 <= idx < chunk_len:
        return offset + idx
    return None


def ocr_from_response(data: dict) -> OcrResult:
    """Read the ``ocr_text`` block of a single-call generation response."""
    block = data.get("ocr_text")
    if not isinstance(block, dict):
        return OcrResult()
    return OcrResult(
        label_text=sanitize_value(block.get("label_text")),
        measurement_text=sanitize_value(block.get("measurement_text")),
        size_label=sanitize_value(block.get("size_label")),
        pit_to_pit=sanitize_value(block.get("pit_to_pit")),
    )


def extract_ocr(
    images: list[str],
    client: ModelClient,
    chunk_size: int = OCR_CHUNK_SIZE,
    model: str = OCR_MODEL,
) -> OcrResult:
    """Chunked OCR pre-pass. A failed chunk is skipped, never fatal."""
    result = OcrResult()
    chunks = chunk_images(images, chunk_size)

    for n, chunk in enumerate(chunks):
        offset = n * chunk_size
        content = [
            text_part(
                f"Photos {offset + 1} to {offset + len(chunk)} of {len(images)}. "
                "Transcribe any garment label or measurement sign."
            )
        ]
        content.extend(image_part(url) for url in chunk)

        result.chunks_called += 1
        try:
            raw = client.complete(
                OCR_SYSTEM_PROMPT, content, json_mode=True, max_tokens=OCR_MAX_TOKENS, model=model
            )
            data = repair_json(raw)
        except QuotaExhausted as e:
            result.chunks_failed += 1
            logger.warning(f"OCR stopped at chunk {n + 1}/{len(chunks)}: {e}")
            break
        except (ModelError, UnparseableResponse) as e:
            result.chunks_failed += 1
            logger.warning(f"OCR chunk {n + 1}/{len(chunks)} skipped: {e}")
            continue

        label = sanitize_value(data.get("label_text"))
        measurement = sanitize_value(data.get("measurement_text"))
        result.label_text = _join(result.label_text, label)
        result.measurement_text = _join(result.measurement_text, measurement)

        if result.size_label is None:
            result.size_label = sanitize_value(data.get("size_label"))
        if result.pit_to_pit is None:
            result.pit_to_pit = sanitize_value(data.get("pit_to_pit"))
        if result.label_image is None and has_content(label):
            result.label_image = _image_index(data.get("label_image"), offset, len(chunk))
        if result.measurement_image is None and has_content(measurement):
            result.measurement_image = _image_index(data.get("measurement_image"), offset, len(chunk))

        logger.debug(
            f"OCR chunk {n + 1}/{len(chunks)}: label={has_content(label)} "
            f"measurement={has_content(measurement)}"
        )
        if result.found_both():
            if n + 1 < len(chunks):
                logger.info(f"OCR found label and measurement after {n + 1}/{len(chunks)} chunks")
            break

    return result


def regex_fallback(label_text: Optional[str], measurement_text: Optional[str]) -> dict:
    """Re-derive size and pit-to-pit from the raw transcriptions."""
    return {
        "size_label": extract_size_label(label_text) if has_content(label_text) else None,
        "pit_to_pit": extract_pit_to_pit(measurement_text) if has_content(measurement_text) else None,
    }


def select_priority_images(images: list[str], ocr: OcrResult, limit: int) -> list[str]:
    """Label photo, measurement photo, then the first photos in order."""
    picked: list[int] = []
    for idx in (ocr.label_image, ocr.measurement_image):
        if idx is not None and idx not in picked and 0 <= idx < len(images):
            picked.append(idx)
    for idx in range(len(images)):
        if len(picked) >= limit:
            break
        if idx not in picked:
            picked.append(idx)
    return [images[i] for i in picked[:limit]]
