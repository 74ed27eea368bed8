"""Prompt templates for listing generation, OCR and voice parsing."""

from typing import Optional

LISTING_SYSTEM_PROMPT = """You write marketplace listings for a vintage clothing shop (Etsy, Shopify and resale apps).

## TITLE
Order: Brand or franchise, Era (80s, 90s or Y2K, only if certain), Gender (Mens / Womens / Unisex), Colour, Item type, Key graphic or feature, then "Size <size>" LAST.
- Max 80 characters. No commas, hyphens, dashes, colons or semicolons.
- Always start with the brand or a recognised franchise (film, band, anime, sports team).
- Never use hype words: rare, beautiful, excellent, amazing.
- Aim for 60 to 80 characters of natural search keywords.
Examples:
- "Stranger Things Netflix Mens Black Graphic T Shirt Retro Size L"
- "Nike 90s Womens Grey Oversized Hoodie Embroidered Swoosh Size M"

## DESCRIPTIONS
Clean, minimal, confident, slightly editorial. Start with what you see. No catalogue language.
Never write: "crafted from", "features", "boasts", "showcases", "ideal for", "perfect for", "this item", "designed for".

STYLE A: ultra minimal, 55 to 65 words.
STYLE B: natural minimal SEO, 70 to 80 words, smoother flow.

Both end with a structured block, one "Label: value" per line, ONLY for fields that have a value:
Brand:
Label Size:
Pit to Pit:
Recommended Size:
Materials:
Era:
Condition:
Style:
Made in:
Never write "Unknown", "N/A" or "null" in the block; leave the line out instead.

## ATTRIBUTES
Fill garment attributes from what is visible. If you cannot tell, use null. Never guess an era, brand or material.
- era: only "80s", "90s" or "Y2K"
- department: "Mens", "Womens", "Unisex" or "Kids"
- condition: "Excellent", "Very good", "Good", "Fair"; add visible flaws in parentheses, never invent flaws
- fit: e.g. "Oversized", "Regular", "Slim", "Boxy", "Relaxed"

## TAGS
shopify_tags, etsy_tags (max 13, each max 20 characters, two or three words), collections_tags: comma separated strings.

If you recognise a franchise, celebrity, band, character or team, mention it in the title AND both descriptions.
If product details conflict, correct them with common sense."""

OCR_INSTRUCTIONS = """
## LABEL AND MEASUREMENT READING
Some photos show the sewn-in label or a handwritten measurement sign.
Transcribe them verbatim into "ocr_text":
- label_text: every word on the garment label (brand, size, material, origin), or null
- measurement_text: everything written on the measurement sign, or null
- size_label: the size printed on the label, or null
- pit_to_pit: the pit to pit measurement from the sign, as "<number> inches", or null
Values you read from a label or sign override your visual guesses."""

LISTING_RESPONSE_FORMAT = """
## OUTPUT
{
  "title": "...",
  "description_style_a": "...",
  "description_style_b": "...",
  "shopify_tags": "tag1, tag2",
  "etsy_tags": "tag1, tag2",
  "collections_tags": "collection1, collection2",
  "brand": null, "garment_type": null, "department": null, "era": null,
  "condition": null, "flaws": null, "colour_main": null, "colour_secondary": null,
  "pattern": null, "material": null, "made_in": null, "fit": null,
  "size_label": null, "size_recommended": null, "pit_to_pit": null, "style": null,
  "ocr_text": {"label_text": null, "measurement_text": null, "size_label": null, "pit_to_pit": null}
}"""

OCR_SYSTEM_PROMPT = """You transcribe text from photos of vintage clothing.
Look for (1) the garment's sewn-in label and (2) a handwritten or printed measurement sign.
Copy what is written; do not interpret or guess. If a photo shows neither, ignore it.

Respond with:
{
  "label_text": "verbatim label text or null",
  "measurement_text": "verbatim sign text or null",
  "size_label": "size printed on the label or null",
  "pit_to_pit": "pit to pit measurement as '<number> inches' or null",
  "label_image": "0-based index of the photo showing the label, or null",
  "measurement_image": "0-based index of the photo showing the sign, or null"
}"""

VOICE_SYSTEM_PROMPT = """You parse spoken notes for a vintage clothing listing app.
The text comes from speech-to-text and is often garbled. Infer the intended word from near misses
("common" or "condishun" means condition, "pit" or "pet to pet" followed by a number and "inches" means pit to pit,
"brand is Levis" may arrive as "brandy's Levis").

RULES
1. Only return fields the speaker explicitly mentions. Never guess or invent values.
2. Leave out any field that is not mentioned. Do not return nulls.
3. Condition is one of "Excellent", "Very good", "Good", "Fair", with flaws in parentheses: "Very good (small mark on sleeve)".
4. If a current condition is given and new flaws are mentioned, keep the current condition and append the new flaws in parentheses.
5. Era is only "80s", "90s" or "Y2K" (2000s means Y2K).
6. Recommended size is a range such as "UK 12-14" or "M-L".
7. "use style A" / "use style B" selects the description style: return "selected_style": "a" or "b".
8. Anything said after "for the description" goes verbatim into "description_note".

FIELDS
price (number), size_label, size_recommended, pit_to_pit, condition, flaws, department (Women/Men/Unisex/Kids),
era, brand, material, made_in, colour_main, colour_secondary, pattern, style, fit, garment_type, notes,
selected_style, description_note

EXAMPLES
Input: "Price is 25 pounds. Women's. True 90s. Condition very good, minor bobbling on sleeves."
Output: {"price": 25, "department": "Women", "era": "90s", "condition": "Very good (minor bobbling on sleeves)"}

Input: "pit to pit twenty two inches, use style B, for the description mention the cropped fit"
Output: {"pit_to_pit": "22 inches", "selected_style": "b", "description_note": "mention the cropped fit"}"""

# (label, field, hint) for the product context block
_CONTEXT_FIELDS = [
    ("Brand", "brand", ""),
    ("Garment Type", "garment_type", ""),
    ("Department", "department", " (use Mens/Womens/Unisex in title)"),
    ("Colour Main", "colour_main", ""),
    ("Colour Secondary", "colour_secondary", ""),
    ("Pattern/Style", "pattern", ""),
    ("Style", "style", ""),
    ("Size Label", "size_label", ""),
    ("Pit to Pit", "pit_to_pit", ""),
    ("Size Recommended", "size_recommended", ""),
    ("Material", "material", ""),
    ("Era", "era", " (ONLY include if 80s, 90s, or Y2K)"),
    ("Condition", "condition", ""),
    ("Flaws", "flaws", ""),
    ("Fit", "fit", ""),
    ("Made In", "made_in", ""),
    ("Price", "price", ""),
    ("Additional Notes", "raw_input_text", ""),
]

_REGENERATE_PROMPTS = {
    "title": "Generate ONLY the title for this product. Respond with just the \"title\" field in JSON.",
    "style_a": "Generate ONLY Description Style A (ultra minimal) for this product. "
    "Respond with just the \"description_style_a\" field in JSON.",
    "style_b": "Generate ONLY Description Style B (natural minimal SEO) for this product. "
    "Respond with just the \"description_style_b\" field in JSON.",
}


def format_product_context(product: dict) -> str:
    """List the caller's known fields. Unset fields are left out entirely."""
    lines = ["Product Details:"]
    for label, field, hint in _CONTEXT_FIELDS:
        value = product.get(field)
        if value is None or value == "":
            continue
        lines.append(f"- {label}: {value}{hint}")
    if len(lines) == 1:
        lines.append("- (nothing entered yet; work from the photos)")
    return "\n".join(lines)


def build_system_prompt(include_ocr: bool) -> str:
    prompt = LISTING_SYSTEM_PROMPT
    if include_ocr:
        prompt += "\n" + OCR_INSTRUCTIONS
    return prompt + "\n" + LISTING_RESPONSE_FORMAT


def build_user_prompt(
    product: dict, regenerate_only: Optional[str] = None, ocr_hint: Optional[dict] = None
) -> str:
    """User message for the main generation call."""
    context = format_product_context(product)
    instruction = _REGENERATE_PROMPTS.get(regenerate_only or "")
    if instruction:
        return f"{instruction}\n{context}"

    prompt = f"Generate a vintage clothing listing for this product:\n{context}"
    if ocr_hint:
        notes = []
        if ocr_hint.get("label_text"):
            notes.append(f"- Label text: {ocr_hint['label_text']}")
        if ocr_hint.get("measurement_text"):
            notes.append(f"- Measurement sign: {ocr_hint['measurement_text']}")
        if notes:
            prompt += "\n\nText already read from the photos:\n" + "\n".join(notes)
    return prompt


def build_voice_prompt(transcript: str, existing_condition: Optional[str] = None) -> str:
    if existing_condition:
        return (
            f'Parse this voice input. Current condition is: "{existing_condition}". '
            f"If new flaws are mentioned, append them.\n\nVoice input: \"{transcript}\""
        )
    return f'Parse this voice input:\n\n"{transcript}"'
