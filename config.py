"""Settings for the vintage listing pipeline."""

import os

DB_PATH = os.environ.get("LISTER_DB_PATH", "lister.db")

# AI model settings
LISTING_MODEL = os.environ.get("LISTING_MODEL", "claude-sonnet-4-5-20250929")
OCR_MODEL = os.environ.get("OCR_MODEL", "claude-haiku-4-5-20251001")
VOICE_MODEL = os.environ.get("VOICE_MODEL", "claude-haiku-4-5-20251001")
LISTING_MAX_TOKENS = 2000
OCR_MAX_TOKENS = 400
VOICE_MAX_TOKENS = 500

# Image handling
MAX_IMAGE_URLS = 500
MAX_URL_LENGTH = 2048
SINGLE_CALL_MAX_IMAGES = 9   # above this, OCR runs as a chunked pre-pass
OCR_CHUNK_SIZE = 6           # images per OCR-only call
CHUNKED_MAIN_CALL_IMAGES = 4  # images sent with the main call in chunked mode
REGENERATE_CALL_IMAGES = 2   # images sent when only the title/a style is regenerated

# Input limits
MAX_STRING_LENGTH = 1000
MAX_NOTES_LENGTH = 2000
MAX_PRICE = 1_000_000

# Title contract
TITLE_MAX_LENGTH = 80
TITLE_MIN_LENGTH = 50  # shorter model titles are rebuilt from fields

# Voice input
VOICE_MIN_CHARS = 2
VOICE_MAX_CHARS = 2000

# Autopilot
AUTOPILOT_BATCH_SIZE = 30
AUTOPILOT_IMAGES_PER_PRODUCT = 2
AUTOPILOT_MAX_ATTEMPTS = 0  # 0 = failed products stay claimable forever
AUTOPILOT_CONTINUE_DELAY_SECONDS = 1  # gap before the next batch of a run starts
AUTOPILOT_SWEEP_MINUTES = 1
AUTOPILOT_STALE_MINUTES = 10

# Auto-QC
QC_READY_CONFIDENCE = 85
QC_REVIEW_CONFIDENCE = 60
QC_PRICE_MIN = 5
QC_PRICE_MAX = 1000
