"""AI listing generation for vintage clothing: photos and notes in, marketplace copy out."""

from listing.generator import generate_listing
from listing.qc import score_product
from listing.voice import parse_voice

__all__ = ["generate_listing", "parse_voice", "score_product"]
