"""
Shared fixtures for listing pipeline tests.

Provides canned model responses, a MagicMock model client and a throwaway
sqlite database per test.
"""

import json
from unittest.mock import MagicMock

import pytest

from db import get_connection, init_db


# =============================================================================
# Canned model responses
# =============================================================================

@pytest.fixture
def listing_response():
    """Full single-call generation response, OCR block included."""
    return {
        "title": "Nike 90s Mens Grey Oversized Hoodie Embroidered Swoosh Size M",
        "description_style_a": (
            "Grey Nike hoodie with an embroidered swoosh. Heavy fleece, roomy cut.\n\n"
            "Brand: Nike\nEra: null\nMaterials: N/A\nCondition: Very good"
        ),
        "description_style_b": "Soft grey Nike hoodie from the 90s.\n\nBrand: Nike",
        "shopify_tags": "nike, hoodie, 90s, Nike",
        "etsy_tags": "nike hoodie, vintage nike, 90s streetwear",
        "collections_tags": "Hoodies, Nike",
        "brand": "Nike",
        "garment_type": "Hoodie",
        "department": "Mens",
        "era": "90s",
        "condition": "Very good",
        "flaws": None,
        "colour_main": "Grey",
        "colour_secondary": "null",
        "pattern": "Solid",
        "material": "Cotton blend",
        "made_in": "unknown",
        "fit": "Oversized",
        "size_label": "M",
        "size_recommended": "M",
        "pit_to_pit": "N/A",
        "style": "Hoodie",
        "ocr_text": {
            "label_text": "NIKE SIZE L 80% cotton 20% polyester",
            "measurement_text": "Pit to Pit: 24",
            "size_label": None,
            "pit_to_pit": None,
        },
    }


@pytest.fixture
def client(listing_response):
    """Model client returning the canned listing response."""
    mock = MagicMock()
    mock.complete.return_value = json.dumps(listing_response)
    return mock


def image_urls(n: int) -> list[str]:
    return [f"https://img.example.com/p/{i}.jpg" for i in range(n)]


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "lister.db")
    init_db(path)
    return path


@pytest.fixture
def conn(db_path):
    connection = get_connection(db_path)
    yield connection
    connection.close()
