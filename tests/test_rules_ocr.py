"""Tests for OCR extraction and the regex fallback rules."""

import json
from unittest.mock import MagicMock

import pytest

from listing.errors import ModelError, QuotaExhausted
from listing.ocr import (
    OcrResult,
    chunk_images,
    extract_ocr,
    is_chunked,
    ocr_from_response,
    regex_fallback,
    select_priority_images,
)
from listing.rules import extract_neckline, extract_pit_to_pit, extract_size_label
from tests.conftest import image_urls


class TestExtractPitToPit:
    """Tests for extract_pit_to_pit."""

    @pytest.mark.parametrize("text,expected", [
        ("Pit to Pit: 24", "24 inches"),
        ("P2P 22.5", "22.5 inches"),
        ("ptp=21", "21 inches"),
        ("chest 23 inches", "23 inches"),
        ('measures 20"', "20 inches"),
        ("19", "19 inches"),
    ])
    def test_finds_measurement(self, text, expected):
        assert extract_pit_to_pit(text) == expected

    def test_nothing_found(self):
        assert extract_pit_to_pit("no sign here") is None
        assert extract_pit_to_pit(None) is None


class TestExtractSizeLabel:
    """Tests for extract_size_label."""

    def test_prefixed_size(self):
        assert extract_size_label("NIKE size: xl 100% cotton") == "XL"

    def test_bare_size(self):
        assert extract_size_label("Medium M 38") == "M"

    def test_ignores_apostrophe_s_and_percentages(self):
        assert extract_size_label("Levi's 100% Cotton Made in USA") is None

    def test_numeric_size(self):
        assert extract_size_label("SIZE 12 Made in Italy") == "12"

    @pytest.mark.parametrize("text", [
        "100% COTTON MADE IN U.S.A.",
        "NIKE S.A.",
        "CHAMPION REVERSE WEAVE MADE IN U.S.A.",
    ])
    def test_dotted_abbreviations_are_not_sizes(self, text):
        assert extract_size_label(text) is None

    def test_bare_size_next_to_abbreviation(self):
        assert extract_size_label("MADE IN U.S.A. L") == "L"


class TestExtractNeckline:
    """Tests for extract_neckline."""

    @pytest.mark.parametrize("text,expected", [
        ("Navy V-Neck Sweater", "V Neck"),
        ("quarter zip fleece", "Quarter Zip"),
        ("Hoodie", "Hooded"),
        ("Crew neck sweatshirt", "Crewneck"),
    ])
    def test_detects(self, text, expected):
        assert extract_neckline(text) == expected

    def test_no_false_positive_inside_words(self):
        assert extract_neckline("Velvet Blazer") is None


class TestRegexFallback:
    """Tests for regex_fallback."""

    def test_measurement_sign(self):
        assert regex_fallback(None, "Pit to Pit: 24") == {"size_label": None, "pit_to_pit": "24 inches"}

    def test_not_visible_text_is_ignored(self):
        assert regex_fallback("not visible", "not visible") == {"size_label": None, "pit_to_pit": None}


class TestModeSelection:
    """Tests for single-call vs chunked OCR."""

    def test_threshold(self):
        assert not is_chunked(9)
        assert is_chunked(10)

    def test_chunking(self):
        chunks = chunk_images(image_urls(13), 6)
        assert [len(c) for c in chunks] == [6, 6, 1]


class TestExtractOcr:
    """Tests for the chunked OCR pass."""

    def test_early_exit_once_both_found(self):
        client = MagicMock()
        client.complete.side_effect = [
            json.dumps({"label_text": "LEVI'S SIZE 32", "measurement_text": None, "label_image": 2}),
            json.dumps({"measurement_text": "Pit to Pit 22", "pit_to_pit": "22 inches", "measurement_image": 1}),
            json.dumps({"label_text": "should not be read"}),
        ]

        result = extract_ocr(image_urls(18), client, chunk_size=6)

        assert client.complete.call_count == 2
        assert result.label_text == "LEVI'S SIZE 32"
        assert result.measurement_text == "Pit to Pit 22"
        assert result.pit_to_pit == "22 inches"
        assert result.label_image == 2
        assert result.measurement_image == 7

    def test_joins_text_across_chunks(self):
        client = MagicMock()
        client.complete.side_effect = [
            json.dumps({"label_text": "CARHARTT"}),
            json.dumps({"label_text": "MADE IN USA"}),
        ]

        result = extract_ocr(image_urls(12), client, chunk_size=6)

        assert result.label_text == "CARHARTT | MADE IN USA"
        assert result.measurement_text is None

    def test_failed_chunk_is_skipped(self):
        client = MagicMock()
        client.complete.side_effect = [
            ModelError("boom"),
            "not json",
            json.dumps({"label_text": "SIZE L", "measurement_text": "24"}),
        ]

        result = extract_ocr(image_urls(18), client, chunk_size=6)

        assert client.complete.call_count == 3
        assert result.chunks_failed == 2
        assert result.found_both()

    def test_quota_exhaustion_stops_the_pass(self):
        client = MagicMock()
        client.complete.side_effect = [QuotaExhausted("no credits", 402)]

        result = extract_ocr(image_urls(18), client, chunk_size=6)

        assert client.complete.call_count == 1
        assert result.label_text is None

    def test_sends_chunk_images(self):
        client = MagicMock()
        client.complete.return_value = json.dumps({})

        extract_ocr(image_urls(7), client, chunk_size=6)

        content = client.complete.call_args_list[1].args[1]
        images = [part for part in content if part["type"] == "image"]
        assert images == [{"type": "image", "source": {"type": "url", "url": "https://img.example.com/p/6.jpg"}}]


class TestResponseHelpers:
    """Tests for ocr_from_response and select_priority_images."""

    def test_reads_ocr_block(self):
        result = ocr_from_response({"ocr_text": {"label_text": "SIZE M", "measurement_text": "null"}})
        assert result.label_text == "SIZE M"
        assert result.measurement_text is None

    def test_missing_block(self):
        assert ocr_from_response({"title": "x"}) == OcrResult()

    def test_priority_images(self):
        images = image_urls(10)
        ocr = OcrResult(label_image=7, measurement_image=2)
        assert select_priority_images(images, ocr, 4) == [images[7], images[2], images[0], images[1]]

    def test_priority_images_without_ocr(self):
        images = image_urls(10)
        assert select_priority_images(images, OcrResult(), 4) == images[:4]
