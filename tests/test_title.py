"""Tests for marketplace title composition."""

import re

import pytest

from listing.title import compose_title, fit_to_budget, strip_banned_punctuation

BANNED = re.compile(r"[,\-–—:;]")


class TestComposeTitle:
    """Tests for compose_title."""

    def test_builds_from_fields_when_no_model_title(self):
        caller = {
            "brand": "Levi's",
            "era": "90s",
            "department": "Women",
            "colour_main": "Blue",
            "garment_type": "Denim Jacket",
            "material": "100% Cotton",
            "size_label": "medium",
        }

        title = compose_title(None, caller, {})

        assert title == "Levi's 90s Womens Blue Cotton Denim Jacket Size M"

    def test_repairs_long_model_title(self):
        model_title = (
            "Vintage 1990s Nike Air, Mens Grey-Black Oversized Heavyweight Hoodie: "
            "Embroidered Swoosh Logo; Size Large"
        )

        title = compose_title(model_title, {"size_label": "L"}, {})

        assert len(title) <= 80
        assert not BANNED.search(title)
        assert title.startswith("Vintage 1990s Nike Air Mens Grey Black")
        assert title.endswith("Size L")

    def test_sparse_model_title_is_rebuilt(self):
        caller = {
            "brand": "Nike",
            "era": "90s",
            "department": "Men",
            "colour_main": "Grey",
            "style": "Crew neck",
            "fit": "Oversized fit",
            "garment_type": "Sweatshirt",
            "size_label": "M",
        }

        title = compose_title("Nike Sweatshirt", caller, {})

        assert title == "Nike 90s Mens Grey Crewneck Oversized Sweatshirt Size M"

    def test_repair_only_keeps_short_title(self):
        title = compose_title("Nike Hoodie", {"brand": "Nike", "size_label": "M"}, {}, allow_rebuild=False)
        assert title == "Nike Hoodie Size M"

    def test_nothing_to_build_from(self):
        assert compose_title(None, {}, {}) is None
        assert compose_title("null", None, None) is None

    def test_ocr_size_wins(self):
        title = compose_title(
            "Carhartt Detroit Jacket Brown Duck Canvas Blanket Lined Workwear Size S",
            {"size_label": "S"},
            {"size_label": "M"},
            ocr_fields={"size_label": "XL"},
        )
        assert title.endswith("Size XL")
        assert "Size S" not in title

    def test_recommended_size_when_no_label(self):
        title = compose_title(
            "Carhartt Detroit Jacket Brown Duck Canvas Blanket Lined Workwear",
            {"size_recommended": "large"},
            {},
        )
        assert title.endswith("Workwear Size L")

    def test_keeps_model_size_when_none_resolves(self):
        model_title = "Carhartt Detroit Jacket Brown Duck Canvas Blanket Lined Workwear Size L"
        assert compose_title(model_title, {}, {}) == model_title

    def test_model_size_is_normalized(self):
        title = compose_title(
            "Carhartt Detroit Jacket Brown Duck Canvas Blanket Lined Workwear Size Large", {}, {}
        )
        assert title == "Carhartt Detroit Jacket Brown Duck Canvas Blanket Lined Workwear Size L"

    def test_dangling_size_is_removed(self):
        title = compose_title(
            "Stussy 90s Mens Black Graphic Tee Skate Streetwear Size null", {}, {}
        )
        assert title == "Stussy 90s Mens Black Graphic Tee Skate Streetwear"

    @pytest.mark.parametrize("model_title,caller", [
        ("A" * 120, {"size_label": "XXL"}),
        ("Ralph Lauren; Polo: Mens — Navy, Cable Knit Jumper – Wool – Size Medium", {}),
        (None, {"brand": "Harley-Davidson", "garment_type": "Tee", "size_label": "extra large"}),
        ("Nike", {"garment_type": "Windbreaker Jacket", "colour_main": "Teal", "size_recommended": "M-L"}),
    ])
    def test_contract(self, model_title, caller):
        title = compose_title(model_title, caller, {})
        assert title
        assert len(title) <= 80
        assert not BANNED.search(title)


class TestHelpers:
    """Tests for title helpers."""

    def test_strip_banned_punctuation(self):
        assert strip_banned_punctuation("Nike, Mens - Grey: Hoodie; Size M") == "Nike Mens Grey Hoodie Size M"

    def test_fit_to_budget_hard_cuts_single_word(self):
        title = fit_to_budget("A" * 100, "M")
        assert title == "A" * 73 + " Size M"
        assert len(title) == 80

    def test_fit_to_budget_drops_trailing_words(self):
        body = " ".join(["word"] * 30)
        title = fit_to_budget(body, "XL")
        assert len(title) <= 80
        assert title.endswith("word Size XL")
