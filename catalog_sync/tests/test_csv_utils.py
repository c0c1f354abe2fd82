"""Tests for the product list CSV/JSON files."""

import pytest

from catalog_sync.csv_utils import (
    load_candidates_from_csv,
    load_candidates_from_json,
    row_to_candidate,
    save_candidates_to_csv,
)
from catalog_sync.models import ImageRef, ScrapeCandidate


class TestCsvReader:
    def test_reads_back_written_file(self, tmp_path):
        path = tmp_path / "products.csv"
        save_candidates_to_csv([
            ScrapeCandidate(
                url="https://store.test/index.php/products/coq10",
                name="Now Foods CoQ10",
                sku="HM-123",
                brand="Now Foods",
                price=24.99,
                in_stock=False,
                health_categories=["Heart Health", "Energy"],
                images=[ImageRef(url="https://cdn.test/coq10.jpg")],
            ),
        ], path)

        [candidate] = load_candidates_from_csv(path)

        assert candidate.sku == "HM-123"
        assert candidate.price == 24.99
        assert candidate.in_stock is False
        assert candidate.health_categories == ["Heart Health", "Energy"]
        assert [i.url for i in candidate.images] == ["https://cdn.test/coq10.jpg"]

    def test_hand_made_row(self):
        candidate = row_to_candidate({"name": " Zinc ", "sku": "HM-9", "price": "$1,024.50", "stock_quantity": "12"})
        assert candidate.name == "Zinc"
        assert candidate.price == 1024.50
        assert candidate.stock_quantity == 12
        assert candidate.in_stock is True
        assert candidate.images == []

    def test_bad_number(self):
        with pytest.raises(ValueError):
            row_to_candidate({"name": "Zinc", "sku": "HM-9", "stock_quantity": "lots"})


class TestJsonReader:
    def test_products_key_or_bare_list(self, tmp_path):
        wrapped = tmp_path / "wrapped.json"
        wrapped.write_text('{"products": [{"name": "Zinc", "sku": "HM-9", "images": ["https://cdn.test/z.jpg"]}]}')
        bare = tmp_path / "bare.json"
        bare.write_text('[{"name": "Zinc", "sku": "HM-9"}, "junk"]')

        assert load_candidates_from_json(wrapped)[0].images[0].url == "https://cdn.test/z.jpg"
        assert [c.sku for c in load_candidates_from_json(bare)] == ["HM-9"]
