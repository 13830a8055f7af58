"""Tests for eBay item normalization."""

from decimal import Decimal

from src.pipeline.normalizer import (
    normalize_item, normalize_whitespace, parse_percentage, parse_price, to_decimal,
)


def make_item(**kwargs):
    item = {
        "itemId": "v1|1234|0",
        "title": "Apple  iPhone 13   128GB",
        "price": {"value": "499.99", "currency": "USD"},
        "image": {"imageUrl": "https://i.ebayimg.com/1.jpg"},
        "condition": "Used",
        "itemWebUrl": "https://www.ebay.com/itm/1234",
        "seller": {"username": "cellfc", "feedbackPercentage": "99.5", "feedbackScore": 4021},
    }
    item.update(kwargs)
    return item


class TestParsePrice:
    def test_value_and_currency(self):
        assert parse_price({"value": "12.50", "currency": "GBP"}) == (Decimal("12.50"), "GBP")

    def test_missing(self):
        assert parse_price(None) == (None, None)
        assert parse_price({}) == (None, None)

    def test_thousands_separator(self):
        assert to_decimal("1,299.00") == Decimal("1299.00")

    def test_garbage(self):
        assert to_decimal("n/a") is None

    def test_non_finite(self):
        assert to_decimal("NaN") is None
        assert to_decimal("Infinity") is None


class TestParsePercentage:
    def test_string(self):
        assert parse_percentage("98.7") == Decimal("98.7")

    def test_number(self):
        assert parse_percentage(100) == Decimal("100")

    def test_none(self):
        assert parse_percentage(None) is None


class TestNormalizeItem:
    def test_full_item(self):
        listing = normalize_item(make_item(), "cellfc")
        assert listing.item_id == "v1|1234|0"
        assert listing.seller == "cellfc"
        assert listing.title == "Apple iPhone 13 128GB"
        assert listing.price == Decimal("499.99")
        assert listing.currency == "USD"
        assert listing.image == "https://i.ebayimg.com/1.jpg"
        assert listing.condition == "Used"
        assert listing.url == "https://www.ebay.com/itm/1234"
        assert listing.seller_feedback_score == 4021
        assert listing.seller_feedback_percentage == Decimal("99.5")

    def test_missing_nested_objects(self):
        item = make_item()
        del item["price"], item["image"], item["seller"]
        listing = normalize_item(item, "cellfc")
        assert listing.price is None
        assert listing.image is None
        assert listing.seller_feedback_percentage is None

    def test_skips_item_without_id(self):
        assert normalize_item(make_item(itemId=None), "cellfc") is None


class TestWhitespace:
    def test_collapses(self):
        assert normalize_whitespace("  a   b ") == "a b"

    def test_none(self):
        assert normalize_whitespace(None) == ""
