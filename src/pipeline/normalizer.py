"""Normalization of eBay Browse API item summaries into ListingRecords.

The Browse API returns prices and feedback percentages as strings
("499.99", "99.5"); they are converted to Decimal here so the change
detector compares numbers rather than text.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from src.api.schemas import ListingRecord


def normalize_whitespace(text: Optional[str]) -> str:
    """Collapse whitespace runs and strip."""
    if not text:
        return ""
    return " ".join(text.split())


def to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        parsed = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def parse_price(price: Optional[dict]) -> Tuple[Optional[Decimal], Optional[str]]:
    """Parse a Browse API price object into (value, currency)."""
    if not price:
        return (None, None)
    return (to_decimal(price.get("value")), price.get("currency"))


def parse_percentage(value) -> Optional[Decimal]:
    """Parse a feedback percentage like "99.5" or 99.5."""
    return to_decimal(value)


def normalize_item(item: dict, seller: str) -> Optional[ListingRecord]:
    """Map one `itemSummaries` entry to a ListingRecord.

    Returns None for entries without an itemId.
    """
    item_id = item.get("itemId")
    if not item_id:
        return None

    price, currency = parse_price(item.get("price"))
    image = (item.get("image") or {}).get("imageUrl")
    seller_info = item.get("seller") or {}
    score = seller_info.get("feedbackScore")

    return ListingRecord(
        item_id=str(item_id),
        seller=seller,
        title=normalize_whitespace(item.get("title")),
        price=price,
        currency=currency,
        image=image,
        condition=item.get("condition"),
        url=item.get("itemWebUrl"),
        seller_feedback_score=int(score) if score is not None else None,
        seller_feedback_percentage=parse_percentage(seller_info.get("feedbackPercentage")),
    )
