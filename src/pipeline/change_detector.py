"""Change detection between monitoring cycles.

Compares the listings of the current fetch against the previously stored
snapshot, keyed by item id, and reports new, removed, repriced, retitled,
re-imaged listings and seller rating movements. Pure: no I/O, no logging.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from src.api.schemas import (
    ChangeCounts, DiffSummary, ImageChange, ListingRecord, NewListing,
    PriceChange, RatingChange, RemovedListing, Snapshot, TitleChange,
)

# Percent change against a zero or missing base price has no defined value.
UNDEFINED_PERCENT = "undefined"

_CENTS = Decimal("0.01")


def _fmt2(value: Decimal) -> str:
    return str(value.quantize(_CENTS, rounding=ROUND_HALF_UP))


def _index(snapshot: Snapshot) -> Dict[str, ListingRecord]:
    # Repeated item ids: the later record wins.
    return {listing.item_id: listing for listing in snapshot.listings}


def _price_delta(old: Optional[Decimal], new: Optional[Decimal]):
    if old is None or new is None:
        return None, UNDEFINED_PERCENT
    change = new - old
    if old == 0:
        return change, UNDEFINED_PERCENT
    return change, _fmt2(change / old * 100)


def _rating_delta(old: Optional[Decimal], new: Optional[Decimal]) -> Optional[str]:
    if old is None or new is None:
        return None
    return _fmt2(new - old)


def detect_changes(previous: Snapshot, current: Snapshot) -> DiffSummary:
    """Diff two snapshots.

    Args:
        previous: Snapshot stored by the last cycle (may be empty).
        current: Snapshot just fetched.

    Returns:
        DiffSummary. Entries keep the order of the snapshot they come from;
        removed listings follow the previous snapshot's order, everything
        else the current one's.
    """
    prev_map = _index(previous)
    curr_map = _index(current)

    new_listings = []
    price_changes = []
    title_changes = []
    image_changes = []
    rating_changes = []

    for item_id, cur in curr_map.items():
        prev = prev_map.get(item_id)

        if prev is None:
            new_listings.append(NewListing(
                item_id=cur.item_id, seller=cur.seller, title=cur.title,
                price=cur.price, url=cur.url,
            ))
            continue

        if prev.price != cur.price:
            change, percent = _price_delta(prev.price, cur.price)
            price_changes.append(PriceChange(
                item_id=cur.item_id, seller=cur.seller, title=cur.title,
                old_price=prev.price, new_price=cur.price,
                change=change, percent_change=percent, url=cur.url,
            ))

        if prev.title != cur.title:
            title_changes.append(TitleChange(
                item_id=cur.item_id, seller=cur.seller,
                old_title=prev.title, new_title=cur.title, url=cur.url,
            ))

        if prev.image != cur.image:
            image_changes.append(ImageChange(
                item_id=cur.item_id, seller=cur.seller, title=cur.title,
                old_image=prev.image, new_image=cur.image, url=cur.url,
            ))

        # Checked per listing, so one seller can yield several entries.
        if prev.seller_feedback_percentage != cur.seller_feedback_percentage:
            rating_changes.append(RatingChange(
                seller=cur.seller,
                old_rating=prev.seller_feedback_percentage,
                new_rating=cur.seller_feedback_percentage,
                change=_rating_delta(
                    prev.seller_feedback_percentage, cur.seller_feedback_percentage
                ),
            ))

    removed_listings = [
        RemovedListing(
            item_id=prev.item_id, seller=prev.seller, title=prev.title, price=prev.price,
        )
        for item_id, prev in prev_map.items()
        if item_id not in curr_map
    ]

    return DiffSummary(
        new_listings=new_listings,
        removed_listings=removed_listings,
        price_changes=price_changes,
        title_changes=title_changes,
        image_changes=image_changes,
        rating_changes=rating_changes,
    )


def dedupe_rating_changes(diff: DiffSummary) -> DiffSummary:
    """Collapse rating changes to the first entry per seller."""
    seen = set()
    unique = []
    for entry in diff.rating_changes:
        if entry.seller not in seen:
            seen.add(entry.seller)
            unique.append(entry)
    return diff.model_copy(update={"rating_changes": unique})


def build_change_summary(diff: DiffSummary) -> ChangeCounts:
    """Summarize a diff into counts for the history table."""
    counts = {
        "price_changes": len(diff.price_changes),
        "new_listings": len(diff.new_listings),
        "removed_listings": len(diff.removed_listings),
        "title_changes": len(diff.title_changes),
        "image_changes": len(diff.image_changes),
        "rating_changes": len(diff.rating_changes),
    }
    return ChangeCounts(
        has_changes=diff.has_changes,
        total_changes=sum(counts.values()),
        **counts,
    )
