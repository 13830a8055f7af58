"""Tests for the change detection engine."""

from decimal import Decimal

from src.api.schemas import ListingRecord, Snapshot
from src.pipeline.change_detector import (
    UNDEFINED_PERCENT, build_change_summary, dedupe_rating_changes, detect_changes,
)


def make_listing(**kwargs):
    defaults = {
        "item_id": "1", "seller": "s", "title": "iPhone",
        "price": 500, "currency": "USD", "image": "https://img/1.jpg",
        "url": "u", "seller_feedback_score": 1200,
        "seller_feedback_percentage": 98.5,
    }
    defaults.update(kwargs)
    return ListingRecord(**defaults)


def snap(*listings):
    return Snapshot(timestamp="2024-01-01T00:00:00+00:00", listings=list(listings))


CATEGORIES = [
    "new_listings", "removed_listings", "price_changes",
    "title_changes", "image_changes", "rating_changes",
]


def non_empty(diff):
    return [c for c in CATEGORIES if getattr(diff, c)]


class TestScenarios:
    def test_first_run_reports_new_listing(self):
        diff = detect_changes(Snapshot.empty(), snap(make_listing()))
        assert diff.has_changes is True
        assert non_empty(diff) == ["new_listings"]
        entry = diff.new_listings[0]
        assert entry.item_id == "1"
        assert entry.seller == "s"
        assert entry.title == "iPhone"
        assert entry.price == 500
        assert entry.url == "u"

    def test_price_drop(self):
        diff = detect_changes(snap(make_listing(price=500)), snap(make_listing(price=450)))
        assert non_empty(diff) == ["price_changes"]
        change = diff.price_changes[0]
        assert change.item_id == "1"
        assert change.old_price == 500
        assert change.new_price == 450
        assert change.change == -50
        assert change.percent_change == "-10.00"

    def test_removed_listing(self):
        diff = detect_changes(snap(make_listing()), Snapshot.empty())
        assert diff.has_changes is True
        assert non_empty(diff) == ["removed_listings"]
        assert diff.removed_listings[0].item_id == "1"
        assert diff.removed_listings[0].price == 500

    def test_url_is_not_diffed(self):
        diff = detect_changes(snap(make_listing(url="a")), snap(make_listing(url="b")))
        assert diff.has_changes is False
        assert non_empty(diff) == []

    def test_rating_change(self):
        diff = detect_changes(
            snap(make_listing(seller_feedback_percentage=98.5)),
            snap(make_listing(seller_feedback_percentage=99.0)),
        )
        assert non_empty(diff) == ["rating_changes"]
        rating = diff.rating_changes[0]
        assert rating.seller == "s"
        assert rating.old_rating == Decimal("98.5")
        assert rating.new_rating == Decimal("99.0")
        assert rating.change == "0.50"


class TestFieldChanges:
    def test_title_change(self):
        diff = detect_changes(snap(make_listing()), snap(make_listing(title="iPhone 15")))
        assert diff.title_changes[0].old_title == "iPhone"
        assert diff.title_changes[0].new_title == "iPhone 15"

    def test_image_added(self):
        diff = detect_changes(snap(make_listing(image=None)), snap(make_listing(image="x")))
        assert diff.image_changes[0].old_image is None
        assert diff.image_changes[0].new_image == "x"

    def test_several_fields_on_one_item(self):
        diff = detect_changes(
            snap(make_listing()),
            snap(make_listing(price=520, title="New", image="y")),
        )
        assert non_empty(diff) == ["price_changes", "title_changes", "image_changes"]

    def test_condition_and_score_not_diffed(self):
        diff = detect_changes(
            snap(make_listing(condition="NEW", seller_feedback_score=1)),
            snap(make_listing(condition="USED", seller_feedback_score=2)),
        )
        assert diff.has_changes is False

    def test_equal_decimals_with_different_scale(self):
        diff = detect_changes(
            snap(make_listing(price=Decimal("500"))),
            snap(make_listing(price=Decimal("500.00"))),
        )
        assert diff.price_changes == []

    def test_percent_rounds_to_two_places(self):
        diff = detect_changes(snap(make_listing(price=3)), snap(make_listing(price=4)))
        assert diff.price_changes[0].percent_change == "33.33"


class TestBoundaries:
    def test_zero_old_price_is_undefined_percent(self):
        diff = detect_changes(snap(make_listing(price=0)), snap(make_listing(price=10)))
        change = diff.price_changes[0]
        assert change.change == 10
        assert change.percent_change == UNDEFINED_PERCENT

    def test_missing_price(self):
        diff = detect_changes(snap(make_listing(price=None)), snap(make_listing(price=10)))
        change = diff.price_changes[0]
        assert change.change is None
        assert change.percent_change == UNDEFINED_PERCENT

    def test_missing_rating(self):
        diff = detect_changes(
            snap(make_listing(seller_feedback_percentage=None)),
            snap(make_listing(seller_feedback_percentage=99)),
        )
        assert diff.rating_changes[0].change is None

    def test_duplicate_item_id_last_wins(self):
        current = snap(make_listing(price=400), make_listing(price=450))
        diff = detect_changes(snap(make_listing(price=500)), current)
        assert len(diff.price_changes) == 1
        assert diff.price_changes[0].new_price == 450


class TestOrdering:
    def test_entries_follow_snapshot_order(self):
        previous = snap(make_listing(item_id="a"), make_listing(item_id="b"), make_listing(item_id="c"))
        current = snap(make_listing(item_id="z"), make_listing(item_id="y"), make_listing(item_id="b"))
        diff = detect_changes(previous, current)
        assert [e.item_id for e in diff.new_listings] == ["z", "y"]
        assert [e.item_id for e in diff.removed_listings] == ["a", "c"]


class TestRatingVariants:
    def _two_listings_same_seller(self):
        previous = snap(
            make_listing(item_id="1", seller_feedback_percentage=98.5),
            make_listing(item_id="2", seller_feedback_percentage=98.5),
        )
        current = snap(
            make_listing(item_id="1", seller_feedback_percentage=99.0),
            make_listing(item_id="2", seller_feedback_percentage=99.0),
        )
        return detect_changes(previous, current)

    def test_one_entry_per_listing_by_default(self):
        diff = self._two_listings_same_seller()
        assert len(diff.rating_changes) == 2

    def test_dedupe_keeps_one_entry_per_seller(self):
        diff = dedupe_rating_changes(self._two_listings_same_seller())
        assert len(diff.rating_changes) == 1
        assert diff.rating_changes[0].seller == "s"
        assert diff.has_changes is True


class TestProperties:
    SNAPSHOTS = [
        snap(),
        snap(make_listing()),
        snap(make_listing(item_id="1"), make_listing(item_id="2", price=None, image=None)),
        snap(make_listing(item_id="2", price=0), make_listing(item_id="3", title="Other")),
    ]

    def test_total_and_has_changes_consistent(self):
        for a in self.SNAPSHOTS:
            for b in self.SNAPSHOTS:
                diff = detect_changes(a, b)
                assert diff.has_changes == bool(non_empty(diff))

    def test_new_and_removed_disjoint(self):
        for a in self.SNAPSHOTS:
            for b in self.SNAPSHOTS:
                diff = detect_changes(a, b)
                new_ids = {e.item_id for e in diff.new_listings}
                removed_ids = {e.item_id for e in diff.removed_listings}
                assert new_ids.isdisjoint(removed_ids)

    def test_identity_has_no_changes(self):
        for s in self.SNAPSHOTS:
            diff = detect_changes(s, s)
            assert diff.has_changes is False
            assert non_empty(diff) == []

    def test_add_remove_symmetry(self):
        a = snap(make_listing(item_id="1"), make_listing(item_id="2"))
        b = snap(make_listing(item_id="2"), make_listing(item_id="3"))
        forward = detect_changes(a, b)
        backward = detect_changes(b, a)
        assert {e.item_id for e in forward.new_listings} == {e.item_id for e in backward.removed_listings}
        assert {e.item_id for e in forward.removed_listings} == {e.item_id for e in backward.new_listings}


class TestBuildSummary:
    def test_summary_counts(self):
        previous = snap(make_listing(item_id="a"), make_listing(item_id="b"))
        current = snap(make_listing(item_id="b", price=1), make_listing(item_id="c"))
        counts = build_change_summary(detect_changes(previous, current))
        assert counts.has_changes is True
        assert counts.new_listings == 1
        assert counts.removed_listings == 1
        assert counts.price_changes == 1
        assert counts.total_changes == 3

    def test_summary_serializes_camel_case(self):
        counts = build_change_summary(detect_changes(snap(), snap()))
        dumped = counts.model_dump(by_alias=True)
        assert dumped["totalChanges"] == 0
        assert dumped["hasChanges"] is False


class TestJsonOutput:
    def test_price_change_amounts_are_json_numbers(self):
        diff = detect_changes(
            snap(make_listing(price=500)), snap(make_listing(price=Decimal("449.99"))),
        )
        entry = diff.model_dump(mode="json", by_alias=True)["priceChanges"][0]
        assert entry["oldPrice"] == 500
        assert isinstance(entry["oldPrice"], int)
        assert entry["newPrice"] == 449.99
        assert entry["change"] == -50.01
        assert entry["percentChange"] == "-10.00"

    def test_missing_price_stays_null(self):
        diff = detect_changes(snap(make_listing(price=500)), snap(make_listing(price=None)))
        entry = diff.model_dump(mode="json", by_alias=True)["priceChanges"][0]
        assert entry["change"] is None
        assert entry["newPrice"] is None
