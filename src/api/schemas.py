"""Pydantic models for listings, snapshots, diffs and cycle reports.

Python attributes are snake_case; serialized JSON uses camelCase aliases so
snapshots stored by the earlier deployment can still be read back.
"""

from decimal import Decimal
from typing import Annotated, Optional, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PlainSerializer, computed_field
from pydantic.alias_generators import to_camel


def _json_number(value: Decimal):
    return int(value) if value == value.to_integral_value() else float(value)


# Decimal that serializes to a JSON number (-50, 499.99) in diff output.
JsonNumber = Annotated[Decimal, PlainSerializer(_json_number, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ListingRecord(CamelModel):
    """One seller listing as observed in a single fetch."""
    item_id: str
    seller: str
    title: str = ""
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    image: Optional[str] = None
    condition: Optional[str] = None
    url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("url", "itemWebUrl"),
    )
    seller_feedback_score: Optional[int] = None
    seller_feedback_percentage: Optional[Decimal] = None


class Snapshot(CamelModel):
    timestamp: Optional[str] = None
    listings: List[ListingRecord] = Field(
        default_factory=list,
        validation_alias=AliasChoices("listings", "products"),
    )

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls(timestamp=None, listings=[])


class VersionedSnapshot(BaseModel):
    """A stored snapshot plus the row version it was read at (0 = nothing stored)."""
    snapshot: Snapshot
    version: int = 0


# --- Diff entries ---

class DiffEntry(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class NewListing(DiffEntry):
    item_id: str
    seller: str
    title: str
    price: Optional[JsonNumber] = None
    url: Optional[str] = None


class RemovedListing(DiffEntry):
    item_id: str
    seller: str
    title: str
    price: Optional[JsonNumber] = None


class PriceChange(DiffEntry):
    item_id: str
    seller: str
    title: str
    old_price: Optional[JsonNumber] = None
    new_price: Optional[JsonNumber] = None
    change: Optional[JsonNumber] = None
    percent_change: str
    url: Optional[str] = None


class TitleChange(DiffEntry):
    item_id: str
    seller: str
    old_title: str
    new_title: str
    url: Optional[str] = None


class ImageChange(DiffEntry):
    item_id: str
    seller: str
    title: str
    old_image: Optional[str] = None
    new_image: Optional[str] = None
    url: Optional[str] = None


class RatingChange(DiffEntry):
    seller: str
    old_rating: Optional[JsonNumber] = None
    new_rating: Optional[JsonNumber] = None
    change: Optional[str] = None


class DiffSummary(DiffEntry):
    """Categorized result of comparing two snapshots."""
    new_listings: List[NewListing] = []
    removed_listings: List[RemovedListing] = []
    price_changes: List[PriceChange] = []
    title_changes: List[TitleChange] = []
    image_changes: List[ImageChange] = []
    rating_changes: List[RatingChange] = []

    @computed_field(alias="hasChanges")
    @property
    def has_changes(self) -> bool:
        return any((
            self.new_listings, self.removed_listings, self.price_changes,
            self.title_changes, self.image_changes, self.rating_changes,
        ))


class ChangeCounts(CamelModel):
    """Per-category counts stored in a history row."""
    has_changes: bool
    total_changes: int
    price_changes: int
    new_listings: int
    removed_listings: int
    title_changes: int
    image_changes: int
    rating_changes: int


# --- Monitoring stats and reports ---

class RecentStats(CamelModel):
    total_changes: int = 0
    price_changes: int = 0
    new_listings: int = 0
    removed_listings: int = 0


class MonitoringStats(CamelModel):
    monitoring_days: int = 0
    total_checks: int = 1
    recent_stats: RecentStats = Field(default_factory=RecentStats)
    last_check_time: Optional[str] = None


class DeliveryResult(CamelModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class CollaboratorResult(CamelModel):
    """Outcome of one best-effort collaborator call within a cycle."""
    name: str
    ok: bool
    error: Optional[str] = None
    detail: dict = {}


class CycleReport(CamelModel):
    success: bool
    timestamp: str
    has_changes: bool = False
    changes: Optional[DiffSummary] = None
    total_listings: int = 0
    sellers: List[str] = []
    monitored_metrics: List[str] = ["price", "listing", "title", "image", "rating"]
    collaborators: List[CollaboratorResult] = []
    error: Optional[str] = None


class SearchResponse(CamelModel):
    query: str
    total: int
    listings: List[ListingRecord] = []
