"""Historical statistics over stored monitoring runs.

Aggregates the change history into totals and derives milestone
achievements for the stats endpoint.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from src.storage.snapshot_store import monitoring_days_since, parse_timestamp

MAX_ACHIEVEMENTS = 4

DAY_MILESTONES = [
    (1, "Monitoring started", 0),
    (7, "7 days of continuous monitoring", 7),
    (30, "30 days of continuous monitoring", 30),
]
CHECKS_MILESTONE = 100
CHANGES_MILESTONE = 50


def _empty_stats() -> dict:
    return {
        "monitoring_days": 0,
        "total_checks": 0,
        "total_changes": 0,
        "total_price_changes": 0,
        "total_new_listings": 0,
        "total_removed_listings": 0,
    }


def default_history_stats(now: datetime, note: Optional[str] = None) -> dict:
    """Response used when the store is unavailable."""
    result = {
        "success": True,
        "stats": _empty_stats(),
        "achievements": [],
        "history": [],
        "last_update": now.isoformat(),
    }
    if note:
        result["note"] = note
    return result


def build_achievements(meta: Optional[dict], stats: dict, now: datetime) -> List[dict]:
    achievements = []
    days = stats["monitoring_days"]

    if meta and meta.get("start_date"):
        start = parse_timestamp(meta["start_date"])
        for threshold, title, offset in DAY_MILESTONES:
            if days >= threshold:
                achievements.append({
                    "title": title,
                    "date": (start + timedelta(days=offset)).date().isoformat(),
                    "type": "milestone",
                })

    if stats["total_checks"] >= CHECKS_MILESTONE:
        achievements.append({
            "title": f"{CHECKS_MILESTONE}+ checks completed",
            "date": now.date().isoformat(),
            "type": "achievement",
        })
    if stats["total_changes"] >= CHANGES_MILESTONE:
        achievements.append({
            "title": f"{CHANGES_MILESTONE}+ listing changes detected",
            "date": now.date().isoformat(),
            "type": "achievement",
        })

    return achievements[:MAX_ACHIEVEMENTS]


def summarize_history(meta: Optional[dict], history: List[dict], now: datetime) -> dict:
    """Totals over the given history rows plus run metadata."""
    stats = _empty_stats()

    if meta:
        stats["monitoring_days"] = monitoring_days_since(meta["start_date"], now)
        stats["total_checks"] = meta.get("total_checks") or 0

    for record in history:
        summary = record.get("changes_summary") or {}
        stats["total_changes"] += summary.get("totalChanges", 0)
        stats["total_price_changes"] += summary.get("priceChanges", 0)
        stats["total_new_listings"] += summary.get("newListings", 0)
        stats["total_removed_listings"] += summary.get("removedListings", 0)

    return {
        "success": True,
        "stats": stats,
        "achievements": build_achievements(meta, stats, now),
        "history": history,
        "last_update": now.isoformat(),
    }
