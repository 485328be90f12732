"""Shared business logic for the Impact Dashboard API and MCP server."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import UTC, datetime
from typing import Any

from impactdash.schemas import CHALLENGE_KEY, COMPANY_KEY, THEMES, TITLE_KEY
from impactdash.storage import (
    COLLABORATION_DATA_KEY,
    DASHBOARD_LAYOUT_KEY,
    INITIATIVES_STORAGE_KEY,
    METRICS_HISTORY_KEY,
    USER_NOTIFICATIONS_KEY,
    USER_PREFERENCES_KEY,
    KeyValueStore,
    get_from_storage,
    set_to_storage,
)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_DASHBOARD_LAYOUT: dict[str, Any] = {
    "widgets": [
        {
            "id": "recent-updates", "type": "recentUpdates",
            "position": {"column": 0, "row": 0}, "size": {"width": 1, "height": 1},
            "title": "Recent Updates", "config": {"limit": 5},
        },
        {
            "id": "impact-score", "type": "impactScore",
            "position": {"column": 1, "row": 0}, "size": {"width": 1, "height": 1},
            "title": "Impact Score", "config": {"showTrend": True},
        },
        {
            "id": "upcoming-milestones", "type": "upcomingMilestones",
            "position": {"column": 0, "row": 1}, "size": {"width": 2, "height": 1},
            "title": "Upcoming Milestones", "config": {"days": 30},
        },
    ],
    "pinnedInitiatives": [],
    "visibleSections": ["projectFeed", "projectCatalog", "impactOverview", "analytics", "collaboration"],
    "sectionOrder": ["projectFeed", "projectCatalog", "impactOverview", "analytics", "collaboration"],
}

DEFAULT_USER_PREFERENCES: dict[str, Any] = {
    "theme": "All",
    "region": "All",
    "phase": "All",
    "sortBy": "recent",
    "view": "ProjectFeed",
    "filters": {},
    "notificationSettings": {
        "email": True,
        "inApp": True,
        "digest": "weekly",
        "types": {"milestones": True, "updates": True, "mentions": True, "system": True},
    },
}

EMPTY_COLLABORATION_DATA: dict[str, Any] = {
    "comments": {},
    "assignments": {},
    "sharedFiles": {},
    "activityLog": [],
}

SORT_KEYS = ("recent", "impact", "alphabetical")

_ALL = "all"

# ---------------------------------------------------------------------------
# Filtering and sorting
# ---------------------------------------------------------------------------


def _unconstrained(value: str | None) -> bool:
    return not value or value.strip().casefold() == _ALL


def _timestamp(value: Any) -> float | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def _impact(item: dict) -> float:
    try:
        return float(item.get("impactScore") or 0)
    except (TypeError, ValueError):
        return 0.0


def matches_search(item: dict, search: str) -> bool:
    q = search.casefold()
    return any(
        q in str(item.get(field) or "").casefold()
        for field in (TITLE_KEY, COMPANY_KEY, CHALLENGE_KEY, "theme")
    )


def filter_and_sort(
    items: list[dict], *, search=None, theme=None, region=None, phase=None,
    company=None, sort_by="recent",
) -> list[dict]:
    """Conjunction of the given criteria, then ordered by *sort_by*.

    ``None``, ``""`` and ``"All"`` leave a criterion unconstrained.  Unknown
    sort keys keep the input order.
    """
    if search and search.strip():
        items = [i for i in items if matches_search(i, search.strip())]
    for field, wanted in (("theme", theme), ("region", region), ("phase", phase),
                          (COMPANY_KEY, company)):
        if not _unconstrained(wanted):
            items = [i for i in items if i.get(field) == wanted]

    if sort_by == "recent":
        # Newest first; undated records keep their relative order at the end
        dated = [(ts, i) for i in items if (ts := _timestamp(i.get("lastUpdated"))) is not None]
        undated = [i for i in items if _timestamp(i.get("lastUpdated")) is None]
        dated.sort(key=lambda pair: pair[0], reverse=True)
        return [i for _, i in dated] + undated
    if sort_by == "impact":
        return sorted(items, key=_impact, reverse=True)
    if sort_by == "alphabetical":
        return sorted(items, key=lambda i: str(i.get(TITLE_KEY) or "").casefold())
    return list(items)


def compute_impact_overview(items: list[dict]) -> dict:
    total = len(items)
    theme_counts: Counter[str] = Counter(i["theme"] for i in items if isinstance(i.get("theme"), str))
    by_theme = [
        {"theme": t, "count": theme_counts[t],
         "percentage": (theme_counts[t] / total) * 100 if total else 0.0}
        for t in THEMES
    ]
    by_theme.sort(key=lambda row: row["count"], reverse=True)
    people = 0
    for i in items:
        value = (i.get("metrics") or {}).get("peopleImpacted")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            people += value
    active = sum(1 for i in items if i.get("status") == "active" or i.get("phase") == "Active")
    return {
        "totalInitiatives": total,
        "initiativesByTheme": by_theme,
        "averageImpactScore": sum(_impact(i) for i in items) / (total or 1),
        "totalPeopleImpacted": int(people),
        "activeInitiatives": active,
    }


def filter_options(items: list[dict]) -> dict[str, list[str]]:
    """Distinct theme/company/region values, each list led by ``"All"``."""
    def distinct(field: str) -> list[str]:
        seen: list[str] = []
        for i in items:
            v = i.get(field)
            if v and v not in seen:
                seen.append(v)
        return ["All", *seen]

    return {"themes": distinct("theme"), "companies": distinct(COMPANY_KEY),
            "regions": distinct("region")}


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


def apply_updates(target: dict, updates: dict[str, Any], fields: tuple[str, ...]) -> dict:
    """Copy non-None values for *fields* from updates onto target."""
    for field in fields:
        val = updates.get(field)
        if val is not None:
            target[field] = val
    return target


# ---------------------------------------------------------------------------
# Initiatives cache
# ---------------------------------------------------------------------------


def get_cached_initiatives(store: KeyValueStore | None) -> list[dict]:
    return get_from_storage(store, INITIATIVES_STORAGE_KEY, [])


def save_initiative(store: KeyValueStore | None, initiative: dict) -> bool:
    """Insert or replace (by uid) an initiative in the cache bucket."""
    initiatives = get_cached_initiatives(store)
    for idx, existing in enumerate(initiatives):
        if existing.get("uid") == initiative.get("uid"):
            initiatives[idx] = initiative
            break
    else:
        initiatives.append(initiative)
    return set_to_storage(store, INITIATIVES_STORAGE_KEY, initiatives)


def delete_initiative(store: KeyValueStore | None, uid: str) -> bool:
    initiatives = get_cached_initiatives(store)
    remaining = [i for i in initiatives if i.get("uid") != uid]
    if len(remaining) == len(initiatives):
        return False
    return set_to_storage(store, INITIATIVES_STORAGE_KEY, remaining)


# ---------------------------------------------------------------------------
# Layout & preferences
# ---------------------------------------------------------------------------


def get_dashboard_layout(store: KeyValueStore | None) -> dict:
    return get_from_storage(store, DASHBOARD_LAYOUT_KEY, DEFAULT_DASHBOARD_LAYOUT)


def save_dashboard_layout(store: KeyValueStore | None, layout: dict) -> bool:
    return set_to_storage(store, DASHBOARD_LAYOUT_KEY, layout)


PREFERENCE_FIELDS = ("theme", "region", "phase", "sortBy", "view", "filters", "notificationSettings")


def get_user_preferences(store: KeyValueStore | None) -> dict:
    return get_from_storage(store, USER_PREFERENCES_KEY, DEFAULT_USER_PREFERENCES)


def save_user_preferences(store: KeyValueStore | None, preferences: dict) -> bool:
    return set_to_storage(store, USER_PREFERENCES_KEY, preferences)


def update_user_preferences(store: KeyValueStore | None, updates: dict[str, Any]) -> dict:
    """Merge non-None *updates* into the stored preferences and save them."""
    prefs = apply_updates(get_user_preferences(store), updates, PREFERENCE_FIELDS)
    save_user_preferences(store, prefs)
    return prefs


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def get_user_notifications(store: KeyValueStore | None) -> list[dict]:
    return get_from_storage(store, USER_NOTIFICATIONS_KEY, [])


def save_user_notification(store: KeyValueStore | None, notification: dict) -> bool:
    notifications = get_user_notifications(store)
    notifications.append(notification)
    return set_to_storage(store, USER_NOTIFICATIONS_KEY, notifications)


def mark_notification_as_read(store: KeyValueStore | None, notification_id: str) -> bool:
    notifications = get_user_notifications(store)
    target = next((n for n in notifications if n.get("id") == notification_id), None)
    if target is None:
        return False
    target["read"] = True
    return set_to_storage(store, USER_NOTIFICATIONS_KEY, notifications)


def mark_all_notifications_as_read(store: KeyValueStore | None) -> bool:
    notifications = get_user_notifications(store)
    if not notifications:
        return True
    return set_to_storage(
        store, USER_NOTIFICATIONS_KEY, [{**n, "read": True} for n in notifications],
    )


def unread_count(notifications: list[dict]) -> int:
    return sum(1 for n in notifications if not n.get("read"))


# ---------------------------------------------------------------------------
# Collaboration
# ---------------------------------------------------------------------------


def get_collaboration_data(store: KeyValueStore | None) -> dict:
    return get_from_storage(store, COLLABORATION_DATA_KEY, EMPTY_COLLABORATION_DATA)


def save_collaboration_data(store: KeyValueStore | None, data: dict) -> bool:
    return set_to_storage(store, COLLABORATION_DATA_KEY, data)


def add_comment(
    store: KeyValueStore | None, initiative_id: str, comment: dict, now: datetime | None = None,
) -> bool:
    """Append a comment and a matching ``commented`` activity-log entry."""
    now = now or datetime.now(UTC)
    data = get_collaboration_data(store)
    data.setdefault("comments", {}).setdefault(initiative_id, []).append(comment)
    data.setdefault("activityLog", []).append({
        "id": f"activity-{int(now.timestamp() * 1000)}",
        "date": now.isoformat(),
        "userId": comment.get("author"),
        "userName": comment.get("author"),
        "action": "commented",
        "targetType": "initiative",
        "targetId": initiative_id,
        "details": {"commentId": comment.get("id")},
    })
    return save_collaboration_data(store, data)


# ---------------------------------------------------------------------------
# Metrics history
# ---------------------------------------------------------------------------


def get_metrics_history(store: KeyValueStore | None) -> dict:
    return get_from_storage(store, METRICS_HISTORY_KEY, {})


def save_metrics_history(store: KeyValueStore | None, data: dict) -> bool:
    return set_to_storage(store, METRICS_HISTORY_KEY, data)


def add_metric_data_point(
    store: KeyValueStore | None, initiative_id: str, metric_name: str, data_point: dict,
) -> bool:
    history = get_metrics_history(store)
    history.setdefault(initiative_id, {}).setdefault(metric_name, []).append(data_point)
    return save_metrics_history(store, history)
