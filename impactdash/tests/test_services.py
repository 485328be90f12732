"""Tests for filtering, the impact overview and the client-store operations."""
from __future__ import annotations

from datetime import UTC, datetime

import pytest

from impactdash import services
from impactdash.storage import (
    INITIATIVES_STORAGE_KEY,
    USER_NOTIFICATIONS_KEY,
    MemoryStore,
    get_from_storage,
)

COMPANY = "Virgin Company"
TITLE = "Initiaitive"


@pytest.fixture()
def items() -> list[dict]:
    return [
        {"uid": "challenge-1", COMPANY: "Virgin Atlantic", TITLE: "Sustainable Aviation Fuel",
         "Challenge": "Aviation emissions", "theme": "Climate Action", "region": "Global",
         "phase": "Active", "impactScore": 88, "lastUpdated": "2024-05-02",
         "metrics": {"peopleImpacted": 12000}},
        {"uid": "challenge-2", COMPANY: "Virgin Media O2", TITLE: "Community Calling",
         "Challenge": "Digital exclusion and smartphones", "theme": "Digital Inclusion",
         "region": "Europe", "phase": "Implementation", "impactScore": 75,
         "lastUpdated": "2024-06-18", "metrics": {"peopleImpacted": 30000}},
        {"uid": "challenge-3", COMPANY: "Virgin Unite", TITLE: "Ocean Unite",
         "Challenge": "Ocean protection", "theme": "Environmental Sustainability",
         "region": "Global", "phase": "Planning", "impactScore": 64},
        {"uid": "challenge-4", COMPANY: "Virgin Unite", TITLE: "b-corp network",
         "Challenge": "Business as a force for good", "theme": "Climate Action",
         "region": "Europe", "phase": "Active", "impactScore": "n/a",
         "lastUpdated": "2024-01-10T08:00:00Z", "metrics": {"peopleImpacted": "many"}},
    ]


def _uids(rows):
    return [r["uid"] for r in rows]


# ---------------------------------------------------------------------------
# filter_and_sort
# ---------------------------------------------------------------------------


class TestFilterAndSort:
    def test_all_is_unconstrained(self, items):
        out = services.filter_and_sort(items, theme="All", region="all", phase="", company=None,
                                       sort_by="none")
        assert _uids(out) == _uids(items)

    def test_search_is_case_insensitive(self, items):
        out = services.filter_and_sort(items, search="SMARTPHONE")
        assert _uids(out) == ["challenge-2"]

    def test_search_matches_company_and_theme(self, items):
        assert _uids(services.filter_and_sort(items, search="unite", sort_by="none")) == [
            "challenge-3", "challenge-4",
        ]
        assert _uids(services.filter_and_sort(items, search="digital", sort_by="none")) == [
            "challenge-2",
        ]

    def test_blank_search_ignored(self, items):
        assert len(services.filter_and_sort(items, search="   ")) == 4

    def test_conjunction(self, items):
        out = services.filter_and_sort(items, theme="Climate Action", region="Europe")
        assert _uids(out) == ["challenge-4"]

    def test_filter_order_does_not_matter(self, items):
        a = services.filter_and_sort(
            services.filter_and_sort(items, theme="Climate Action", sort_by="none"),
            phase="Active", sort_by="none")
        b = services.filter_and_sort(
            services.filter_and_sort(items, phase="Active", sort_by="none"),
            theme="Climate Action", sort_by="none")
        assert _uids(a) == _uids(b) == ["challenge-1", "challenge-4"]

    def test_company_filter(self, items):
        out = services.filter_and_sort(items, company="Virgin Unite", sort_by="none")
        assert _uids(out) == ["challenge-3", "challenge-4"]

    def test_sort_recent_undated_last(self, items):
        out = services.filter_and_sort(items, sort_by="recent")
        assert _uids(out) == ["challenge-2", "challenge-1", "challenge-4", "challenge-3"]

    def test_sort_impact_treats_bad_values_as_zero(self, items):
        out = services.filter_and_sort(items, sort_by="impact")
        assert _uids(out) == ["challenge-1", "challenge-2", "challenge-3", "challenge-4"]

    def test_sort_alphabetical_ignores_case(self, items):
        out = services.filter_and_sort(items, sort_by="alphabetical")
        assert [r[TITLE] for r in out] == [
            "b-corp network", "Community Calling", "Ocean Unite", "Sustainable Aviation Fuel",
        ]

    def test_does_not_mutate_input(self, items):
        before = _uids(items)
        services.filter_and_sort(items, sort_by="impact")
        assert _uids(items) == before

    def test_empty(self):
        assert services.filter_and_sort([], search="x", theme="Education") == []


# ---------------------------------------------------------------------------
# Overview & options
# ---------------------------------------------------------------------------


class TestImpactOverview:
    def test_totals(self, items):
        out = services.compute_impact_overview(items)
        assert out["totalInitiatives"] == 4
        assert out["totalPeopleImpacted"] == 42000
        assert out["averageImpactScore"] == pytest.approx((88 + 75 + 64) / 4)
        assert out["activeInitiatives"] == 2

    def test_theme_breakdown(self, items):
        by_theme = services.compute_impact_overview(items)["initiativesByTheme"]
        assert by_theme[0] == {"theme": "Climate Action", "count": 2, "percentage": 50.0}
        assert len(by_theme) == 10
        counts = [row["count"] for row in by_theme]
        assert counts == sorted(counts, reverse=True)

    def test_empty(self):
        out = services.compute_impact_overview([])
        assert out["totalInitiatives"] == 0
        assert out["averageImpactScore"] == 0
        assert all(row["percentage"] == 0.0 for row in out["initiativesByTheme"])

    def test_active_status_counts(self):
        out = services.compute_impact_overview([{"uid": "x", "status": "active"}])
        assert out["activeInitiatives"] == 1


class TestFilterOptions:
    def test_distinct_values_led_by_all(self, items):
        opts = services.filter_options(items)
        assert opts["themes"] == [
            "All", "Climate Action", "Digital Inclusion", "Environmental Sustainability",
        ]
        assert opts["companies"] == ["All", "Virgin Atlantic", "Virgin Media O2", "Virgin Unite"]
        assert opts["regions"] == ["All", "Global", "Europe"]


# ---------------------------------------------------------------------------
# Initiatives cache
# ---------------------------------------------------------------------------


class TestInitiativeCache:
    def test_save_appends_then_replaces(self):
        store = MemoryStore()
        assert services.save_initiative(store, {"uid": "a", "v": 1})
        assert services.save_initiative(store, {"uid": "b", "v": 1})
        assert services.save_initiative(store, {"uid": "a", "v": 2})
        cached = services.get_cached_initiatives(store)
        assert cached == [{"uid": "a", "v": 2}, {"uid": "b", "v": 1}]

    def test_delete(self):
        store = MemoryStore()
        services.save_initiative(store, {"uid": "a"})
        assert services.delete_initiative(store, "a") is True
        assert get_from_storage(store, INITIATIVES_STORAGE_KEY, None) == []

    def test_delete_unknown(self):
        store = MemoryStore()
        services.save_initiative(store, {"uid": "a"})
        assert services.delete_initiative(store, "zzz") is False

    def test_no_store(self):
        assert services.get_cached_initiatives(None) == []
        assert services.save_initiative(None, {"uid": "a"}) is False


# ---------------------------------------------------------------------------
# Layout & preferences
# ---------------------------------------------------------------------------


class TestPreferences:
    def test_defaults(self):
        store = MemoryStore()
        assert services.get_user_preferences(store) == services.DEFAULT_USER_PREFERENCES
        layout = services.get_dashboard_layout(store)
        assert [w["id"] for w in layout["widgets"]] == [
            "recent-updates", "impact-score", "upcoming-milestones",
        ]

    def test_returned_default_is_independent(self):
        layout = services.get_dashboard_layout(None)
        layout["widgets"].clear()
        assert len(services.DEFAULT_DASHBOARD_LAYOUT["widgets"]) == 3

    def test_update_merges_known_fields(self):
        store = MemoryStore()
        prefs = services.update_user_preferences(
            store, {"sortBy": "impact", "theme": None, "bogus": 1},
        )
        assert prefs["sortBy"] == "impact"
        assert prefs["theme"] == "All"
        assert "bogus" not in prefs
        assert services.get_user_preferences(store)["sortBy"] == "impact"

    def test_layout_round_trip(self):
        store = MemoryStore()
        layout = {"widgets": [], "pinnedInitiatives": ["challenge-1"]}
        assert services.save_dashboard_layout(store, layout)
        assert services.get_dashboard_layout(store) == layout


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class TestNotifications:
    def _seed(self, store):
        for n in range(3):
            services.save_user_notification(
                store, {"id": f"n{n}", "title": "t", "message": "m", "read": False},
            )

    def test_mark_one_read(self):
        store = MemoryStore()
        self._seed(store)
        assert services.mark_notification_as_read(store, "n1") is True
        notes = services.get_user_notifications(store)
        assert [n["read"] for n in notes] == [False, True, False]
        assert services.unread_count(notes) == 2

    def test_mark_unknown(self):
        store = MemoryStore()
        self._seed(store)
        assert services.mark_notification_as_read(store, "nope") is False

    def test_mark_all(self):
        store = MemoryStore()
        self._seed(store)
        assert services.mark_all_notifications_as_read(store) is True
        assert services.unread_count(services.get_user_notifications(store)) == 0

    def test_mark_all_empty(self):
        store = MemoryStore()
        assert services.mark_all_notifications_as_read(store) is True
        assert store.get_item(USER_NOTIFICATIONS_KEY) is None


# ---------------------------------------------------------------------------
# Collaboration & metrics
# ---------------------------------------------------------------------------


class TestCollaboration:
    def test_add_comment_logs_activity(self):
        store = MemoryStore()
        now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        comment = {"id": "c1", "author": "Alex", "date": "2024-06-01", "content": "Great"}
        assert services.add_comment(store, "challenge-1", comment, now=now) is True
        data = services.get_collaboration_data(store)
        assert data["comments"]["challenge-1"] == [comment]
        entry = data["activityLog"][0]
        assert entry["id"] == f"activity-{int(now.timestamp() * 1000)}"
        assert entry["action"] == "commented"
        assert entry["targetType"] == "initiative"
        assert entry["targetId"] == "challenge-1"
        assert entry["details"] == {"commentId": "c1"}

    def test_comments_append(self):
        store = MemoryStore()
        services.add_comment(store, "x", {"id": "c1", "author": "a"})
        services.add_comment(store, "x", {"id": "c2", "author": "b"})
        data = services.get_collaboration_data(store)
        assert [c["id"] for c in data["comments"]["x"]] == ["c1", "c2"]
        assert len(data["activityLog"]) == 2

    def test_empty_default(self):
        assert services.get_collaboration_data(MemoryStore()) == services.EMPTY_COLLABORATION_DATA


class TestMetrics:
    def test_add_data_points(self):
        store = MemoryStore()
        services.add_metric_data_point(store, "challenge-1", "co2", {"date": "2024-01", "value": 1})
        services.add_metric_data_point(store, "challenge-1", "co2", {"date": "2024-02", "value": 2})
        services.add_metric_data_point(store, "challenge-2", "people", {"date": "2024-01", "value": 9})
        history = services.get_metrics_history(store)
        assert [p["value"] for p in history["challenge-1"]["co2"]] == [1, 2]
        assert history["challenge-2"]["people"][0]["value"] == 9

    def test_no_store(self):
        assert services.add_metric_data_point(None, "a", "b", {"value": 1}) is False
