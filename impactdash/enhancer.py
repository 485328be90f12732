"""Deterministic enhancement of raw initiative records.

Every raw record is projected into an *enhanced* record carrying synthetic
but reproducible operational metadata: team members, milestones, updates,
resources, impact reports, a lifecycle status and a budget.

All variation is derived from a per-record integer seed:

- ``checksum`` (default): first 32 bits of the SHA-1 digest of the uid,
  so ids sharing a trailing character do not collide.
- ``last_char``: code point of the uid's last character, matching the
  demo data shipped with the first dashboard release.

Dates are offset from a reference ``now`` which defaults to the start of the
current UTC day, so two calls on the same day yield identical output.  The
functions here never touch storage or the network.
"""
from __future__ import annotations

import hashlib
from datetime import UTC, datetime, timedelta
from typing import Any, Iterable
from urllib.parse import urlparse

from impactdash.schemas import (
    CHALLENGE_KEY,
    COMPANY_KEY,
    LINKS_KEY,
    PROJECT_STATUSES,
    TITLE_KEY,
)

MILESTONE_TITLES = (
    "Project Initiation",
    "Research Phase",
    "Implementation",
    "Stakeholder Review",
    "Final Deployment",
)
SUPPORT_ROLES = ("Analyst", "Coordinator", "Specialist")
RESOURCE_TYPES = ("document", "image", "link")

_SUMMARY_LIMIT = 120
_MEMBER_DOMAIN = "virgingroup.com"


# ---------------------------------------------------------------------------
# Seed & helpers
# ---------------------------------------------------------------------------


def initiative_seed(uid: str, strategy: str = "checksum") -> int:
    """Return the integer seed for an initiative id."""
    uid = uid or ""
    if strategy == "last_char":
        return ord(uid[-1]) if uid else 0
    digest = hashlib.sha1(uid.encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


def reference_now() -> datetime:
    """Start of the current UTC day."""
    return datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)


def _iso(value: datetime) -> str:
    return value.isoformat()


def link_hostnames(links: Any) -> list[str]:
    """Hostnames of the newline-separated absolute URLs in *links*."""
    if not isinstance(links, str):
        return []
    hosts = []
    for line in links.split("\n"):
        parsed = urlparse(line.strip())
        if parsed.scheme and parsed.hostname:
            hosts.append(parsed.hostname)
    return hosts


def _text(value: Any) -> str:
    """Display string for a raw field; None becomes empty."""
    if value is None:
        return ""
    return str(value)


def summarize(text: Any) -> str:
    text = _text(text)
    if len(text) > _SUMMARY_LIMIT:
        return f"{text[:_SUMMARY_LIMIT - 3]}..."
    return text


# ---------------------------------------------------------------------------
# Sub-entity builders
# ---------------------------------------------------------------------------


def _team_members(seed: int, company: str) -> list[dict]:
    size = seed % 4 + 1
    return [
        {
            "id": f"member-{seed + i}",
            "name": f"Team Member {i + 1}",
            "email": f"member{i + 1}@{_MEMBER_DOMAIN}",
            "role": "Project Lead" if i == 0 else SUPPORT_ROLES[i % 3],
            "company": company,
            "avatar": f"/images/avatar{(seed + i) % 5}.jpg",
        }
        for i in range(size)
    ]


def _milestones(seed: int, uid: str, title: str, start: datetime, now: datetime,
                team: list[dict]) -> list[dict]:
    out = []
    soon = now + timedelta(days=7)
    for i in range(seed % 3 + 2):
        due = start + timedelta(days=(i + 1) * 30)
        completed = due < now
        if completed:
            status = "completed"
        elif due < soon:
            status = "in-progress"
        else:
            status = "pending"
        out.append({
            "id": f"milestone-{uid}-{i}",
            "title": MILESTONE_TITLES[i % len(MILESTONE_TITLES)],
            "description": f"Milestone {i + 1} for {title}",
            "dueDate": _iso(due),
            "completedDate": _iso(due - timedelta(days=seed % 10)) if completed else None,
            "status": status,
            "owner": team[i % len(team)]["id"],
        })
    return out


def _updates(seed: int, uid: str, title: str, start: datetime, team: list[dict]) -> list[dict]:
    messages = (
        f"Progress update on {title}: We've completed the initial assessment phase.",
        f"Key stakeholders have reviewed and approved the next phase of {title}.",
        f"Implementation is now underway for {title}, focusing on sustainability metrics.",
        f"The team has successfully addressed technical challenges in the {title} project.",
    )
    return [
        {
            "id": f"update-{uid}-{i}",
            "date": _iso(start + timedelta(days=(i + 1) * 15)),
            "author": team[i % len(team)]["name"],
            "content": messages[i % 4],
            "likes": (seed + i) % 15,
            "comments": [],
        }
        for i in range(seed % 4 + 1)
    ]


def _resources(seed: int, uid: str, title: str, start: datetime, team: list[dict]) -> list[dict]:
    titles = (
        f"{title} Project Plan",
        "Sustainability Impact Report",
        "Technical Implementation Guide",
        "Stakeholder Presentation",
    )
    return [
        {
            "id": f"resource-{uid}-{i}",
            "type": RESOURCE_TYPES[i % 3],
            "title": titles[i % 4],
            "description": f"Resource {i + 1} for {title}",
            "url": f"https://example.com/resources/{uid}-doc{i}",
            "uploadedBy": team[i % len(team)]["name"],
            "uploadDate": _iso(start + timedelta(days=(i + 1) * 7)),
            "size": f"{(seed + i) % 10 + 1}MB",
        }
        for i in range(seed % 3 + 1)
    ]


def _impact_reports(seed: int, uid: str, title: str, start: datetime) -> list[dict]:
    reports = []
    for i in range(seed % 3):
        k = seed + i
        reports.append({
            "id": f"report-{uid}-{i}",
            "title": f"Impact Assessment {i + 1} for {title}",
            "date": _iso(start + timedelta(days=(i + 1) * 60)),
            "highlights": [
                f"Reduced carbon emissions by {k % 50 + 10}%",
                f"Engaged with {k % 1000 + 500} stakeholders",
                f"Implemented {k % 5 + 2} new sustainability practices",
            ],
            "metrics": {
                "carbonReduction": f"{k % 500 + 100} tons",
                "peopleImpacted": k % 10000 + 1000,
                "investmentReturn": f"{k % 20 + 5}%",
            },
            "methodology": (
                "Quantitative and qualitative assessment through stakeholder "
                "interviews and data analysis"
            ),
            "conclusions": (
                "Project has shown significant positive impact across key "
                "sustainability metrics"
            ),
            "recommendations": [
                "Expand program to additional regions",
                "Increase stakeholder engagement",
                "Implement additional metrics tracking",
            ],
        })
    return reports


def _budget(seed: int, now: datetime) -> dict:
    unit = seed % 10 + 1
    return {
        "totalBudget": unit * 10000,
        "allocated": unit * 8000,
        "spent": unit * 5000,
        "currency": "USD",
        "lastUpdated": _iso(now - timedelta(days=seed % 10)),
        "breakdowns": [
            {"category": "Research", "allocated": unit * 3000, "spent": unit * 2500},
            {"category": "Implementation", "allocated": unit * 5000, "spent": unit * 2500},
        ],
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def enhance_initiative(
    initiative: dict[str, Any], now: datetime | None = None, seed_strategy: str = "checksum",
) -> dict[str, Any]:
    """Project one raw record into its enhanced form. The input is not modified."""
    if now is None:
        now = reference_now()
    uid = str(initiative.get("uid") or "")
    title = _text(initiative.get(TITLE_KEY))
    company = _text(initiative.get(COMPANY_KEY))
    seed = initiative_seed(uid, seed_strategy)

    tags = [_text(v) for v in (initiative.get("theme"), initiative.get("region")) if v]
    tags.extend(link_hostnames(initiative.get(LINKS_KEY)))

    start_offset = (seed * 17) % 365
    start = now - timedelta(days=start_offset)
    end = now + timedelta(days=start_offset + (seed * 31) % 180)

    team = _team_members(seed, company)
    status = PROJECT_STATUSES[seed % len(PROJECT_STATUSES)]

    return {
        **initiative,
        "seed": seed,
        "tags": tags,
        "summary": summarize(initiative.get(CHALLENGE_KEY)),
        "startDate": _iso(start),
        "targetCompletionDate": _iso(end),
        "teamMembers": team,
        "milestones": _milestones(seed, uid, title, start, now, team),
        "updates": _updates(seed, uid, title, start, team),
        "resources": _resources(seed, uid, title, start, team),
        "status": status,
        "statusHistory": [
            {
                "date": _iso(start - timedelta(days=30)),
                "from": "planning",
                "to": "implementation",
                "changedBy": team[0]["name"],
            },
            {
                "date": _iso(start),
                "from": "implementation",
                "to": status,
                "changedBy": team[seed % len(team)]["name"],
            },
        ],
        "budgetData": _budget(seed, now),
        "impactReports": _impact_reports(seed, uid, title, start),
    }


def enhance_initiatives(
    initiatives: Iterable[dict[str, Any]], now: datetime | None = None,
    seed_strategy: str = "checksum",
) -> list[dict[str, Any]]:
    """Enhance every record, preserving order. One reference time is used for the batch."""
    if now is None:
        now = reference_now()
    return [enhance_initiative(i, now, seed_strategy) for i in initiatives]
