"""Pydantic request/response schemas for the Impact Dashboard API.

Raw initiative records keep the key spelling of the challenges data file
(``"Virgin Company"``, ``"Initiaitive"``...); enhanced and client-store
payloads use camelCase on the wire.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Raw record keys as they appear in challenges.json
COMPANY_KEY = "Virgin Company"
TITLE_KEY = "Initiaitive"
CHALLENGE_KEY = "Challenge"
SOLUTION_KEY = "What Virgin is doing"
CALL_TO_ACTION_KEY = "Call to Action"
LINKS_KEY = "Links"
REWARD_KEY = "Reward"

PROJECT_STATUSES = ("planning", "implementation", "active", "completed", "evaluation")
PROJECT_PHASES = ("Planning", "Implementation", "Active", "Completed", "Evaluation")

THEMES = (
    "Environmental Sustainability",
    "Digital Inclusion",
    "Social Activism",
    "Community Support",
    "Climate Action",
    "Health & Wellbeing",
    "Education",
    "Economic Development",
    "Disaster Relief",
    "Space Innovation",
)

REGIONS = (
    "Global",
    "North America",
    "Europe",
    "Africa",
    "Asia",
    "Australia",
    "South America",
    "Middle East",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Initiatives
# ---------------------------------------------------------------------------


class InitiativeRecord(BaseModel):
    """A raw initiative as stored in the flat file or the client cache.

    Records are never validated on the way in, so raw fields pass through
    with whatever value they hold.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uid: Any = None
    company: Any = Field(None, alias=COMPANY_KEY)
    title: Any = Field(None, alias=TITLE_KEY)
    challenge: Any = Field(None, alias=CHALLENGE_KEY)
    solution: Any = Field(None, alias=SOLUTION_KEY)
    call_to_action: Any = Field(None, alias=CALL_TO_ACTION_KEY)
    links: Any = Field(None, alias=LINKS_KEY)
    theme: Any = None
    region: Any = None
    phase: Any = None
    impact_score: Any = Field(None, alias="impactScore")
    last_updated: Any = Field(None, alias="lastUpdated")


class TeamMember(_CamelModel):
    id: str
    name: str
    email: str
    role: str
    company: str
    avatar: str | None = None


class Milestone(_CamelModel):
    id: str
    title: str
    description: str
    due_date: str
    completed_date: str | None = None
    status: str
    owner: str | None = None


class ProjectUpdate(_CamelModel):
    id: str
    date: str
    author: str
    content: str
    likes: int = 0
    comments: list[dict[str, Any]] = []


class Resource(_CamelModel):
    id: str
    type: str
    title: str
    description: str | None = None
    url: str
    uploaded_by: str | None = None
    upload_date: str
    size: str | None = None


class StatusChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    from_status: str = Field(alias="from")
    to_status: str = Field(alias="to")
    changed_by: str = Field(alias="changedBy")


class BudgetBreakdown(BaseModel):
    category: str
    allocated: float
    spent: float


class BudgetData(_CamelModel):
    total_budget: float
    allocated: float
    spent: float
    currency: str
    last_updated: str
    breakdowns: list[BudgetBreakdown] = []


class ImpactReport(_CamelModel):
    id: str
    title: str
    date: str
    highlights: list[str] = []
    metrics: dict[str, Any] = {}
    methodology: str | None = None
    conclusions: str = ""
    recommendations: list[str] = []


class EnhancedInitiativeOut(InitiativeRecord):
    seed: int
    tags: list[str] = []
    summary: str = ""
    start_date: str = Field(alias="startDate")
    target_completion_date: str | None = Field(None, alias="targetCompletionDate")
    team_members: list[TeamMember] = Field([], alias="teamMembers")
    milestones: list[Milestone] = []
    updates: list[ProjectUpdate] = []
    resources: list[Resource] = []
    status: str
    status_history: list[StatusChange] = Field([], alias="statusHistory")
    budget_data: BudgetData | None = Field(None, alias="budgetData")
    impact_reports: list[ImpactReport] = Field([], alias="impactReports")


class InitiativeListResponse(BaseModel):
    items: list[EnhancedInitiativeOut]
    total: int
    source: str = ""
    error: str | None = None


class ChallengeCreate(_CamelModel):
    """Body of POST /api/challenges. Presence is checked by the handler."""
    virgin_company: str = ""
    initiative: str = ""
    challenge: str = ""
    what_virgin_is_doing: str = ""
    call_to_action: str = ""
    links: str = ""
    reward: str = ""
    theme: str | None = None
    region: str | None = None
    phase: str | None = None
    impact_score: float | None = None


class ThemeCount(BaseModel):
    theme: str
    count: int
    percentage: float


class ImpactOverviewOut(_CamelModel):
    total_initiatives: int
    initiatives_by_theme: list[ThemeCount]
    average_impact_score: float
    total_people_impacted: int
    active_initiatives: int


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(_CamelModel):
    email: str = ""
    password: str = ""
    user_type: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    position: str | None = None


# ---------------------------------------------------------------------------
# Client store payloads
# ---------------------------------------------------------------------------


class Widget(_CamelModel):
    id: str
    type: str
    position: dict[str, int]
    size: dict[str, int]
    title: str
    config: dict[str, Any] = {}


class DashboardLayout(_CamelModel):
    widgets: list[Widget] = []
    pinned_initiatives: list[str] = []
    visible_sections: list[str] = []
    section_order: list[str] = []


class NotificationSettings(_CamelModel):
    email: bool = True
    in_app: bool = True
    digest: str = "weekly"
    types: dict[str, bool] = {}


class UserPreferences(_CamelModel):
    theme: str = "All"
    region: str = "All"
    phase: str = "All"
    sort_by: str = "recent"
    view: str = "ProjectFeed"
    filters: dict[str, Any] = {}
    notification_settings: NotificationSettings = NotificationSettings()


class UserNotification(_CamelModel):
    id: str
    title: str
    message: str
    type: str = "system"
    initiative_id: str | None = None
    date: str
    read: bool = False
    action_url: str | None = None
    sender: str | None = None


class CommentIn(BaseModel):
    id: str
    author: str
    date: str
    content: str
    likes: int = 0


class CollaborationData(_CamelModel):
    comments: dict[str, list[dict[str, Any]]] = {}
    assignments: dict[str, list[str]] = {}
    shared_files: dict[str, list[dict[str, Any]]] = {}
    activity_log: list[dict[str, Any]] = []


class MetricDataPoint(BaseModel):
    date: str
    value: float
    notes: str | None = None
