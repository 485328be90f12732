from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from impactdash import config, services
from impactdash.enhancer import MILESTONE_TITLES
from impactdash.repository import FileInitiativeSource, HttpInitiativeSource, InitiativeRepository
from impactdash.schemas import PROJECT_PHASES, PROJECT_STATUSES, REGIONS, THEMES

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def dashboard_lifespan(server: FastMCP) -> AsyncIterator[None]:
    log.info("Serving initiatives from %s", config.initiatives_url() or config.challenges_path())
    yield


mcp = FastMCP(
    "Impact Dashboard",
    instructions=(
        "The Impact Dashboard tracks corporate sustainability and social-impact "
        "initiatives. Start with get_impact_overview() for totals, then "
        "list_initiatives() to browse, then get_initiative(uid) for the full "
        "enhanced record with team, milestones, updates, and budget."
    ),
    lifespan=dashboard_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _repository() -> InitiativeRepository:
    url = config.initiatives_url()
    source = (HttpInitiativeSource(url, timeout=config.http_timeout()) if url
              else FileInitiativeSource(config.challenges_path()))
    return InitiativeRepository(source, seed_strategy=config.seed_strategy())


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("impactdash://overview")
def dashboard_overview() -> str:
    """Overview of the dashboard: data model and fixed vocabularies."""
    return json.dumps({
        "system": "Impact Dashboard",
        "data_model": {
            "initiative": "Raw record from the challenges file: company, title, challenge, solution, call to action, links.",
            "enhanced_initiative": "Initiative plus deterministic team, milestones, updates, resources, impact reports, status, and budget.",
        },
        "themes": list(THEMES),
        "regions": list(REGIONS),
        "phases": list(PROJECT_PHASES),
        "statuses": list(PROJECT_STATUSES),
        "milestone_titles": list(MILESTONE_TITLES),
        "sort_by": list(services.SORT_KEYS),
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def list_initiatives(
    search: str | None = None, theme: str | None = None, region: str | None = None,
    phase: str | None = None, company: str | None = None, sort_by: str = "recent",
    limit: int = 50,
) -> list[dict]:
    """List and filter enhanced initiatives.

    Args:
        search: Free-text search across title, company, challenge, and theme.
        theme: Exact theme name, or "All".
        region: Exact region name, or "All".
        phase: Planning, Implementation, Active, Completed, Evaluation, or "All".
        company: Exact sponsoring company, or "All".
        sort_by: recent, impact, or alphabetical.
        limit: Max results (default 50, max 500).
    """
    result = await _repository().load_enhanced()
    items = services.filter_and_sort(
        result.value, search=search, theme=theme, region=region, phase=phase,
        company=company, sort_by=sort_by,
    )
    return items[:max(1, min(limit, 500))]


@mcp.tool()
async def get_initiative(uid: str) -> dict:
    """Get the full enhanced record for one initiative."""
    result = await _repository().get_initiative_by_id(uid)
    if not result.ok:
        return {"error": f"Could not load initiatives: {result.error}"}
    if result.value is None:
        return {"error": f"Initiative {uid} not found"}
    return result.value


@mcp.tool()
async def get_impact_overview() -> dict:
    """Totals, per-theme breakdown, average impact score, and people impacted."""
    result = await _repository().load_enhanced()
    return services.compute_impact_overview(result.value)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Impact Dashboard MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
