from __future__ import annotations

import logging
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Generator

from fastapi import Body, Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from impactdash import config, flatfile, services
from impactdash.db import init_db, session_generator, validate_client_id
from impactdash.importer import import_xlsx
from impactdash.repository import (
    FileInitiativeSource,
    HttpInitiativeSource,
    InitiativeRepository,
    InitiativeSource,
)
from impactdash.schemas import (
    ChallengeCreate,
    CollaborationData,
    CommentIn,
    DashboardLayout,
    EnhancedInitiativeOut,
    ImpactOverviewOut,
    InitiativeListResponse,
    MetricDataPoint,
    UserCreate,
    UserNotification,
    UserPreferences,
)
from impactdash.storage import SqlStore, clear_storage

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Impact Dashboard",
    version="0.1.0",
    description=(
        "Corporate initiatives dashboard API. Browse, create, and track "
        "sustainability and social-impact initiatives across business units. "
        "Per-client dashboard state lives under /api/clients/{client_id}."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Initiatives", "description": "Enhanced initiatives with filtering and sorting."},
        {"name": "Challenges", "description": "Raw initiative records in the challenges file."},
        {"name": "Users", "description": "User records from the users file."},
        {"name": "Client Store", "description": "Per-client key-value state (cache, layout, preferences...)."},
        {"name": "Stats", "description": "Aggregate impact overview."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def initiative_source() -> InitiativeSource:
    url = config.initiatives_url()
    if url:
        return HttpInitiativeSource(url, timeout=config.http_timeout())
    return FileInitiativeSource(config.challenges_path())


def client_store(client_id: str, session: Session = Depends(db_session)) -> SqlStore:
    try:
        client_id = validate_client_id(client_id)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return SqlStore(session, client_id)


def optional_client_store(
    client_id: str | None = Query(None, description="Use this client's initiatives cache"),
    session: Session = Depends(db_session),
) -> SqlStore | None:
    if client_id is None:
        return None
    return client_store(client_id, session)


def repository(
    store: SqlStore | None = Depends(optional_client_store),
    source: InitiativeSource = Depends(initiative_source),
) -> InitiativeRepository:
    return InitiativeRepository(source, store, seed_strategy=config.seed_strategy())


def _envelope(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"success": status_code < 400, "message": message, **extra},
                        status_code=status_code)


def _saved(ok: bool, **extra: Any) -> dict | JSONResponse:
    if not ok:
        return _envelope(500, "Failed to save to client store")
    return {"success": True, **extra}


# ---------------------------------------------------------------------------
# Routes: Initiatives
# ---------------------------------------------------------------------------


@app.get("/api/initiatives", response_model=InitiativeListResponse,
         tags=["Initiatives"], summary="List enhanced initiatives with filtering and sorting")
async def list_initiatives(
    search: str | None = Query(None, description="Free-text search across title, company, challenge, and theme"),
    theme: str | None = Query(None, description="Exact theme, or 'All'"),
    region: str | None = Query(None, description="Exact region, or 'All'"),
    phase: str | None = Query(None, description="Exact phase, or 'All'"),
    company: str | None = Query(None, description="Exact sponsoring company, or 'All'"),
    sort_by: str = Query("recent", description="recent, impact, or alphabetical"),
    repo: InitiativeRepository = Depends(repository),
):
    result = await repo.load_enhanced()
    items = services.filter_and_sort(
        result.value, search=search, theme=theme, region=region, phase=phase,
        company=company, sort_by=sort_by,
    )
    return {"items": items, "total": len(items), "source": result.source, "error": result.error}


@app.get("/api/initiatives/options", tags=["Initiatives"],
         summary="Distinct theme, company, and region values for filter menus")
async def initiative_options(repo: InitiativeRepository = Depends(repository)):
    result = await repo.load_initiatives()
    return services.filter_options(result.value)


@app.get("/api/initiatives/{uid}", response_model=EnhancedInitiativeOut,
         tags=["Initiatives"], summary="Get one enhanced initiative")
async def get_initiative(uid: str, repo: InitiativeRepository = Depends(repository)):
    result = await repo.get_initiative_by_id(uid)
    if not result.ok:
        raise HTTPException(500, "Error loading initiatives")
    if result.value is None:
        raise HTTPException(404, "Initiative not found")
    return result.value


@app.get("/api/stats", response_model=ImpactOverviewOut,
         tags=["Stats"], summary="Impact overview across all initiatives")
async def get_stats(repo: InitiativeRepository = Depends(repository)):
    result = await repo.load_enhanced()
    return services.compute_impact_overview(result.value)


# ---------------------------------------------------------------------------
# Routes: Challenges (flat file)
# ---------------------------------------------------------------------------


@app.get("/api/challenges", tags=["Challenges"], summary="Raw records from the challenges file")
async def list_challenges():
    try:
        return flatfile.read_challenges(config.challenges_path())
    except Exception as exc:
        log.error("Error reading challenges: %s", exc)
        return _envelope(500, "Error reading challenges")


@app.post("/api/challenges", tags=["Challenges"], summary="Append a challenge to the challenges file")
async def add_challenge(body: ChallengeCreate):
    try:
        extras = {"theme": body.theme, "region": body.region, "phase": body.phase,
                  "impactScore": body.impact_score}
        challenge = flatfile.append_challenge(config.challenges_path(), body.model_dump(), extras)
    except flatfile.ChallengeValidationError as exc:
        return _envelope(400, str(exc), missing=exc.missing)
    except Exception as exc:
        log.error("Error adding challenge: %s", exc)
        return _envelope(500, "Error adding challenge")
    return {"success": True, "message": "Challenge added successfully", "challenge": challenge}


@app.post("/api/challenges/import", tags=["Challenges"],
          summary="Append challenges from an XLSX spreadsheet")
async def import_challenges(file: UploadFile = File(...)):
    if not file.filename or not file.filename.endswith(".xlsx"):
        return _envelope(400, "Only .xlsx files are supported")
    content = await file.read()
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(suffix=".xlsx", delete=False) as f:
            tmp_path = Path(f.name)
            f.write(content)
        result = import_xlsx(tmp_path, config.challenges_path())
    except Exception as exc:
        log.error("Error importing challenges: %s", exc)
        return _envelope(500, "Error importing challenges")
    finally:
        if tmp_path:
            tmp_path.unlink(missing_ok=True)
    return {"success": True, "message": f"Imported {result['imported']} challenges", **result}


# ---------------------------------------------------------------------------
# Routes: Users (flat file)
# ---------------------------------------------------------------------------


@app.get("/api/users", tags=["Users"], summary="List users (public fields)")
async def list_users():
    data = flatfile.read_users(config.users_path())
    return {"users": [flatfile.public_user(u) for u in data["users"]]}


@app.post("/api/users", tags=["Users"], summary="Create a user")
async def create_user(body: UserCreate):
    if not body.email or not body.password:
        return _envelope(400, "Email and password are required")
    fields = body.model_dump(by_alias=True)
    try:
        user, written = flatfile.create_user(config.users_path(), fields)
    except flatfile.DuplicateUserError:
        return _envelope(409, "User already exists")
    if not written:
        return _envelope(500, "Failed to create user")
    return {"success": True, "message": "User created successfully", "user": flatfile.public_user(user)}


@app.get("/api/users/friends", tags=["Users"], summary="Friends of the user with the given email")
async def list_friends(email: str | None = Query(None)):
    if not email:
        return _envelope(400, "Email parameter is required")
    friends = flatfile.friends_of(flatfile.read_users(config.users_path()), email)
    if friends is None:
        return _envelope(404, "User not found")
    return {"success": True, "friends": friends}


@app.get("/api/users/{user_id}", tags=["Users"], summary="Get a user by numeric id")
async def get_user(user_id: str):
    try:
        uid = int(user_id)
    except ValueError:
        return _envelope(400, "Invalid user ID")
    user = flatfile.find_user(flatfile.read_users(config.users_path()), user_id=uid)
    if user is None:
        return _envelope(404, "User not found")
    return {"success": True, "user": flatfile.public_user(user)}


# ---------------------------------------------------------------------------
# Routes: Client store
# ---------------------------------------------------------------------------


@app.get("/api/clients/{client_id}/storage", tags=["Client Store"], summary="List stored keys")
async def list_storage_keys(store: SqlStore = Depends(client_store)):
    return {"keys": store.keys()}


@app.delete("/api/clients/{client_id}/storage", tags=["Client Store"], summary="Clear all stored keys")
async def clear_client_storage(store: SqlStore = Depends(client_store)):
    return _saved(clear_storage(store))


@app.get("/api/clients/{client_id}/initiatives", tags=["Client Store"],
         summary="Raw initiatives cached for this client")
async def get_cached_initiatives(store: SqlStore = Depends(client_store)):
    return services.get_cached_initiatives(store)


@app.post("/api/clients/{client_id}/initiatives/refresh", tags=["Client Store"],
          summary="Reload the cache from the initiatives source")
async def refresh_initiatives(
    store: SqlStore = Depends(client_store),
    source: InitiativeSource = Depends(initiative_source),
):
    result = await InitiativeRepository(source, store).refresh()
    if not result.ok:
        return _envelope(500, "Error loading initiatives")
    return {"success": True, "count": len(result.value), "source": result.source}


@app.put("/api/clients/{client_id}/initiatives/{uid}", tags=["Client Store"],
         summary="Insert or replace a cached initiative")
async def save_initiative(
    uid: str, body: dict[str, Any] = Body(...), store: SqlStore = Depends(client_store),
):
    return _saved(services.save_initiative(store, {**body, "uid": uid}))


@app.delete("/api/clients/{client_id}/initiatives/{uid}", tags=["Client Store"],
            summary="Remove a cached initiative")
async def delete_initiative(uid: str, store: SqlStore = Depends(client_store)):
    if not services.delete_initiative(store, uid):
        raise HTTPException(404, "Initiative not found")
    return {"success": True}


@app.get("/api/clients/{client_id}/layout", tags=["Client Store"], summary="Dashboard layout")
async def get_layout(store: SqlStore = Depends(client_store)):
    return services.get_dashboard_layout(store)


@app.put("/api/clients/{client_id}/layout", tags=["Client Store"], summary="Replace dashboard layout")
async def put_layout(body: DashboardLayout, store: SqlStore = Depends(client_store)):
    return _saved(services.save_dashboard_layout(store, body.model_dump(by_alias=True)))


@app.get("/api/clients/{client_id}/preferences", tags=["Client Store"], summary="User preferences")
async def get_preferences(store: SqlStore = Depends(client_store)):
    return services.get_user_preferences(store)


@app.put("/api/clients/{client_id}/preferences", tags=["Client Store"], summary="Replace user preferences")
async def put_preferences(body: UserPreferences, store: SqlStore = Depends(client_store)):
    return _saved(services.save_user_preferences(store, body.model_dump(by_alias=True)))


@app.patch("/api/clients/{client_id}/preferences", tags=["Client Store"],
           summary="Update selected preference fields (null fields ignored)")
async def patch_preferences(body: dict[str, Any] = Body(...), store: SqlStore = Depends(client_store)):
    return services.update_user_preferences(store, body)


@app.get("/api/clients/{client_id}/notifications", tags=["Client Store"], summary="Notifications")
async def get_notifications(store: SqlStore = Depends(client_store)):
    items = services.get_user_notifications(store)
    return {"items": items, "unread": services.unread_count(items)}


@app.post("/api/clients/{client_id}/notifications", tags=["Client Store"], status_code=201,
          summary="Append a notification")
async def add_notification(body: UserNotification, store: SqlStore = Depends(client_store)):
    return _saved(services.save_user_notification(store, body.model_dump(by_alias=True)))


@app.post("/api/clients/{client_id}/notifications/read-all", tags=["Client Store"],
          summary="Mark every notification as read")
async def read_all_notifications(store: SqlStore = Depends(client_store)):
    return _saved(services.mark_all_notifications_as_read(store))


@app.post("/api/clients/{client_id}/notifications/{notification_id}/read", tags=["Client Store"],
          summary="Mark one notification as read")
async def read_notification(notification_id: str, store: SqlStore = Depends(client_store)):
    if not services.mark_notification_as_read(store, notification_id):
        raise HTTPException(404, "Notification not found")
    return {"success": True}


@app.get("/api/clients/{client_id}/collaboration", tags=["Client Store"], summary="Collaboration data")
async def get_collaboration(store: SqlStore = Depends(client_store)):
    return services.get_collaboration_data(store)


@app.put("/api/clients/{client_id}/collaboration", tags=["Client Store"],
         summary="Replace collaboration data")
async def put_collaboration(body: CollaborationData, store: SqlStore = Depends(client_store)):
    return _saved(services.save_collaboration_data(store, body.model_dump(by_alias=True)))


@app.post("/api/clients/{client_id}/collaboration/comments/{initiative_id}", tags=["Client Store"],
          status_code=201, summary="Comment on an initiative")
async def add_comment(initiative_id: str, body: CommentIn, store: SqlStore = Depends(client_store)):
    return _saved(services.add_comment(store, initiative_id, body.model_dump()))


@app.get("/api/clients/{client_id}/metrics", tags=["Client Store"], summary="Metrics history")
async def get_metrics(store: SqlStore = Depends(client_store)):
    return services.get_metrics_history(store)


@app.put("/api/clients/{client_id}/metrics", tags=["Client Store"], summary="Replace metrics history")
async def put_metrics(
    body: dict[str, dict[str, list[MetricDataPoint]]], store: SqlStore = Depends(client_store),
):
    data = {
        init_id: {name: [p.model_dump(exclude_none=True) for p in points] for name, points in metrics.items()}
        for init_id, metrics in body.items()
    }
    return _saved(services.save_metrics_history(store, data))


@app.post("/api/clients/{client_id}/metrics/{initiative_id}/{metric_name}", tags=["Client Store"],
          status_code=201, summary="Append a metric data point")
async def add_metric(
    initiative_id: str, metric_name: str, body: MetricDataPoint,
    store: SqlStore = Depends(client_store),
):
    return _saved(services.add_metric_data_point(
        store, initiative_id, metric_name, body.model_dump(exclude_none=True),
    ))


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("impactdash.app:app", host="127.0.0.1", port=8002, reload=True)


if __name__ == "__main__":
    main()
