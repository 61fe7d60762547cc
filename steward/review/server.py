"""
Steward Review Server

FastAPI server exposing the review workflow.

Endpoints:
- GET /health: Health check
- POST /detections: Enqueue a detected knowledge change
- GET /suggestions: List suggestions (filters: team, status, source, confidence)
- GET /suggestions/{id}: One suggestion with its review text
- POST /suggestions/{id}/promote|approve|reject: Lifecycle transitions
- POST /suggestions/bulk-approve|bulk-reject: Bulk decisions
- GET /suggestions/{id}/diff: Preview, side-by-side and unified views
- PATCH /suggestions/{id}/page: Re-target to another canonical page
- GET /pages?query=&client_id=: Search canonical pages
- GET /activity: Activity log, optionally grouped by day
- GET /usage/{team_id}: Plan usage meters
- GET /stats: Review statistics

Routes that publish or write the store are plain ``def`` so FastAPI runs
them in its threadpool; the controller blocks on locks and HTTP calls.

Error mapping:
    NotFound 404, InvalidTransition 409, QuotaExceeded 402,
    PublishFailed 502 (409 on a page conflict), PageIndexUnavailable 502,
    MalformedContent 422, NoOp 200 {"changed": false}
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..common.config import LOGS_DIR, StewardConfig, ensure_directories, load_config
from ..common.errors import (
    InvalidTransition,
    MalformedContent,
    NoOp,
    NotFound,
    PageIndexUnavailable,
    PublishFailed,
    QuotaExceeded,
    StewardError,
)
from ..common.schemas import SourceType, SuggestionStatus, render_review_text, utcnow
from .activity import ActivityProjector
from .diff_renderer import render
from .lifecycle import LifecycleController
from .page_resolver import DEFAULT_CLIENT, PageResolver
from .publishers import NotionPageIndex, NotionPublisher
from .quota import InMemorySubscriptionLedger, QuotaAccountant
from .store import SuggestionStore

logger = logging.getLogger("steward.review.server")

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
LOG_FILE_NAME = "steward.log"


# Global state
config: Optional[StewardConfig] = None
store: Optional[SuggestionStore] = None
accountant: Optional[QuotaAccountant] = None
controller: Optional[LifecycleController] = None
resolver: Optional[PageResolver] = None
projector: Optional[ActivityProjector] = None
publisher: Optional[NotionPublisher] = None
page_index: Optional[NotionPageIndex] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, store, accountant, controller, resolver, projector, publisher, page_index

    logger.info("Starting up...")
    load_dotenv()
    ensure_directories()

    config = load_config()

    store_path = Path(config.review.store_path).expanduser() if config.review.persist else None
    store = SuggestionStore(store_path)
    stats = store.get_stats()
    logger.info("Suggestion store: %d total, %d pending", stats["total"], stats["pending"])

    ledger = InMemorySubscriptionLedger.from_plans(config.teams)
    accountant = QuotaAccountant(ledger)
    logger.info("Subscription ledger seeded with %d teams", len(config.teams))

    if not config.notion.api_key:
        logger.warning("NOTION_API_KEY not set; approvals and page search will fail")
    publisher = NotionPublisher(config.notion)
    page_index = NotionPageIndex(config.notion)

    controller = LifecycleController(
        store=store,
        accountant=accountant,
        publisher=publisher,
        default_actor=config.review.default_actor,
    )
    resolver = PageResolver(page_index, controller, debounce_ms=config.review.search_debounce_ms)
    projector = ActivityProjector()

    logger.info("Ready")

    yield

    logger.info("Shutting down...")
    publisher.close()
    await page_index.aclose()


app = FastAPI(
    title="Steward Review Server",
    description="Human review of detected knowledge changes",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Error mapping
# =============================================================================

STATUS_CODES = {
    NotFound: 404,
    InvalidTransition: 409,
    QuotaExceeded: 402,
    PublishFailed: 502,
    PageIndexUnavailable: 502,
    MalformedContent: 422,
    NoOp: 200,
}


def status_for(error: StewardError) -> int:
    if isinstance(error, PublishFailed) and error.conflict:
        return 409
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


@app.exception_handler(StewardError)
async def steward_error_handler(request: Request, exc: StewardError):
    body = exc.to_dict()
    if isinstance(exc, NoOp):
        body["changed"] = False
    return JSONResponse(status_code=status_for(exc), content=body)


# =============================================================================
# Request Models
# =============================================================================

class DecisionRequest(BaseModel):
    """Approve/reject/promote request"""
    actor_name: Optional[str] = None
    # approve only: hash of the target page as the reviewer last saw it
    expected_content_hash: Optional[str] = None


class BulkDecisionRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)
    actor_name: Optional[str] = None


class RebindRequest(BaseModel):
    page_id: str = Field(..., min_length=1)


def _require(component, name: str):
    if component is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return component


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "steward",
        "initialized": controller is not None,
        "notion_configured": bool(config and config.notion.api_key),
        "pending_reviews": store.get_stats()["pending"] if store else 0,
    }


@app.post("/detections")
def create_detection(payload: Dict[str, Any] = Body(...)):
    """Enqueue a detection; duplicates of an open suggestion are not accepted"""
    suggestion = _require(controller, "Controller").detect_and_enqueue(payload)
    return {
        "accepted": suggestion is not None,
        "suggestion": suggestion.model_dump(mode="json") if suggestion else None,
    }


@app.get("/suggestions")
async def list_suggestions(
    team_id: Optional[str] = None,
    status: Optional[SuggestionStatus] = None,
    source_type: Optional[SourceType] = None,
    min_confidence: Optional[float] = None,
):
    items = _require(controller, "Controller").list_suggestions(
        team_id=team_id, status=status, source_type=source_type, min_confidence=min_confidence,
    )
    return {
        "count": len(items),
        "items": [s.model_dump(mode="json") for s in items],
    }


@app.post("/suggestions/bulk-approve")
def bulk_approve(request: BulkDecisionRequest):
    result = _require(controller, "Controller").transition_many(
        request.ids, SuggestionStatus.APPROVED, request.actor_name
    )
    return result.to_dict()


@app.post("/suggestions/bulk-reject")
def bulk_reject(request: BulkDecisionRequest):
    result = _require(controller, "Controller").transition_many(
        request.ids, SuggestionStatus.REJECTED, request.actor_name
    )
    return result.to_dict()


@app.get("/suggestions/{suggestion_id}")
async def get_suggestion(suggestion_id: str):
    suggestion = _require(controller, "Controller").get(suggestion_id)
    return {
        "suggestion": suggestion.model_dump(mode="json"),
        "formatted": render_review_text(suggestion),
    }


@app.post("/suggestions/{suggestion_id}/promote")
def promote_suggestion(suggestion_id: str, request: Optional[DecisionRequest] = None):
    actor = request.actor_name if request else None
    suggestion = _require(controller, "Controller").promote(suggestion_id, actor)
    return {"changed": True, "suggestion": suggestion.model_dump(mode="json")}


@app.post("/suggestions/{suggestion_id}/approve")
def approve_suggestion(suggestion_id: str, request: Optional[DecisionRequest] = None):
    actor = request.actor_name if request else None
    expected_hash = request.expected_content_hash if request else None
    suggestion = _require(controller, "Controller").transition(
        suggestion_id, SuggestionStatus.APPROVED, actor, expected_content_hash=expected_hash
    )
    return {"changed": True, "suggestion": suggestion.model_dump(mode="json")}


@app.post("/suggestions/{suggestion_id}/reject")
def reject_suggestion(suggestion_id: str, request: Optional[DecisionRequest] = None):
    actor = request.actor_name if request else None
    suggestion = _require(controller, "Controller").transition(
        suggestion_id, SuggestionStatus.REJECTED, actor
    )
    return {"changed": True, "suggestion": suggestion.model_dump(mode="json")}


@app.get("/suggestions/{suggestion_id}/diff")
async def get_diff(suggestion_id: str):
    suggestion = _require(controller, "Controller").get(suggestion_id)
    view = render(suggestion.current_content, suggestion.proposed_content)
    return {"suggestion_id": suggestion_id, **view.to_dict()}


@app.patch("/suggestions/{suggestion_id}/page")
async def rebind_page(suggestion_id: str, request: RebindRequest):
    suggestion = await _require(resolver, "Resolver").rebind(suggestion_id, request.page_id)
    return {"changed": True, "suggestion": suggestion.model_dump(mode="json")}


@app.get("/pages")
async def search_pages(query: str = "", client_id: str = DEFAULT_CLIENT):
    """``client_id`` scopes superseding to one reviewer's search box"""
    result = await _require(resolver, "Resolver").search(query, client_id=client_id)
    return result.to_dict()


@app.get("/activity")
async def get_activity(
    team_id: Optional[str] = None,
    status: Optional[SuggestionStatus] = None,
    source_type: Optional[SourceType] = None,
    search: Optional[str] = None,
    grouped: bool = False,
    limit: Optional[int] = None,
):
    """Activity newest first; ``grouped`` buckets it by day"""
    entries = _require(controller, "Controller").activity(team_id=team_id)
    entries = _require(projector, "Projector").filter_entries(
        entries, status=status, source_type=source_type, search=search,
    )
    if limit is not None:
        entries = entries[:limit]

    if grouped:
        return {"count": len(entries), "buckets": projector.bucket(entries, utcnow()).to_dict()}
    return {
        "count": len(entries),
        "items": [e.model_dump(mode="json") for e in entries],
    }


@app.get("/usage/{team_id}")
async def get_usage(team_id: str):
    quota = _require(accountant, "Accountant")
    usage = quota.ledger.snapshot(team_id)
    return {"team_id": team_id, **quota.summary(usage).to_dict()}


@app.get("/stats")
async def get_stats(team_id: Optional[str] = None):
    """Pending count, approvals today and approval rate"""
    review = _require(controller, "Controller")
    stats = _require(projector, "Projector").stats(
        review.list_suggestions(team_id=team_id),
        review.activity(team_id=team_id),
        utcnow(),
    )
    return {
        "service": "steward",
        "timestamp": utcnow().isoformat(),
        **stats.to_dict(),
    }


# =============================================================================
# CLI Entry Point
# =============================================================================

def configure_logging(level: str, logs_dir: Path = LOGS_DIR) -> Path:
    """Log to stderr and to ``logs_dir``/steward.log; returns the log file path"""
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / LOG_FILE_NAME
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(), logging.FileHandler(log_file)],
    )
    return log_file


def run_server():
    """Run the Steward review server"""
    import uvicorn

    load_dotenv()
    ensure_directories()
    config = load_config()
    log_file = configure_logging(config.server.log_level)
    logger.info("Logging to %s", log_file)

    logger.info("Starting server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        "steward.review.server:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
