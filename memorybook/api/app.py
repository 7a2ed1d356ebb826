"""
HTTP API for storybook generation and memory journaling.

All endpoints require ``Authorization: Bearer <token>``. Handlers are plain
``def`` functions, so FastAPI runs each request in its threadpool.
"""

from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config.loader import AppConfig, load_app_config
from ..core.errors import AuthError, MemorybookError, NotFoundError, QuotaExceeded, ValidationError
from ..core.pipeline import GenerationRequest, StoryPipeline, build_pipeline
from ..core.quota import current_period_start
from ..core.themes import DEFAULT_THEME
from ..storage.repository import SQLiteStore, StoryStore, initialize_schema
from ..utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


class CreateMemoryRequest(BaseModel):
    """Body of POST /memories."""
    childId: Optional[Any] = None
    note: Optional[str] = None
    imagePath: Optional[str] = None
    takenAt: Optional[str] = None


class CreateChildRequest(BaseModel):
    """Body of POST /children."""
    name: Optional[str] = None


def error_body(error: MemorybookError) -> dict:
    """JSON payload for a pipeline or storage error."""
    if isinstance(error, QuotaExceeded):
        return {"error": error.code, "message": error.message}
    if isinstance(error, (ValidationError, NotFoundError)):
        return {"error": error.code}
    return {"error": error.code, "details": error.details}


def _parse_child_id(raw) -> int:
    """Positive integer child id or 0 when missing/invalid."""
    try:
        child_id = int(raw)
    except (TypeError, ValueError):
        return 0
    return child_id if child_id > 0 else 0


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[StoryStore] = None,
    pipeline: Optional[StoryPipeline] = None,
) -> FastAPI:
    """Build the API application.

    Args:
        config: Application config (loaded from the environment if omitted)
        store: Storage backend (SQLite at ``config.storage.db_path`` if omitted)
        pipeline: Generation pipeline (wired from config if omitted)

    Returns:
        FastAPI application
    """
    config = config or load_app_config()
    configure_logging(config.logging.level)

    if store is None:
        initialize_schema(config.storage.db_path)
        store = SQLiteStore(config.storage.db_path)
    pipeline = pipeline or build_pipeline(config, store=store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down memorybook API")
        pipeline.close()

    app = FastAPI(title="memorybook", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.store = store
    app.state.pipeline = pipeline

    @app.exception_handler(MemorybookError)
    async def handle_memorybook_error(request: Request, exc: MemorybookError):
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    def current_user(authorization: Optional[str] = Header(None)) -> str:
        token = None
        if authorization and authorization.startswith("Bearer "):
            token = authorization.split(" ", 1)[1].strip()
        if not token:
            raise AuthError("Missing bearer token", details="no_token")
        user_id = store.resolve_token(token)
        if user_id is None:
            raise AuthError("Invalid bearer token", details="invalid_token")
        return user_id

    def owned_child(user_id: str, child_id: int):
        child = store.get_child(child_id)
        if child is None or child.user_id != user_id:
            raise NotFoundError("Child not found", code="child_not_found")
        return child

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/generate")
    def generate(
        childId: Optional[str] = None,
        interval: Optional[str] = None,
        pdf: Optional[str] = None,
        theme: Optional[str] = None,
        user_id: str = Depends(current_user),
    ):
        request = GenerationRequest(
            child_id=_parse_child_id(childId),
            interval=interval or "monthly",
            theme=theme or DEFAULT_THEME,
            pdf=pdf == "true",
        )
        artifact = pipeline.generate(user_id, request)
        return artifact.to_response()

    @app.get("/usage")
    def usage(user_id: str = Depends(current_user)):
        period_start = current_period_start()
        return {
            "periodStart": period_start,
            "calls": pipeline.ledger.usage(user_id, period_start),
            "quota": pipeline.ledger.quota,
        }

    @app.post("/children", status_code=201)
    def create_child(body: CreateChildRequest, user_id: str = Depends(current_user)):
        name = (body.name or "").strip()
        if not name:
            raise ValidationError("name required", code="name required")
        child = store.create_child(user_id, name)
        return asdict(child)

    @app.post("/memories", status_code=201)
    def create_memory(body: CreateMemoryRequest, user_id: str = Depends(current_user)):
        child_id = _parse_child_id(body.childId)
        if not child_id:
            raise ValidationError("childId required", code="childId required")
        owned_child(user_id, child_id)
        memory = store.add_memory(child_id, note=body.note,
                                  image_path=body.imagePath, taken_at=body.takenAt)
        return asdict(memory)

    @app.get("/memories")
    def list_memories(childId: Optional[str] = None, user_id: str = Depends(current_user)):
        child_id = _parse_child_id(childId)
        if not child_id:
            raise ValidationError("childId required", code="childId required")
        owned_child(user_id, child_id)
        return [asdict(memory) for memory in store.list_memories(child_id)]

    return app
