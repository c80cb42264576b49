from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, status
from fastapi.exceptions import RequestValidationError

from app.config import settings
from app.database import SessionLocal, check_database_health, engine as db_engine, init_db
from app.errors import (
    ThinkingError,
    thinking_error_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)
from app.logging_config import setup_logging, get_logger
from app.middleware import RequestIDMiddleware
from app.monitoring import setup_sentry
from app.schemas import ThoughtSubmission
from app.thinking.engine import SequenceLocks, ThinkingEngine
from app.thinking.sessions import SessionRegistry

# Setup logging first
setup_logging()
logger = get_logger(__name__)

# Setup Sentry if configured
sentry = setup_sentry()

app = FastAPI(
    title="Sequential Thinking API",
    version="0.1.0",
    description="""
    Sequential Thinking API - record numbered reasoning steps with revisions,
    branches and a hypothesis/verification workflow, and persist them as
    searchable sequences.

    ## Submissions

    `POST /thinking` takes one submission: either a thought or exactly one
    sequence directive (`saveSequence`, `loadSequence`, `searchSequence`,
    `exportSequence`, `importSequence`). The `X-Session-ID` header selects
    the reasoning session; it defaults to `default`.

    ## Error Responses

    ```json
    {
      "error": "Human-readable message",
      "status": "failed",
      "isError": true,
      "code": "VALIDATION_ERROR",
      "reason": "duplicate_thought_number",
      "field": "thoughtNumber",
      "timestamp": "ISO8601",
      "requestId": "uuid"
    }
    ```
    """,
)

app.add_middleware(RequestIDMiddleware)

# Add error handlers
app.add_exception_handler(ThinkingError, thinking_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

sequence_locks = SequenceLocks()


def create_engine_for_session(session_id: str) -> ThinkingEngine:
    return ThinkingEngine(
        limits=settings.eviction_limits(),
        session_factory=SessionLocal,
        sequence_locks=sequence_locks,
        disable_thought_logging=settings.disable_thought_logging,
        session_id=session_id,
    )


registry = SessionRegistry(create_engine_for_session, settings.session_ttl_seconds)


def get_registry() -> SessionRegistry:
    """Dependency: the process-wide session registry."""
    return registry


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("Starting application...")
    errors = settings.validate_required()
    for e in errors:
        logger.warning(f"Config: {e}")
    init_db(db_engine)
    db_health = check_database_health()
    if db_health["status"] == "healthy":
        logger.info(f"Database healthy (response_time_ms: {db_health.get('response_time_ms', 0)})")
    else:
        logger.error(f"Database health check failed: {db_health.get('error')}")
    logger.info("Application startup complete")


@app.get("/healthz")
def healthcheck():
    """
    Health check endpoint.
    Returns application health status including database connectivity.
    """
    health = {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "version": app.version,
        "sessions": len(registry),
    }

    db_health = check_database_health()
    health["database"] = db_health

    if db_health["status"] != "healthy":
        health["status"] = "degraded"

    return health


@app.get("/healthz/ready")
def readiness_check():
    """
    Readiness probe endpoint.
    Returns 200 only if the application is ready to serve traffic.
    """
    db_health = check_database_health()

    if db_health["status"] != "healthy":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not available"
        )

    return {"status": "ready"}


@app.get("/healthz/live")
def liveness_check():
    """
    Liveness probe endpoint.
    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@app.post(
    "/thinking",
    summary="Submit a thought or a sequence directive",
    responses={
        400: {"description": "Malformed or inconsistent submission"},
        404: {"description": "Referenced thought, hypothesis or sequence not found"},
        409: {"description": "Branch limit reached"},
        503: {"description": "Sequence storage unavailable"},
    },
)
def submit_thought(
    payload: Dict[str, Any] = Body(..., openapi_examples={
        "hypothesis": {"value": ThoughtSubmission.model_config["json_schema_extra"]["examples"][0]},
        "verification": {"value": ThoughtSubmission.model_config["json_schema_extra"]["examples"][1]},
        "save": {"value": ThoughtSubmission.model_config["json_schema_extra"]["examples"][2]},
    }),
    x_session_id: Optional[str] = Header(None),
    sessions: SessionRegistry = Depends(get_registry),
):
    """
    Process one submission in the caller's session.

    Accepted thoughts return the acceptance payload (with `persisted: false`
    and a `warning` when the active sequence could not be written);
    directives return their action result. Failures return the error
    payload with the matching HTTP status.
    """
    thinking_engine = sessions.get(x_session_id)
    return thinking_engine.process(payload)
