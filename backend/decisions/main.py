"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from decisions.config import settings
from decisions.database import Base, engine
from decisions.engine.errors import DecisionError

# Import routers
from decisions.routers import events, polls

# Import all models so Base.metadata knows about them
from decisions.models.event import Event, EventOption, EventResponse  # noqa: F401
from decisions.models.poll import Poll, PollOption, PollVote          # noqa: F401
from decisions.models.decision_mutation import DecisionMutation       # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "ValidationError": 422,
    "Forbidden": 403,
    "InvalidTransition": 409,
    "AggregateLocked": 423,
    "InvalidReference": 400,
    "NotFound": 404,
    "ConcurrentModification": 409,
}

app = FastAPI(
    title=settings.APP_NAME,
    description="Group decision engine — event option voting, RSVPs and quick polls for group chats",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(polls.router, prefix="/api/polls", tags=["Polls"])


@app.exception_handler(DecisionError)
async def decision_error_handler(request: Request, exc: DecisionError):
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 409:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.kind, "detail": exc.message})


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
