from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from accessgraph import __version__
from accessgraph.core.config import get_settings
from accessgraph.core.exceptions import (
    DuplicateRelationship,
    InvalidCapability,
    InvalidTransition,
    RelationshipNotFound,
    StoreUnavailable,
    TransitionConflict,
    UnknownRole,
)
from accessgraph.core.logger import configure_from_settings
from accessgraph.api.routers import decisions, health, relationships

settings = get_settings()
logger = configure_from_settings(settings)

app = FastAPI(
    title=settings.app_name,
    description="Authorization and visibility resolution engine",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(decisions.router, prefix="/api")
app.include_router(relationships.router, prefix="/api")


def _error(status_code: int, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__, **extra},
    )


@app.exception_handler(DuplicateRelationship)
async def duplicate_relationship_handler(request: Request, exc: DuplicateRelationship):
    return _error(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    extra = {"from_status": exc.from_status, "to_status": exc.to_status}
    if isinstance(exc, TransitionConflict):
        extra["observed_status"] = exc.observed
    return _error(status.HTTP_409_CONFLICT, exc, **extra)


@app.exception_handler(RelationshipNotFound)
async def relationship_not_found_handler(request: Request, exc: RelationshipNotFound):
    return _error(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(InvalidCapability)
async def invalid_capability_handler(request: Request, exc: InvalidCapability):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@app.exception_handler(UnknownRole)
async def unknown_role_handler(request: Request, exc: UnknownRole):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.warning(f"Relationship store unavailable on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Relationship store unavailable", "error": "StoreUnavailable"},
        headers={"Retry-After": "1"},
    )


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
