from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from geoquest.config import settings
from geoquest.logging_setup import configure_logging
from geoquest.routes.system import router as system_router
from geoquest.routes.tours import router as tours_router
from geoquest.routes.sessions import router as sessions_router
from geoquest.routes.game import router as game_router
from geoquest.services.errors import GameError
import structlog

configure_logging()
log = structlog.get_logger()

RETRY_AFTER_S = 5

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha,
             realtime=settings.realtime_backend)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for live GPS team tours",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system_router)
app.include_router(tours_router)
app.include_router(sessions_router)
app.include_router(game_router)

@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    headers = {"Retry-After": str(RETRY_AFTER_S)} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.payload()), headers=headers)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    try:
        response: Response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()
    response.headers["X-Request-ID"] = rid
    return response
