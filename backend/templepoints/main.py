from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from templepoints.config import settings
from templepoints.db import SessionLocal, create_schema
from templepoints.logging_setup import configure_logging
from templepoints.routes.system import router as system_router
from templepoints.routes.auth import router as auth_router
from templepoints.routes.points import router as points_router
from templepoints.routes.leaderboard import router as leaderboard_router
from templepoints.routes.live import router as live_router
from templepoints.services.broadcast import hub
from templepoints.services.errors import PointsError
from templepoints.services.seed import seed_initial_data
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    if settings.create_schema:
        await create_schema()
    if settings.seed_data:
        async with SessionLocal() as session:
            await seed_initial_data(session)
    await hub.start()
    yield
    # Shutdown
    await hub.stop()
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for ward point submissions and the live leaderboard"
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
app.include_router(auth_router)
app.include_router(points_router)
app.include_router(leaderboard_router)
app.include_router(live_router)

@app.exception_handler(PointsError)
async def points_error_handler(request: Request, exc: PointsError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    log.error("store_error", path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Database error"})

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
