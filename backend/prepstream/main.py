import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from prepstream.ai.driver import GenerationDriver
from prepstream.api.deps import ServiceContainer
from prepstream.api.health import router as health_router
from prepstream.api.interviews import router as interviews_router
from prepstream.config import Settings, get_settings
from prepstream.services.ai_logger import AILogger
from prepstream.services.cache import check_cache, close_cache_client, create_cache_client
from prepstream.services.interviews import InterviewRepository
from prepstream.services.pocketbase import PocketbaseError, PocketbaseService
from prepstream.services.quota import QuotaGate
from prepstream.services.streaming import GenerationOrchestrator, StreamTracker
from prepstream.services.users import UserRepository

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(settings: Settings) -> ServiceContainer:
    """Wire up every service from settings."""
    cache = create_cache_client(settings.redis_url)
    pocketbase = PocketbaseService(
        settings.pocketbase_url,
        admin_email=settings.pocketbase_admin_email,
        admin_password=settings.pocketbase_admin_password,
    )
    tracker = StreamTracker(
        cache,
        ttl_seconds=settings.stream_ttl_seconds,
        terminal_ttl_seconds=settings.stream_terminal_ttl_seconds,
    )
    users = UserRepository(pocketbase)
    interviews = InterviewRepository(pocketbase)
    ai_logger = AILogger(pocketbase)
    orchestrator = GenerationOrchestrator(
        GenerationDriver(settings),
        tracker,
        interviews,
        ai_logger,
        throttle_ms=settings.stream_throttle_ms,
        channel_size=settings.stream_channel_size,
    )
    return ServiceContainer(
        settings=settings,
        cache=cache,
        pocketbase=pocketbase,
        tracker=tracker,
        orchestrator=orchestrator,
        users=users,
        interviews=interviews,
        quota=QuotaGate(users),
        ai_logger=ai_logger,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Backend starting...")
    services = build_services(settings)
    app.state.services = services

    # Check Pocketbase connection
    try:
        health = await services.pocketbase.health_check()
        logger.info("Pocketbase connected: %s", health.get("message", "OK"))
    except PocketbaseError as e:
        logger.error("Pocketbase connection failed: %s", e.message)

    # Check Redis, streams still work without it but cannot be resumed
    redis_ok, redis_msg = await check_cache(services.cache)
    if redis_ok:
        logger.info("Redis: %s", redis_msg)
    else:
        logger.warning("Redis: %s (stream resume will be disabled)", redis_msg)

    logger.info("Backend started")

    yield

    # Shutdown
    logger.info("Backend shutting down...")
    await services.orchestrator.drain()
    await close_cache_client(services.cache)


app = FastAPI(title="Prepstream Backend", lifespan=lifespan)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Stream-Id", "X-Interview-Id", "X-Module", "X-Topic-Id", "X-Stream-Resumed"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(health_router)
app.include_router(interviews_router)
