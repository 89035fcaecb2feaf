import asyncio
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables as early as possible
load_dotenv()

from .core.config import settings
from .core.utils import utcnow
from .dependencies import get_auth_service
from .exceptions import AuthError, auth_error_handler, http_exception_handler
from .middleware import ErrorHandlingMiddleware, LoggingMiddleware, SecurityMiddleware
from .routers import auth_router
from .schemas import HealthResponse

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


async def _sweep_expired(app: FastAPI, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        service = app.dependency_overrides.get(get_auth_service, get_auth_service)()
        try:
            await asyncio.to_thread(service.cleanup_expired)
        except Exception:
            logger.exception("Expired record sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    # Builds the stores (and the SQL tables) before the first request
    app.dependency_overrides.get(get_auth_service, get_auth_service)()
    sweeper = None
    if settings.CLEANUP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(_sweep_expired(app, settings.CLEANUP_INTERVAL_SECONDS))
    yield
    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
    logger.info(f"Shutting down {settings.APP_NAME}...")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url=("/docs" if settings.DOCS_ENABLED else None),
    redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
    openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
)

# Add custom exception handlers
app.add_exception_handler(AuthError, auth_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)

# Add middleware
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(SecurityMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router)


# Health check endpoint
@app.get("/health", response_model=HealthResponse)
def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat(),
        "storage_backend": settings.STORAGE_BACKEND,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "phone_auth.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
