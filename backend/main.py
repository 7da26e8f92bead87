"""
FastAPI application entry point for the read tracker backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import logging
import asyncio

from backend.config.settings import get_settings
from backend.api import admin, config, papers
from backend.auth.identity import StaticTokenVerifier
from backend.db.config_store import ConfigStore
from backend.db.engine import create_db_engine, transaction
from backend.db.paper_store import PaperStore
from backend.errors import StorageUnavailable
from backend.services.read_tracker import ReadTracker

# Get settings to access log configuration
settings = get_settings()

# Configure logging with both console and file output
# Use UTF-8 encoding to handle Unicode characters in paper titles and author names
import sys
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.DEBUG)
console_handler.setFormatter(logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
))
if hasattr(console_handler.stream, 'reconfigure'):
    try:
        console_handler.stream.reconfigure(encoding='utf-8', errors='replace')
    except Exception:
        pass  # Stream may not support reconfiguring (e.g. captured output)

handlers = [console_handler]

# Only add file handler if log_file is set and not empty
# Note: Path("") becomes Path(".") so we need to check for that too
log_file_str = str(settings.log_file).strip() if settings.log_file else ""
if log_file_str and log_file_str != ".":
    file_handler = logging.FileHandler(settings.log_file, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    handlers.append(file_handler)

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=handlers,
    force=True  # Override any existing configuration
)

# SQL echo is far too chatty at DEBUG
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.INFO)
logging.getLogger("httpx").setLevel(logging.INFO)

# Configure Uvicorn's access logger to use the same format as application logs
uvicorn_access_logger = logging.getLogger("uvicorn.access")
uvicorn_access_logger.handlers = []  # Remove default handlers
uvicorn_access_logger.propagate = True  # Use root logger's handlers and format

uvicorn_error_logger = logging.getLogger("uvicorn.error")
uvicorn_error_logger.handlers = []
uvicorn_error_logger.propagate = True

logger = logging.getLogger(__name__)


def check_database_connectivity(engine) -> None:
    """
    Check that the database answers a trivial query.

    Raises RuntimeError if it doesn't (hard requirement for startup).
    """
    SEPARATOR = "=" * 80
    try:
        with transaction(engine) as conn:
            conn.execute(text("SELECT 1"))
    except StorageUnavailable as e:
        error_msg = (
            f"\n{SEPARATOR}\n"
            f"ERROR: Cannot connect to the database!\n"
            f"Configured URL: {engine.url.render_as_string(hide_password=True)}\n"
            f"\n{e}\n"
            f"Please check DATABASE_URL in your .env file.\n"
            f"{SEPARATOR}\n"
        )
        logger.error(error_msg)
        raise RuntimeError(error_msg) from e
    logger.info("[OK] Database connection established")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    current = get_settings()
    logger.info(f"Starting Read Tracker backend v{current.version}")
    if current.log_file:
        logger.info(f"Logging to file: {current.log_file}")

    engine = create_db_engine(current.database_url, timeout=current.database_timeout)
    await asyncio.to_thread(check_database_connectivity, engine)

    paper_store = PaperStore(engine)
    config_store = ConfigStore(engine)
    await asyncio.to_thread(config_store.ensure_default)

    app.state.tracker = ReadTracker(paper_store, config_store)
    app.state.verifier = StaticTokenVerifier.from_settings(current)

    try:
        yield
    finally:
        engine.dispose()
        logger.info("Shutting down Read Tracker backend")


# Create FastAPI app
app = FastAPI(
    title="Read Tracker API",
    description="Tracks which team members have read which research papers",
    version="0.1.0",
    lifespan=lifespan
)

# Configure CORS (the browser extension calls from page origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as 400 with the first problem found."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"detail": message})


# Include routers
app.include_router(papers.router, prefix="/api", tags=["papers"])
app.include_router(admin.router, prefix="/api", tags=["admin"])
app.include_router(config.router, prefix="/api", tags=["config"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Read Tracker API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.main:app", host=settings.api_host, port=settings.api_port)
