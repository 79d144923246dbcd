import asyncio
import logging
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from routes.diagnosis_route import router as diagnosis_router
from routes.disease_route import router as disease_router
from routes.image_route import router as image_router
from services.analysis_pipeline import DiagnosisPipeline
from services.image_store import ImageStore
from services.image_validator import ImageValidator
from services.inference.channel import BackgroundChannel
from services.inference.orchestrator import build_orchestrator
from services.inference.transport import ProcessTransport, process_workers_supported
from services.result_store import ResultStore
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import Settings

BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

logger = logging.getLogger(__name__)


async def _open_database(settings: Settings) -> Optional[AsyncDatabaseInitializer]:
    """Return a ready database initializer, or None to run the store offline."""
    try:
        db_initializer = AsyncDatabaseInitializer(settings.database_dir)
        await db_initializer.ensure_database()
    except (RuntimeError, OSError) as exc:
        logger.warning("Diagnosis history disabled: %s", exc)
        return None
    return db_initializer


def _build_channel(settings: Settings) -> Optional[BackgroundChannel]:
    if not settings.worker_enabled:
        logger.info("Background worker disabled by configuration")
        return None
    if not process_workers_supported():
        return BackgroundChannel(None, settings.channel)
    return BackgroundChannel(partial(ProcessTransport, settings.model_factory), settings.channel)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite history database at DATABASE_DIR/app.db (offline if unset)
      - the image blob bucket
      - the background worker channel and the tiered classifier chain
    and attach them to `app.state`.
    """
    settings = Settings.from_env()
    app.state.settings = settings

    db_initializer = await _open_database(settings)
    app.state.db_initializer = db_initializer

    image_dir = settings.resolved_image_dir()
    image_store = ImageStore(image_dir) if image_dir is not None and db_initializer is not None else None
    app.state.image_store = image_store

    result_store = ResultStore(db_initializer, image_store, settings.min_persist_confidence)
    app.state.result_store = result_store

    channel = _build_channel(settings)
    app.state.channel = channel

    validator = ImageValidator(max_bytes=settings.max_upload_bytes, min_dimension=settings.min_image_dimension)
    app.state.pipeline = DiagnosisPipeline(validator, build_orchestrator(settings, channel), result_store)

    # Start the worker early so the first upload does not pay for model loading.
    warmup = asyncio.create_task(channel.init()) if channel is not None else None

    try:
        yield
    finally:
        if warmup is not None and not warmup.done():
            warmup.cancel()
        if channel is not None:
            await channel.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    # Serve static assets from the public directory, if it exists.
    if PUBLIC_DIR.exists():
        app.mount("/public", StaticFiles(directory=PUBLIC_DIR), name="public")

    @app.get("/", include_in_schema=False)
    async def serve_index():
        """
        Serve the frontend index page from the public directory.
        """
        index_path = PUBLIC_DIR / "index.html"
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="Frontend not found")
        return FileResponse(index_path)

    @app.get("/health")
    async def health(request: Request):
        """
        Report worker channel state and whether diagnosis history is reachable.
        """
        channel = getattr(request.app.state, "channel", None)
        result_store = getattr(request.app.state, "result_store", None)
        store_available = await result_store.is_available() if result_store is not None else False
        return {
            "ok": True,
            "worker_state": channel.state.value if channel is not None else "disabled",
            "worker_attempts": channel.attempts if channel is not None else 0,
            "store_available": store_available,
        }

    # Register application routers
    app.include_router(diagnosis_router)
    app.include_router(disease_router)
    app.include_router(image_router)

    return app


app = create_app()
