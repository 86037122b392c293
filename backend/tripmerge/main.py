import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripmerge.config import settings

# ─── Logging setup (file + console) ───
_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_LOG_DIR.mkdir(exist_ok=True)

_log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            _LOG_DIR / "tripmerge.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        ),
    ],
)

# Quiet noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from tripmerge.routers import deals, hotels, search, unified
from tripmerge.services.adapters import ADAPTERS
from tripmerge.services.cache_service import cache_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    live = {s.value: len(a.providers) for s, a in ADAPTERS.items()}
    logger.info(
        f"TripMerge starting: cache={settings.cache_backend}, live providers={live}, "
        f"synthetic fallback={'on' if settings.synthetic_fallback_enabled else 'off'}"
    )

    yield

    # Shutdown
    for adapter in ADAPTERS.values():
        await adapter.close()
    await cache_service.close()
    logger.info("Provider clients and cache closed")


app = FastAPI(
    title="TripMerge",
    description="Travel offer aggregation, ranking, clustering and deal detection",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search.router, prefix="/api/search", tags=["search"])
app.include_router(unified.router, prefix="/api/search", tags=["unified"])
app.include_router(hotels.router, prefix="/api/hotels", tags=["hotels"])
app.include_router(deals.router, prefix="/api/deals", tags=["deals"])


@app.get("/api/health")
async def health_check():
    return {"status": "ok", "service": "tripmerge"}
