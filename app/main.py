"""FastAPI app for the Folio admin back-office."""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.analytics import VisitorAnalytics
from app.auth import SupabaseAuthMiddleware, auth_disabled
from app.db import get_db_stats, reset_db_stats
from app.entity_service import build_services
from app.errors import EntityError
from app.pages import api_router, router as admin_router
from app.responses import entity_error_response, error_response
from app.storage import LocalFileStore, build_blob_store
from app.stores import MemoryTableStore

app = FastAPI(title="Folio Admin")
logger = logging.getLogger("folio")
logging.basicConfig(level=logging.INFO)

APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
USE_DB = os.getenv("USE_DB", "").strip() == "1"
SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip()
SUPABASE_AUD = os.getenv("SUPABASE_JWT_AUD", "").strip() or None
DISABLE_AUTH = auth_disabled()
REQ_SLOW_MS = float(os.getenv("FOLIO_REQ_SLOW_MS", "250"))
PUBLIC_DIR = Path(os.getenv("FOLIO_PUBLIC_DIR", "public"))
_CORS_ORIGINS = sorted(
    {
        origin.strip().rstrip("/")
        for origin in os.getenv("FOLIO_CORS_ORIGINS", "").split(",")
        if origin.strip()
    }
)
logger.info("auth_disabled=%s supabase_url=%s use_db=%s", DISABLE_AUTH, SUPABASE_URL, USE_DB)

if USE_DB:
    from app.stores_db import DbTableStore

    table_store = DbTableStore()
else:
    table_store = MemoryTableStore()

local_store = LocalFileStore(PUBLIC_DIR)
blob_store = build_blob_store()
services = build_services(table_store, blob_store, local_store)
analytics = VisitorAnalytics(table_store)

app.state.services = services
app.state.analytics = analytics
app.state.table_store = table_store


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_stats()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    auth_ms = getattr(request.state, "auth_ms", 0.0)
    db_stats = get_db_stats()
    db_ms = db_stats.get("total_ms", 0.0)
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or "unknown"
    logger.info(
        "%s %s %s route=%s total_ms=%.1f auth_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        route_name,
        total_ms,
        auth_ms,
        db_ms,
        db_stats.get("queries", 0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s route=%s total_ms=%.1f db_ms=%.1f queries=%s status=%s",
            request.method,
            request.url.path,
            route_name,
            total_ms,
            db_ms,
            db_stats.get("names", []),
            response.status_code,
        )
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
        response.headers["X-DB-MS"] = f"{db_ms:.1f}"
        response.headers["X-Queries"] = str(db_stats.get("queries", 0))
        response.headers["X-Route"] = route_name
    return response


@app.exception_handler(EntityError)
async def entity_error_handler(request: Request, exc: EntityError):
    return entity_error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response("VALIDATION_FAILED", "Invalid request", detail={"errors": exc.errors()}, status=422)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


app.include_router(api_router)
app.include_router(admin_router)

(PUBLIC_DIR / "uploads").mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(PUBLIC_DIR / "uploads")), name="uploads")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1):\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
if not DISABLE_AUTH:
    if not SUPABASE_URL:
        raise RuntimeError("SUPABASE_URL is required for auth")
    app.add_middleware(SupabaseAuthMiddleware, supabase_url=SUPABASE_URL, audience=SUPABASE_AUD)
