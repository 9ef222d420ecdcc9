import logging

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from volume_manager import app_context
from volume_manager.app.errors import VolumeManagerError
from volume_manager.app.routes.reconciler import router as reconciler_router
from volume_manager.app.routes.storages import router as storages_router
from volume_manager.app.routes.volumes import router as volumes_router
from volume_manager.app.schema import ensure_schema
from volume_manager.app.services.volumes import get_volume_service
from volume_manager.config import MODE_RELEASE, STORE_POSTGRES, load_service_config
from volume_manager.reconciler import shutdown_reconciler, start_reconciler

load_dotenv()

CONFIG = load_service_config()

logging.basicConfig(
    level=getattr(logging, CONFIG.log_level, logging.INFO),
    format=(
        "%(levelname)s %(name)s %(message)s"
        if CONFIG.mode == MODE_RELEASE
        else "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
    ),
)
logger = logging.getLogger("volume_manager")

DB_CFG = CONFIG.db_settings()


def get_conn():
    return psycopg2.connect(**DB_CFG)


app_context.configure(get_conn=get_conn, config=CONFIG)

app = FastAPI(title="Volume Manager API")

if CONFIG.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(CONFIG.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(volumes_router)
app.include_router(storages_router)
app.include_router(reconciler_router)


@app.exception_handler(VolumeManagerError)
async def handle_volume_manager_error(request: Request, exc: VolumeManagerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": dict(exc.payload)})


@app.on_event("startup")
def startup() -> None:
    if CONFIG.volume_store == STORE_POSTGRES:
        ensure_schema()
    # Fails fast when a client address is missing in release mode.
    get_volume_service()
    start_reconciler(CONFIG.reconcile_interval_seconds)
    logger.info(
        "Volume manager started",
        extra={"mode": CONFIG.mode, "volume_store": CONFIG.volume_store},
    )


@app.on_event("shutdown")
def shutdown() -> None:
    shutdown_reconciler()


@app.get("/health")
def health():
    return {"status": "ok", "mode": CONFIG.mode}
