import logging
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from pricesync.api.crypto import router as crypto_router
from pricesync.container import Container

logger = logging.getLogger("pricesync.api")

VERSION = "0.1.0"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = Container()
    app.state.container = container
    settings = container.settings()
    configure_logging(settings.log_level)

    scheduler = container.scheduler()
    if settings.background_jobs:
        scheduler.start()
    yield
    await scheduler.stop()
    await container.transport().close()


app = FastAPI(title="pricesync", version=VERSION, lifespan=lifespan)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled error on %s %s:\n%s", request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(crypto_router)


@app.get("/")
async def root():
    return {"status": "ok", "message": "pricesync live", "services": ["crypto"]}


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": VERSION,
        "services": ["crypto"],
        "time": datetime.now(timezone.utc).isoformat(),
    }
