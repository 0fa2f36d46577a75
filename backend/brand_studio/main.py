import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from brand_studio.api.routes import router
from brand_studio.core.settings import ensure_directories, settings
from brand_studio.db.session import init_db

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup() -> None:
    ensure_directories()
    init_db()
    logger.info(f"{settings.app_name} ready (provider={settings.training_provider}, storage={settings.storage_dir})")


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(router)
app.mount("/files", StaticFiles(directory=settings.storage_dir, check_dir=False), name="files")


@app.get("/")
def health():
    return {"ok": True, "service": settings.app_name}
