import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse

from database import create_tables, dispose_engine
from reta.exceptions import RetaError
from reta.repository import RetaRepository
from reta.router import router as reta_router, get_repository

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info("Database ready")
    yield
    await dispose_engine()


app = FastAPI(title="Padel Retas", lifespan=lifespan)
app.include_router(reta_router)


@app.exception_handler(RetaError)
async def reta_error_handler(request: Request, exc: RetaError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={
        "title": exc.title,
        "detail": exc.detail,
        "status": exc.status_code,
        "code": exc.code,
    })


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", exc_info=(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content={
        "title": "Internal Server Error",
        "detail": str(exc),
        "status": 500,
        "code": "internal_server_error",
    })

# Routes

@app.get("/")
async def index(repo: RetaRepository = Depends(get_repository)):
    return {"retas": [asdict(t) for t in await repo.list_tournaments()]}
