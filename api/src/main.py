from functools import lru_cache

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from services.embeddings import build_provider
from services.errors import InvalidRequest, RankingFailed
from services.recommender import RecommenderService
from routers.recommender import router as recommender_router

from utils.logger import Logger, configure_logging
from utils.settings import Settings

_logger = Logger(name="reco-ranking-service")
configure_logging("services")


@lru_cache(maxsize=None)
def get_recommender_service() -> RecommenderService:
    """Instantiate (and cache) the ranking service and its embedding client."""
    settings = Settings.from_env()
    return RecommenderService(
        build_provider(settings),
        top_k=settings.top_k,
        max_candidates=settings.max_candidates,
        embed_timeout=settings.embed_timeout,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Hydrate the ranking service once; close its HTTP pool on shutdown."""
    if getattr(app.state, "recommender_service", None) is None:
        app.state.recommender_service = get_recommender_service()
    service = app.state.recommender_service
    try:
        _logger.info("Starting Application...", **service.get_info())
        yield
    finally:
        service.provider.close()
        _logger.info("Shutting Down Application...")


app = FastAPI(title="Candidate Ranking API", lifespan=lifespan)

app.include_router(recommender_router)


@app.exception_handler(RankingFailed)
async def ranking_failed_handler(request: Request, exc: RankingFailed):
    _logger.error(
        "Ranking failed",
        path=request.url.path,
        status=exc.status,
        error=exc.cause.kind,
        info=exc.cause.detail,
    )
    return JSONResponse(
        status_code=exc.status,
        content=jsonable_encoder({"message": "Embedding/Ranking failed", "detail": exc.detail}),
    )


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"message": "Invalid request", "detail": exc.detail}),
    )


def _public_errors(exc: RequestValidationError):
    # raw inputs may hold inf/NaN, which JSON cannot carry
    return [{k: v for k, v in err.items() if k not in ("input", "ctx")} for err in exc.errors()]


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"message": "Invalid request", "detail": _public_errors(exc)}),
    )


@app.get("/healthz")
async def health(request: Request):
    """Readiness plus a description of the configured embedding backend."""
    service = getattr(request.app.state, "recommender_service", None)
    if service is None:
        return JSONResponse(status_code=503, content={"ok": False})
    return {"ok": True, "service": service.get_info()}
