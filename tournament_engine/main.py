import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tournament_engine.api.endpoints import fixtures as fixture_endpoints
from tournament_engine.api.endpoints import stages as stage_endpoints
from tournament_engine.api.endpoints import tournaments as tournament_endpoints
from tournament_engine.core.config import settings
from tournament_engine.core.database import init_db
from tournament_engine.core import errors

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Error category -> HTTP status
STATUS_BY_CATEGORY = (
    (errors.NotFoundError, status.HTTP_404_NOT_FOUND),
    (errors.ValidationError, status.HTTP_400_BAD_REQUEST),
    (errors.StateError, status.HTTP_409_CONFLICT),
    (errors.DataIntegrityError, status.HTTP_409_CONFLICT),
    (errors.NotConfiguredError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(exc: errors.TournamentEngineError) -> int:
    for category, code in STATUS_BY_CATEGORY:
        if isinstance(exc, category):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Tournament Progression Engine", lifespan=lifespan)


@app.exception_handler(errors.TournamentEngineError)
async def tournament_engine_error_handler(request: Request, exc: errors.TournamentEngineError):
    status_code = status_for(exc)
    logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


app.include_router(tournament_endpoints.router, prefix="/tournaments", tags=["Tournaments"])
app.include_router(stage_endpoints.router, prefix="/stages", tags=["Stages"])
app.include_router(fixture_endpoints.router, prefix="/fixtures", tags=["Fixtures"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tournament_engine.main:app", host="0.0.0.0", port=8000, reload=True)
