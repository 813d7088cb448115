"""FastAPI app: lifespan, CORS, router registration."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from .api.babies import router as babies_router
from .api.sessions import router as sessions_router
from .api.insights import router as insights_router
from .core.database import get_database
from .core.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


# Used by: FastAPI lifespan (connect DB on startup, dispose pool on shutdown)
@asynccontextmanager
async def lifespan(app: FastAPI):
    db = get_database()
    await db.connect(settings.DATABASE_URL)
    if settings.AUTO_CREATE_SCHEMA:
        await db.ensure_schema()

    yield

    await db.disconnect()


app = FastAPI(
    title="NapRhythm API",
    version="1.0.0",
    description="NapRhythm - adaptive infant nap scheduling",
    lifespan=lifespan
)

cors_origins = settings.CORS_ORIGINS.copy()
if settings.CORS_EXTRA_ORIGINS:
    cors_origins.extend([o.strip() for o in settings.CORS_EXTRA_ORIGINS.split(",") if o.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(exc.errors())} validation errors")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


app.include_router(babies_router)
app.include_router(sessions_router)
app.include_router(insights_router)
