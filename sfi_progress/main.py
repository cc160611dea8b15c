"""SFI Progress Service API - FastAPI over the local progress cache"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sfi_progress.config import get_settings
from sfi_progress.services.container import init_container, get_container, set_container
from sfi_progress.routers import progress, badges, goals

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = init_container(settings)
    container.start()
    logger.info(f"{settings.APP_NAME} {settings.VERSION} started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        await container.shutdown()
        set_container(None)


app = FastAPI(
    title=settings.APP_NAME,
    description="Progress, streaks, badges and weekly goals for SFI learners",
    version=settings.VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

app.include_router(progress.router)
app.include_router(badges.router)
app.include_router(goals.router)

app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_credentials=True, allow_methods=["*"], allow_headers=["*"])


@app.get("/")
async def root():
    return {"service": "sfi-progress-service", "status": "running", "version": settings.VERSION}


@app.get("/health")
async def health():
    try:
        container = get_container()
        container.repository.table.meta.client.describe_table(TableName=settings.DYNAMODB_PROGRESS_TABLE)
        return {"status": "healthy", "dynamodb": "connected"}
    except Exception as e:
        logger.warning(f"Health check DynamoDB connection failed: {str(e)}")
        # Healthy anyway: progress is served from the local cache
        return {"status": "healthy", "dynamodb": "unavailable", "warning": str(e)[:100]}
