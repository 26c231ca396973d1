# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import logging
import sentry_sdk
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from homework_helper import __version__
from homework_helper.config import Settings
from homework_helper.context import AppContext
from homework_helper.database import SessionLocal, engine, init_db
from homework_helper.errors import AppError, app_error_handler
from homework_helper.routers import analytics, student

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

settings = Settings.from_env()

# Initialize Sentry for error monitoring
if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=0.1,
        environment=settings.environment,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the application context on startup."""
    if init_db(engine):
        logger.info("Database tables ready")
    else:
        # Keep serving: answers still work, history and votes report 503
        logger.warning("Database unavailable at startup - continuing without persistence")

    app.state.context = AppContext.create(
        settings=settings,
        engine=engine,
        session_factory=SessionLocal,
    )

    yield

    logger.info("Shutting down...")
    engine.dispose()


tags_metadata = [
    {
        "name": "student",
        "description": "Ask homework questions, browse question history and vote.",
    },
    {
        "name": "analytics",
        "description": "Usage trends and system dashboard. **Requires admin access.**",
    },
]

app = FastAPI(
    title="HomeworkHelper API",
    description="AI homework help with community question history and Reddit-style voting.",
    version=__version__,
    lifespan=lifespan,
    openapi_tags=tags_metadata,
)

# CORS for the Expo / React Native client
ALLOWED_ORIGINS = [
    "http://localhost:8081",  # Expo dev server
    "http://localhost:19006",  # Expo web
]
ALLOWED_ORIGINS.extend(settings.cors_allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
)

app.add_exception_handler(AppError, app_error_handler)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    sentry_sdk.capture_exception(exc)
    return JSONResponse(status_code=500, content=AppError().to_dict())


app.include_router(student.router)
app.include_router(analytics.router)


@app.get("/")
def root():
    return {
        "message": "HomeworkHelper API",
        "version": __version__,
        "docs": "/docs"
    }


@app.get("/health")
def health_check(request: Request):
    """Liveness plus the status of each dependency; degraded still reports OK."""
    context: AppContext = request.app.state.context
    return {
        "status": "OK",
        "database": context.database_status().value,
        "answerService": context.answer_service_status().value,
    }
