from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from contextlib import asynccontextmanager
from database import database
from invoicing import __version__, __product__
from invoicing.errors import GENERIC_ERROR, INVALID_DATA
from invoicing.routes import (
    auth_router,
    company_router,
    clients_router,
    services_router,
    invoices_router,
    public_router,
    credits_router,
    subscriptions_router,
)
from utils.cache_policy import CachePolicyMiddleware
from job_runner import run_subscription_period_check

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.jobstores.mongodb import MongoDBJobStore

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_scheduler() -> AsyncIOScheduler:
    """Scheduler with a MongoDB job store, falling back to memory."""
    jobstores = {}
    mongo_url = os.environ.get('MONGO_URL')
    if mongo_url:
        try:
            from pymongo import MongoClient
            jobstores['default'] = MongoDBJobStore(
                database=os.environ.get('DB_NAME', 'invoicing'),
                collection='scheduled_jobs',
                client=MongoClient(mongo_url),
            )
            logger.info("MongoDB job store configured: scheduled_jobs")
        except Exception as e:
            logger.warning(f"Failed to configure MongoDB job store, using memory store: {e}")
            jobstores = {}
    return AsyncIOScheduler(jobstores=jobstores)


scheduler = None


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler

    if os.environ.get('PYTEST_RUNNING'):
        yield
        return

    # Startup
    logger.info(f"Starting {__product__} API")
    await database.connect()

    scheduler = build_scheduler()
    # Subscription periods: hourly on the hour
    scheduler.add_job(
        run_subscription_period_check,
        CronTrigger(minute=0),
        id="subscription_period_check",
        name="Subscription Period Check",
        replace_existing=True
    )
    scheduler.start()
    logger.info("Background job scheduler started")

    yield

    # Shutdown
    logger.info(f"Shutting down {__product__} API")
    scheduler.shutdown(wait=False)
    logger.info("Background job scheduler stopped")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title=f"{__product__} API",
    description="Multi-tenant invoicing: clients, services, invoices, PDF and email delivery",
    version=__version__,
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CachePolicyMiddleware)

# Include routers
app.include_router(auth_router)
app.include_router(company_router)
app.include_router(clients_router)
app.include_router(services_router)
app.include_router(invoices_router)
app.include_router(public_router)
app.include_router(credits_router)
app.include_router(subscriptions_router)


@app.get("/api")
async def root():
    return {
        "service": __product__,
        "version": __version__,
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning(
        "Validation failed path=%s errors=%s",
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=400,
        content={"detail": INVALID_DATA, "errors": jsonable_encoder(errors)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": GENERIC_ERROR}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8001")),
        reload=os.getenv("ENVIRONMENT") == "development"
    )
