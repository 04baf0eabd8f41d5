# ============================================================================
# MODEL CHECK - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - FastAPI application entry point
# PURPOSE: Wire repositories, worker pool, scheduler and API together
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Model Check Main Application

FastAPI application that:
1. Runs scheduled and manual health-check detection runs
2. Dispatches probes through the concurrency-bounded worker pool
3. Serves config, progress, dashboard and channel maintenance endpoints

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from __version__ import __version__, BUILD_DATE, CODENAME
from repositories import (
    init_pool,
    close_pool,
    deploy_schema,
    ChannelRepository,
    ModelRepository,
    CheckLogRepository,
    SchedulerConfigRepository,
    ProbeJobRepository,
)
from probes import get_probe_client, close_probe_client
from messaging import get_broadcaster
from worker import JobQueue, ProbeExecutor, WorkerPool
from scheduler import TriggerScheduler
from services import (
    ConfigService,
    DashboardService,
    DetectionService,
    ModelSyncService,
    ResultAggregator,
    RetentionService,
)
from api.routes import router, set_services

from health import health_router, get_registry
from health.checks import register_engine_checks

from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup order matters: pending jobs are restored into the queue before
    the worker pool starts, and the pool is dispatching before the timer
    can fire a new run.
    """
    logger.info(f"Starting {CODENAME} v{__version__} (Build {BUILD_DATE})")

    pool = await init_pool(
        min_size=int(os.environ.get("DB_POOL_MIN", "2")),
        max_size=int(os.environ.get("DB_POOL_MAX", "10")),
    )

    if os.environ.get("AUTO_BOOTSTRAP_SCHEMA", "").lower() == "true":
        logger.info("Auto-bootstrap enabled, deploying schema...")
        count = await deploy_schema(pool)
        logger.info(f"Schema bootstrap executed {count} statements")

    channel_repo = ChannelRepository(pool)
    model_repo = ModelRepository(pool)
    check_log_repo = CheckLogRepository(pool)
    job_repo = ProbeJobRepository(pool)

    probe_client = get_probe_client()
    broadcaster = get_broadcaster()
    aggregator = ResultAggregator(check_log_repo)
    queue = JobQueue(store=job_repo)

    config_service = ConfigService(SchedulerConfigRepository(pool))
    config = await config_service.load()

    executor = ProbeExecutor(
        queue=queue,
        probe_client=probe_client,
        aggregator=aggregator,
        broadcaster=broadcaster,
        channel_lookup=channel_repo.get,
    )
    worker_pool = WorkerPool(queue, executor, broadcaster, config)

    sync_service = ModelSyncService(channel_repo, model_repo, probe_client)
    retention_service = RetentionService(check_log_repo, job_repo=job_repo)
    dashboard_service = DashboardService(channel_repo, model_repo, check_log_repo, aggregator)
    detection_service = DetectionService(
        config_service,
        queue,
        broadcaster,
        channel_repo,
        model_repo,
        sync_service=sync_service,
    )

    scheduler = TriggerScheduler(
        on_detect=detection_service.run_scheduled,
        on_cleanup=retention_service.cleanup,
    )
    detection_service.scheduler = scheduler

    config_service.add_listener(scheduler.reload)
    config_service.add_listener(worker_pool.apply_limits)

    await detection_service.restore()

    await worker_pool.start()
    scheduler.start(config)

    set_services(
        config_service=config_service,
        detection_service=detection_service,
        dashboard_service=dashboard_service,
        sync_service=sync_service,
        retention_service=retention_service,
        scheduler=scheduler,
        broadcaster=broadcaster,
        worker_pool=worker_pool,
    )

    register_engine_checks(pool, worker_pool, scheduler)
    logger.info(f"Health checks initialized ({len(get_registry())} checks registered)")

    yield

    logger.info(f"Shutting down {CODENAME}...")

    scheduler.stop()
    await worker_pool.stop()
    broadcaster.close_all()
    await close_probe_client()
    await close_pool()

    logger.info(f"{CODENAME} stopped")


app = FastAPI(
    title="Model Check",
    description="Scheduled health-check detection for AI model endpoints",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# /livez, /readyz, /health
app.include_router(health_router)

app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "service": CODENAME,
        "version": __version__,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
