from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request

from lms_sync.config import settings
from lms_sync.db import Base, engine
from lms_sync.routers import batches, maintenance
from lms_sync.scheduler import start_scheduler, stop_scheduler
from lms_sync.services.observability_counters import count_observability_events

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.metrics_slow_ms:
        logging.getLogger('lms_sync.request').info(
            'request_slow path=%s method=%s status_code=%s duration_ms=%.2f',
            request.url.path,
            request.method,
            response.status_code,
            duration_ms,
        )
    return response


app.include_router(batches.router)
app.include_router(maintenance.router)


@app.get('/health')
def health():
    return {
        'status': 'ok',
        'env': settings.app_env,
        'roster_drift_24h': count_observability_events('roster_drift'),
        'legacy_batch_unmatched_24h': count_observability_events('legacy_batch_unmatched'),
    }
