import multiprocessing
import os

# Every worker schedules the roster sweep; set JOB_LOCK_REDIS_URL so only one runs at a time.
wsgi_app = "lms_sync.main:app"
bind = os.getenv("LMS_SYNC_BIND", "127.0.0.1:8010")
workers = int(os.getenv("LMS_SYNC_WORKERS", multiprocessing.cpu_count() + 1))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 120
graceful_timeout = 30
keepalive = 5
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
