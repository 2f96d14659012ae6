from __future__ import annotations

import logging
import threading
import time
import uuid

import redis

from lms_sync.config import settings


logger = logging.getLogger(__name__)
_lock = threading.RLock()
_held: dict[str, tuple[str, float]] = {}
_KEY_PREFIX = 'lms_sync:job_lock'
_client: redis.Redis | None = None
_client_url: str | None = None


def _lock_key(job_label: str) -> str:
    return f'{_KEY_PREFIX}:{job_label}'


def _redis_client() -> redis.Redis | None:
    """Shared client when job_lock_redis_url is set; None selects the process-local lock."""
    global _client, _client_url
    url = (settings.job_lock_redis_url or '').strip()
    if not url:
        return None
    with _lock:
        if _client is None or _client_url != url:
            _client = redis.Redis.from_url(url, decode_responses=True)
            _client_url = url
        return _client


def acquire_job_lock(job_label: str, *, ttl_seconds: int = 900) -> str | None:
    token = uuid.uuid4().hex
    ttl = max(1, int(ttl_seconds))

    # Redis path (atomic SET NX EX), shared by every worker process.
    client = _redis_client()
    if client is not None:
        key = _lock_key(job_label)
        try:
            ok = client.set(key, token, nx=True, ex=ttl)
        except redis.RedisError:
            logger.exception('job_lock_redis_acquire_failed', extra={'key': key})
            return None
        return token if ok else None

    now = time.monotonic()
    with _lock:
        existing = _held.get(job_label)
        if existing is not None and existing[1] > now:
            return None
        _held[job_label] = (token, now + ttl)
        return token


def release_job_lock(job_label: str, token: str) -> None:
    if not token:
        return

    client = _redis_client()
    if client is not None:
        key = _lock_key(job_label)
        try:
            if client.get(key) == token:
                client.delete(key)
        except redis.RedisError:
            logger.exception('job_lock_redis_release_failed', extra={'key': key})
        return

    with _lock:
        current = _held.get(job_label)
        if current is None:
            return
        if current[0] == token:
            del _held[job_label]
