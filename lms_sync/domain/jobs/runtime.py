from __future__ import annotations

import logging

from lms_sync.domain.jobs.job_lock import acquire_job_lock, release_job_lock
from lms_sync.metrics import run_timed_job
from lms_sync.repositories import open_store
from lms_sync.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)


def with_store(task, *, job_label: str, session_factory=None) -> None:
    lock_token = acquire_job_lock(job_label)
    if not lock_token:
        logger.info('job_lock_skipped_concurrent job=%s', job_label)
        record_observability_event(f'job_lock_skipped:{job_label}')
        return
    logger.info('job_lock_acquired job=%s', job_label)
    try:
        with open_store(session_factory) as store:
            try:
                task(store)
                record_observability_event(f'job_success_count:{job_label}')
            except Exception:
                store.db.rollback()
                logger.exception('job_failure job=%s', job_label)
                record_observability_event(f'job_failure_count:{job_label}')
    finally:
        release_job_lock(job_label, lock_token)


def run_job(label: str, task, *, session_factory=None) -> None:
    run_timed_job(label, lambda: with_store(task, job_label=label, session_factory=session_factory))
