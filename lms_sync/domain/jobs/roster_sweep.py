from __future__ import annotations

from lms_sync.domain.jobs.runtime import run_job
from lms_sync.services.roster_service import rebuild_all_rosters


def execute(session_factory=None) -> None:
    run_job('roster_sweep', lambda store: rebuild_all_rosters(store), session_factory=session_factory)
