from __future__ import annotations

import logging
from dataclasses import dataclass, field

from lms_sync.core.ids import parse_optional_id
from lms_sync.errors import NotFoundError, ValidationError
from lms_sync.metrics import timed_service
from lms_sync.repositories import EntityStore
from lms_sync.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RosterRebuild:
    batch_id: str
    students: frozenset[str]
    added: frozenset[str] = frozenset()
    removed: frozenset[str] = frozenset()

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


@dataclass
class RosterSweep:
    batches_checked: int = 0
    batches_updated: int = 0
    rebuilds: list[RosterRebuild] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'batches_checked': self.batches_checked,
            'batches_updated': self.batches_updated,
            'updated_batch_ids': [row.batch_id for row in self.rebuilds if row.changed],
        }


def rebuild_roster(store: EntityStore, batch_id: str) -> RosterRebuild:
    """Recompute a batch roster from the students' own batch pointers.

    users.batch_id is authoritative; the stored roster is overwritten only when
    the two sets differ, so running this twice leaves the second run a no-op.
    """
    target_id = parse_optional_id(batch_id)
    if target_id is None:
        raise ValidationError('batch_id is required')
    if store.batches.get(target_id) is None:
        raise NotFoundError('Batch', target_id)

    expected = store.users.list_student_ids_with_batch(target_id)
    current = store.batches.roster_ids(target_id)
    if expected == current:
        return RosterRebuild(batch_id=target_id, students=frozenset(current))

    store.batches.replace_roster(target_id, expected)
    result = RosterRebuild(
        batch_id=target_id,
        students=frozenset(expected),
        added=frozenset(expected - current),
        removed=frozenset(current - expected),
    )
    record_observability_event('roster_drift')
    logger.warning(
        'roster_drift_detected batch_id=%s added=%s removed=%s',
        target_id,
        len(result.added),
        len(result.removed),
        extra={'batch_id': target_id, 'added': sorted(result.added), 'removed': sorted(result.removed)},
    )
    return result


@timed_service('rebuild_all_rosters')
def rebuild_all_rosters(store: EntityStore) -> RosterSweep:
    sweep = RosterSweep()
    for batch in store.batches.list_all():
        result = rebuild_roster(store, batch.id)
        sweep.batches_checked += 1
        sweep.rebuilds.append(result)
        if result.changed:
            sweep.batches_updated += 1
    record_observability_event('roster_sweep_run')
    logger.info('roster_sweep_done checked=%s updated=%s', sweep.batches_checked, sweep.batches_updated)
    return sweep
