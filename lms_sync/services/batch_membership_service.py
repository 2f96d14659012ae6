from __future__ import annotations

import logging
from dataclasses import dataclass, field

from lms_sync.config import settings
from lms_sync.core.ids import parse_id_list, parse_optional_id
from lms_sync.errors import NotFoundError, ValidationError
from lms_sync.models import Batch, Role, User
from lms_sync.repositories import EntityStore


logger = logging.getLogger(__name__)


@dataclass
class MembershipChange:
    batch_id: str
    student_ids: list[str]
    added: set[str] = field(default_factory=set)
    removed_from: dict[str, set[str]] = field(default_factory=dict)
    pointers_updated: set[str] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed_from or self.pointers_updated)

    def as_dict(self) -> dict:
        return {
            'batch_id': self.batch_id,
            'student_ids': list(self.student_ids),
            'added': sorted(self.added),
            'removed_from': {key: sorted(value) for key, value in sorted(self.removed_from.items())},
            'pointers_updated': sorted(self.pointers_updated),
        }


def _require_batch(store: EntityStore, batch_id) -> Batch:
    target_id = parse_optional_id(batch_id)
    if target_id is None:
        raise ValidationError('batch_id is required')
    batch = store.batches.get(target_id)
    if batch is None:
        raise NotFoundError('Batch', target_id)
    return batch


def _validate_student_ids(student_ids) -> list[str]:
    if student_ids is None or isinstance(student_ids, (bytes, dict)):
        raise ValidationError('student_ids must be a list of identifiers')
    if not isinstance(student_ids, str):
        try:
            student_ids = list(student_ids)
        except TypeError as exc:
            raise ValidationError('student_ids must be a list of identifiers') from exc
        if any(not isinstance(item, (str, int)) or isinstance(item, bool) for item in student_ids):
            raise ValidationError('student_ids must contain only string identifiers')
    ids = parse_id_list(student_ids)
    if not ids:
        raise ValidationError('student_ids must not be empty')
    return ids


def _resolve_students(store: EntityStore, raw_ids: list[str]) -> dict[str, User]:
    """Map each requested id (local or legacy) to its student row, before any write."""
    resolved: dict[str, User] = {}
    missing: list[str] = []
    not_students: list[str] = []
    for raw_id in raw_ids:
        user = store.users.find_by_id_or_legacy(raw_id)
        if user is None:
            missing.append(raw_id)
        elif user.role != Role.STUDENT.value:
            not_students.append(raw_id)
        else:
            resolved[raw_id] = user
    if missing:
        raise NotFoundError('User', ', '.join(missing))
    if not_students:
        raise ValidationError(f"Not student accounts: {', '.join(not_students)}")
    return resolved


def assign_students_to_batch(
    store: EntityStore,
    batch_id,
    student_ids,
    *,
    propagate_course: bool | None = None,
) -> MembershipChange:
    """Move students into one batch, keeping exactly one batch per student.

    Steps run as separate writes: exclusivity across every other roster, the
    target roster union, then the per-student pointer. A failure part way is
    not rolled back; rebuild_all_rosters converges the projection afterwards.
    """
    batch = _require_batch(store, batch_id)
    raw_ids = _validate_student_ids(student_ids)
    students = _resolve_students(store, raw_ids)
    if propagate_course is None:
        propagate_course = settings.propagate_batch_course

    canonical_ids: list[str] = []
    for raw_id in raw_ids:
        user_id = students[raw_id].id
        if user_id not in canonical_ids:
            canonical_ids.append(user_id)
    # Rosters written before migration may still carry legacy ids.
    roster_aliases = set(canonical_ids) | set(raw_ids) | {
        user.legacy_id for user in students.values() if user.legacy_id
    }

    change = MembershipChange(batch_id=batch.id, student_ids=canonical_ids)

    for other_batch_id in store.batches.list_batch_ids_containing(roster_aliases, exclude_batch_id=batch.id):
        removed = store.batches.remove_students(other_batch_id, roster_aliases)
        if removed:
            change.removed_from[other_batch_id] = removed
            logger.info('batch_membership_moved from_batch=%s students=%s', other_batch_id, sorted(removed))

    stale_aliases = (roster_aliases - set(canonical_ids)) & store.batches.roster_ids(batch.id)
    if stale_aliases:
        store.batches.remove_students(batch.id, stale_aliases)
    change.added = store.batches.add_students(batch.id, canonical_ids)

    course = ((batch.course or '').strip() or None) if propagate_course else None
    users_by_id = {user.id: user for user in students.values()}
    for user_id in canonical_ids:
        if store.users.set_batch(users_by_id[user_id], batch.id, course=course):
            change.pointers_updated.add(user_id)

    logger.info(
        'batch_membership_assigned batch_id=%s students=%s added=%s moved=%s',
        batch.id,
        len(canonical_ids),
        len(change.added),
        sum(len(ids) for ids in change.removed_from.values()),
    )
    return change


def remove_student_from_batch(store: EntityStore, batch_id, student_id) -> MembershipChange:
    """Drop a student from a roster and clear the pointer. The user row is kept."""
    batch = _require_batch(store, batch_id)
    raw_id = parse_optional_id(student_id)
    if raw_id is None:
        raise ValidationError('student_id is required')

    user = store.users.find_by_id_or_legacy(raw_id)
    aliases = {raw_id}
    if user is not None:
        aliases.add(user.id)
        if user.legacy_id:
            aliases.add(user.legacy_id)

    change = MembershipChange(batch_id=batch.id, student_ids=[user.id if user else raw_id])
    removed = store.batches.remove_students(batch.id, aliases)
    if removed:
        change.removed_from[batch.id] = removed

    # A pointer naming another batch belongs to that batch's roster; leave it.
    if user is not None and user.batch_id is not None and parse_optional_id(user.batch_id) in (batch.id, None):
        store.users.set_batch(user, None)
        change.pointers_updated.add(user.id)

    logger.info('batch_membership_removed batch_id=%s student_id=%s', batch.id, raw_id)
    return change


def list_batch_membership(store: EntityStore, batch_id) -> dict:
    """Roster next to pointer view, for inspecting drift between the two."""
    batch = _require_batch(store, batch_id)
    roster = store.batches.roster_ids(batch.id)
    pointers = store.users.list_student_ids_with_batch(batch.id)
    return {
        'batch_id': batch.id,
        'name': batch.name,
        'course': batch.course,
        'roster': sorted(roster),
        'pointer_students': sorted(pointers),
        'in_sync': roster == pointers,
    }
