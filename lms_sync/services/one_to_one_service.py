from __future__ import annotations

import logging

from lms_sync.core.ids import parse_optional_id
from lms_sync.errors import NotFoundError, ValidationError
from lms_sync.models import OneToOneBatch, Role
from lms_sync.repositories import EntityStore


logger = logging.getLogger(__name__)


def _require_one_to_one(store: EntityStore, one_to_one_batch_id) -> OneToOneBatch:
    target_id = parse_optional_id(one_to_one_batch_id)
    if target_id is None:
        raise ValidationError('one_to_one_batch_id is required')
    batch = store.one_to_one.get(target_id)
    if batch is None:
        raise NotFoundError('OneToOneBatch', target_id)
    return batch


def assign_one_to_one_student(store: EntityStore, one_to_one_batch_id, student_id) -> OneToOneBatch:
    """Give a one-to-one batch its single student. Group batch pointers are untouched."""
    batch = _require_one_to_one(store, one_to_one_batch_id)
    raw_id = parse_optional_id(student_id)
    if raw_id is None:
        raise ValidationError('student_id is required')
    student = store.users.find_by_id_or_legacy(raw_id)
    if student is None:
        raise NotFoundError('User', raw_id)
    if student.role != Role.STUDENT.value:
        raise ValidationError(f'Not a student account: {raw_id}')

    # A student holds at most one one-to-one seat.
    for other in store.one_to_one.list_for_student(student.id):
        if other.id != batch.id:
            store.one_to_one.clear_student(other)
            logger.info('one_to_one_released batch_id=%s student_id=%s reason=reassigned', other.id, student.id)

    previous_student_id = batch.student_id
    store.one_to_one.set_student(batch, student)
    store.users.clear_one_to_one_pointers(batch.id, keep_user_id=student.id)
    store.users.set_one_to_one_batch(student, batch.id, course=(batch.course or '').strip() or None)
    logger.info(
        'one_to_one_assigned batch_id=%s student_id=%s previous_student_id=%s',
        batch.id,
        student.id,
        previous_student_id,
    )
    return batch


def release_one_to_one_student(store: EntityStore, one_to_one_batch_id) -> OneToOneBatch:
    batch = _require_one_to_one(store, one_to_one_batch_id)
    previous_student_id = batch.student_id
    store.one_to_one.clear_student(batch)
    cleared = store.users.clear_one_to_one_pointers(batch.id)
    logger.info(
        'one_to_one_released batch_id=%s student_id=%s pointers_cleared=%s',
        batch.id,
        previous_student_id,
        cleared,
    )
    return batch
