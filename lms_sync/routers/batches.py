from __future__ import annotations

from fastapi import APIRouter, Depends

from lms_sync.core.router_guard import get_store, http_error_for, require_admin_token
from lms_sync.errors import ExternalStoreError, NotFoundError, ValidationError
from lms_sync.repositories import EntityStore
from lms_sync.route_logging import EndpointNameRoute
from lms_sync.schemas import BatchStudentsRequest
from lms_sync.services.batch_membership_service import (
    assign_students_to_batch,
    list_batch_membership,
    remove_student_from_batch,
)
from lms_sync.services.classroom_service import unassign_video_from_batch


router = APIRouter(prefix='/api/batches', tags=['Batches'], dependencies=[Depends(require_admin_token)], route_class=EndpointNameRoute)


@router.put('/{batch_id}/students')
def put_batch_students(
    batch_id: str,
    payload: BatchStudentsRequest,
    store: EntityStore = Depends(get_store),
):
    try:
        change = assign_students_to_batch(store, batch_id, payload.student_ids)
    except (ValidationError, NotFoundError, ExternalStoreError) as exc:
        raise http_error_for(exc) from exc
    return change.as_dict()


@router.delete('/{batch_id}/students/{student_id}')
def delete_batch_student(
    batch_id: str,
    student_id: str,
    store: EntityStore = Depends(get_store),
):
    try:
        change = remove_student_from_batch(store, batch_id, student_id)
    except (ValidationError, NotFoundError, ExternalStoreError) as exc:
        raise http_error_for(exc) from exc
    return change.as_dict()


@router.delete('/{batch_id}/videos/{video_id}')
def delete_batch_video(
    batch_id: str,
    video_id: str,
    store: EntityStore = Depends(get_store),
):
    try:
        video = unassign_video_from_batch(store, batch_id, video_id)
    except (ValidationError, NotFoundError, ExternalStoreError) as exc:
        raise http_error_for(exc) from exc
    return {'ok': True, 'video_id': video.id, 'batch_id': video.batch_id}


@router.get('/{batch_id}/roster')
def get_batch_roster(
    batch_id: str,
    store: EntityStore = Depends(get_store),
):
    try:
        return list_batch_membership(store, batch_id)
    except (ValidationError, NotFoundError, ExternalStoreError) as exc:
        raise http_error_for(exc) from exc
