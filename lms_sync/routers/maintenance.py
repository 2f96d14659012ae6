from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from lms_sync.core.router_guard import get_store, http_error_for, require_admin_token
from lms_sync.errors import ExternalStoreError, NotFoundError, ValidationError
from lms_sync.repositories import EntityStore
from lms_sync.route_logging import EndpointNameRoute
from lms_sync.schemas import OneToOneStudentRequest, RecordingImportRequest
from lms_sync.services.classroom_service import import_recording
from lms_sync.services.one_to_one_service import assign_one_to_one_student, release_one_to_one_student
from lms_sync.services.roster_service import rebuild_all_rosters
from lms_sync.services.video_dedupe_service import dedupe_videos


router = APIRouter(tags=['Maintenance'], dependencies=[Depends(require_admin_token)], route_class=EndpointNameRoute)


def _one_to_one_payload(batch) -> dict:
    return {
        'id': batch.id,
        'name': batch.name,
        'course': batch.course,
        'student_id': batch.student_id,
        'student_name': batch.student_name,
        'student_email': batch.student_email,
    }


@router.post('/api/admin/rosters/rebuild')
def admin_rebuild_rosters(store: EntityStore = Depends(get_store)):
    try:
        sweep = rebuild_all_rosters(store)
    except ExternalStoreError as exc:
        raise http_error_for(exc) from exc
    return sweep.as_dict()


@router.post('/api/admin/videos/dedupe')
def admin_dedupe_videos(
    dry_run: bool = Query(default=True),
    store: EntityStore = Depends(get_store),
):
    try:
        report = dedupe_videos(store, dry_run=dry_run)
    except ExternalStoreError as exc:
        raise http_error_for(exc) from exc
    return report.as_dict()


@router.post('/api/admin/videos/import')
def admin_import_recording(
    payload: RecordingImportRequest,
    store: EntityStore = Depends(get_store),
):
    try:
        video, created = import_recording(store, payload.model_dump())
    except (ValidationError, NotFoundError, ExternalStoreError) as exc:
        raise http_error_for(exc) from exc
    return {'created': created, 'video_id': video.id, 'content_id': video.external_content_id, 'batch_id': video.batch_id}


@router.put('/api/one-to-one-batches/{one_to_one_batch_id}/student')
def put_one_to_one_student(
    one_to_one_batch_id: str,
    payload: OneToOneStudentRequest,
    store: EntityStore = Depends(get_store),
):
    try:
        batch = assign_one_to_one_student(store, one_to_one_batch_id, payload.student_id)
    except (ValidationError, NotFoundError, ExternalStoreError) as exc:
        raise http_error_for(exc) from exc
    return _one_to_one_payload(batch)


@router.delete('/api/one-to-one-batches/{one_to_one_batch_id}/student')
def delete_one_to_one_student(
    one_to_one_batch_id: str,
    store: EntityStore = Depends(get_store),
):
    try:
        batch = release_one_to_one_student(store, one_to_one_batch_id)
    except (ValidationError, NotFoundError, ExternalStoreError) as exc:
        raise http_error_for(exc) from exc
    return _one_to_one_payload(batch)
