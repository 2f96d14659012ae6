from __future__ import annotations

import logging

from lms_sync.core.ids import parse_optional_id
from lms_sync.core.video_ids import content_id_for, extract_youtube_id, extract_zoom_details
from lms_sync.errors import NotFoundError, ValidationError
from lms_sync.models import ClassroomVideo, VideoSource
from lms_sync.repositories import EntityStore


logger = logging.getLogger(__name__)

_SOURCES = {item.value for item in VideoSource}


def unassign_video_from_batch(store: EntityStore, batch_id, video_id) -> ClassroomVideo:
    """Detach a video from its batch. The video row itself is kept."""
    target_batch_id = parse_optional_id(batch_id)
    target_video_id = parse_optional_id(video_id)
    if target_batch_id is None:
        raise ValidationError('batch_id is required')
    if target_video_id is None:
        raise ValidationError('video_id is required')
    if store.batches.get(target_batch_id) is None:
        raise NotFoundError('Batch', target_batch_id)
    video = store.videos.get(target_video_id)
    if video is None:
        raise NotFoundError('ClassroomVideo', target_video_id)

    if parse_optional_id(video.batch_id) != target_batch_id:
        logger.info(
            'video_unassign_noop batch_id=%s video_id=%s current_batch=%s',
            target_batch_id,
            target_video_id,
            video.batch_id,
        )
        return video
    store.videos.set_batch(video, None)
    logger.info('video_unassigned batch_id=%s video_id=%s', target_batch_id, target_video_id)
    return video


def _source_for(payload: dict, *, youtube_url: str | None, zoom_url: str, drive_id: str | None) -> str:
    requested = str(payload.get('video_source') or '').strip().lower()
    if requested:
        if requested not in _SOURCES:
            raise ValidationError(f'Unsupported video_source: {requested}')
        return requested
    if youtube_url:
        return VideoSource.YOUTUBE_URL.value
    if zoom_url:
        return VideoSource.ZOOM.value
    if drive_id:
        return VideoSource.DRIVE.value
    return VideoSource.FIREBASE.value


def import_recording(store: EntityStore, payload: dict) -> tuple[ClassroomVideo, bool]:
    """Create a classroom video from an external recording unless it already exists.

    Returns (video, created). Recordings are keyed by content id, so
    replaying the same payload returns the existing row untouched.
    """
    if not isinstance(payload, dict):
        raise ValidationError('recording payload must be an object')
    title = str(payload.get('title') or '').strip()
    if not title:
        raise ValidationError('title is required')

    youtube_url = str(payload.get('youtube_video_url') or '').strip() or None
    embed_url = str(payload.get('youtube_embed_url') or '').strip() or None
    zoom_url, zoom_passcode = extract_zoom_details(payload.get('zoom_url'))
    if payload.get('zoom_passcode'):
        zoom_passcode = str(payload['zoom_passcode']).strip()
    zoom_recording_id = str(payload.get('zoom_recording_id') or '').strip() or None
    drive_id = str(payload.get('drive_id') or '').strip() or None

    content_id = content_id_for(
        external_content_id=payload.get('external_content_id'),
        youtube_video_url=youtube_url,
        youtube_embed_url=embed_url,
        zoom_recording_id=zoom_recording_id,
        drive_id=drive_id,
    )
    if content_id is None:
        raise ValidationError('recording has no content id')

    existing = store.videos.find_by_content_id(content_id)
    if existing is not None:
        logger.info('recording_import_skipped content_id=%s video_id=%s', content_id, existing.id)
        return existing, False

    batch_id = parse_optional_id(payload.get('batch_id'))
    batch = None
    if batch_id is not None:
        batch = store.batches.get(batch_id)
        if batch is None:
            raise NotFoundError('Batch', batch_id)

    youtube_id = extract_youtube_id(youtube_url or embed_url)
    video = store.videos.create(
        title=title,
        date=str(payload.get('date') or '').strip(),
        course=str(payload.get('course') or '').strip() or (batch.course if batch else None) or None,
        batch_id=batch.id if batch else None,
        batch_name=batch.name if batch else None,
        instructor=str(payload.get('instructor') or '').strip(),
        description=str(payload.get('description') or '').strip(),
        video_source=_source_for(payload, youtube_url=youtube_url, zoom_url=zoom_url, drive_id=drive_id),
        external_content_id=content_id,
        youtube_video_url=youtube_url,
        youtube_embed_url=embed_url or (f'https://www.youtube.com/embed/{youtube_id}' if youtube_id else None),
        zoom_url=zoom_url or None,
        zoom_passcode=zoom_passcode or None,
        zoom_recording_id=zoom_recording_id,
        drive_id=drive_id,
    )
    logger.info('recording_imported content_id=%s video_id=%s batch_id=%s', content_id, video.id, video.batch_id)
    return video, True
