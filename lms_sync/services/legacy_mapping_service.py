"""Typed views over documents exported from the legacy document store.

All schema drift between the old collections and the current tables is
absorbed here; the reconciliation passes only see these dataclasses.
"""
from __future__ import annotations

from dataclasses import dataclass

from lms_sync.core.ids import parse_id_list, parse_optional_id
from lms_sync.core.video_ids import content_id_for
from lms_sync.errors import ValidationError
from lms_sync.models import BatchStatus, Role


@dataclass(frozen=True)
class LegacyBatch:
    id: str
    name: str
    course: str = ''
    teacher_id: str = ''
    teacher_name: str = ''
    status: str = BatchStatus.ACTIVE.value
    students: tuple[str, ...] = ()
    schedule_days: tuple[str, ...] = ()
    schedule_time: str = ''
    schedule_timezone: str = ''


@dataclass(frozen=True)
class LegacyUser:
    id: str
    email: str
    name: str = ''
    role: str = Role.STUDENT.value
    status: str = 'active'
    course: str | None = None
    batch_id: str | None = None


@dataclass(frozen=True)
class LegacyVideo:
    id: str
    title: str
    date: str = ''
    course: str | None = None
    batch_id: str | None = None
    youtube_video_url: str | None = None
    drive_id: str | None = None
    zoom_url: str | None = None
    content_id: str | None = None

    @property
    def match_key(self) -> tuple[str, str, str]:
        """title + date + primary link, the only stable identity a video has across stores."""
        link = self.youtube_video_url or self.drive_id or self.zoom_url or ''
        return (self.title.strip(), self.date.strip(), link.strip())


def _text(doc: dict, *keys: str, default: str = '') -> str:
    for key in keys:
        value = doc.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return default


def _require_id(doc: dict, kind: str) -> str:
    if not isinstance(doc, dict):
        raise ValidationError(f'Legacy {kind} document is not an object')
    legacy_id = parse_optional_id(doc.get('id') or doc.get('_id'))
    if legacy_id is None:
        raise ValidationError(f'Legacy {kind} document has no id')
    return legacy_id


def _schedule(doc: dict) -> tuple[tuple[str, ...], str, str]:
    raw = doc.get('schedule')
    if isinstance(raw, dict):
        days = raw.get('days') or []
        if isinstance(days, str):
            days = days.split(',')
        elif not isinstance(days, (list, tuple)):
            days = []
        return (
            tuple(str(day).strip() for day in days if str(day).strip()),
            _text(raw, 'time'),
            _text(raw, 'timezone', 'timeZone'),
        )
    if isinstance(raw, str) and raw.strip():
        return (), raw.strip(), ''
    return (), '', ''


def batch_from_legacy(doc: dict) -> LegacyBatch:
    legacy_id = _require_id(doc, 'batch')
    days, time_text, tz = _schedule(doc)
    students = doc.get('students')
    status = _text(doc, 'status', default=BatchStatus.ACTIVE.value).lower()
    if status not in {item.value for item in BatchStatus}:
        status = BatchStatus.ACTIVE.value
    return LegacyBatch(
        id=legacy_id,
        name=_text(doc, 'name', 'batchName'),
        course=_text(doc, 'course', 'courseName'),
        teacher_id=_text(doc, 'teacherId', 'teacher_id', 'instructorId'),
        teacher_name=_text(doc, 'teacherName', 'teacher_name', 'instructor'),
        status=status,
        students=tuple(parse_id_list(students if isinstance(students, (list, tuple, str)) else [])),
        schedule_days=days,
        schedule_time=time_text,
        schedule_timezone=tz,
    )


def user_from_legacy(doc: dict) -> LegacyUser:
    legacy_id = _require_id(doc, 'user')
    role = _text(doc, 'role', default=Role.STUDENT.value).lower()
    return LegacyUser(
        id=legacy_id,
        email=_text(doc, 'email').lower(),
        name=_text(doc, 'name', 'displayName'),
        role=role,
        status=_text(doc, 'status', default='active').lower(),
        course=_text(doc, 'course') or None,
        batch_id=parse_optional_id(doc.get('batchId', doc.get('batch_id'))),
    )


def video_from_legacy(doc: dict) -> LegacyVideo:
    legacy_id = _require_id(doc, 'classroom')
    youtube_url = _text(doc, 'youtubeVideoUrl', 'youtube_video_url') or None
    drive_id = _text(doc, 'driveId', 'drive_id') or None
    return LegacyVideo(
        id=legacy_id,
        title=_text(doc, 'title'),
        date=_text(doc, 'date'),
        course=_text(doc, 'course', 'courseId') or None,
        batch_id=parse_optional_id(doc.get('batchId', doc.get('batch_id'))),
        youtube_video_url=youtube_url,
        drive_id=drive_id,
        zoom_url=_text(doc, 'zoomUrl', 'zoom_url') or None,
        content_id=content_id_for(
            external_content_id=_text(doc, 'youtubeVideoId', 'externalContentId') or None,
            youtube_video_url=youtube_url,
            youtube_embed_url=_text(doc, 'youtubeEmbedUrl') or None,
            zoom_recording_id=_text(doc, 'zoomRecordingId') or None,
            drive_id=drive_id,
        ),
    )


def batch_fields_from_legacy(record: LegacyBatch) -> dict:
    """Column values for creating the local copy of a legacy batch."""
    return {
        'name': record.name,
        'course': record.course,
        'teacher_id': record.teacher_id,
        'teacher_name': record.teacher_name,
        'status': record.status,
        'schedule_days': ','.join(record.schedule_days),
        'schedule_time': record.schedule_time,
        'schedule_timezone': record.schedule_timezone,
        'legacy_id': record.id,
    }
