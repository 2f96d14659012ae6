"""Passes that line the local store up with the legacy document store.

The legacy store is only ever read. Every pass materializes both sides
before deciding anything, so a failing source aborts the pass instead of
producing a partial mapping.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from lms_sync.core.ids import parse_optional_id
from lms_sync.errors import ConsistencyWarning
from lms_sync.metrics import timed_service
from lms_sync.models import Batch, Role
from lms_sync.repositories import EntityStore
from lms_sync.services.legacy_mapping_service import LegacyBatch, batch_fields_from_legacy
from lms_sync.services.legacy_store import LegacyStoreReader
from lms_sync.services.observability_counters import record_observability_event
from lms_sync.services.roster_service import RosterSweep, rebuild_all_rosters


logger = logging.getLogger(__name__)

MATCH_LEGACY_ID = 'legacy_id'
MATCH_NAME_TEACHER = 'name_teacher'
MATCH_NAME = 'name'


@dataclass
class BatchMapping:
    mapping: dict[str, str] = field(default_factory=dict)
    unmatched: list[str] = field(default_factory=list)
    match_kind: dict[str, str] = field(default_factory=dict)
    warnings: list[ConsistencyWarning] = field(default_factory=list)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)

    def as_dict(self) -> dict:
        return {
            'mapping': dict(self.mapping),
            'match_kind': dict(self.match_kind),
            'unmatched': list(self.unmatched),
            'unmatched_count': self.unmatched_count,
            'warnings': [str(item) for item in self.warnings],
        }


@dataclass
class BatchRelinkCount:
    legacy_id: str
    local_id: str
    users: int = 0
    videos: int = 0


@dataclass
class ReconciliationReport:
    batch_map: BatchMapping
    dry_run: bool
    relinked: list[BatchRelinkCount] = field(default_factory=list)
    sweep: RosterSweep | None = None

    @property
    def users_updated(self) -> int:
        return sum(row.users for row in self.relinked)

    @property
    def videos_updated(self) -> int:
        return sum(row.videos for row in self.relinked)

    def as_dict(self) -> dict:
        return {
            'dry_run': self.dry_run,
            **self.batch_map.as_dict(),
            'users_updated': self.users_updated,
            'videos_updated': self.videos_updated,
            'per_batch': [
                {'legacy_id': row.legacy_id, 'local_id': row.local_id, 'users': row.users, 'videos': row.videos}
                for row in self.relinked
            ],
            'rosters': self.sweep.as_dict() if self.sweep else None,
        }


def _clean(value) -> str:
    return str(value or '').strip()


def build_legacy_batch_map(legacy_batches: Iterable[LegacyBatch], local_batches: Sequence) -> BatchMapping:
    """Match legacy batches to local ones: recorded legacy id, then (name, teacher), then name alone.

    Pure. Local batches are scanned in the order given and the first match
    wins. Every legacy id ends up in exactly one of mapping / unmatched.
    """
    result = BatchMapping()
    by_name_teacher: dict[tuple[str, str], object] = {}
    by_name: dict[str, list] = {}
    by_legacy_id: dict[str, object] = {}
    for local in local_batches:
        legacy_id = parse_optional_id(getattr(local, 'legacy_id', None))
        if legacy_id:
            by_legacy_id.setdefault(legacy_id, local)
        name = _clean(local.name)
        if not name:
            continue
        by_name_teacher.setdefault((name, _clean(local.teacher_id)), local)
        by_name.setdefault(name, []).append(local)

    for record in legacy_batches:
        if record.id in result.mapping or record.id in result.unmatched:
            continue
        imported = by_legacy_id.get(record.id)
        if imported is not None:
            result.mapping[record.id] = imported.id
            result.match_kind[record.id] = MATCH_LEGACY_ID
            continue
        name = _clean(record.name)
        teacher_id = _clean(record.teacher_id)
        exact = by_name_teacher.get((name, teacher_id)) if name and teacher_id else None
        if exact is not None:
            result.mapping[record.id] = exact.id
            result.match_kind[record.id] = MATCH_NAME_TEACHER
            continue

        candidates = by_name.get(name, []) if name else []
        if not candidates:
            result.unmatched.append(record.id)
            continue
        result.mapping[record.id] = candidates[0].id
        result.match_kind[record.id] = MATCH_NAME
        if len(candidates) > 1:
            result.warnings.append(
                ConsistencyWarning(
                    'ambiguous_name_match',
                    f'Legacy batch {record.id} matched {len(candidates)} local batches named {name!r}; kept the first',
                    tuple(item.id for item in candidates),
                )
            )
    return result


def apply_legacy_batch_map(store: EntityStore, mapping: dict[str, str], *, dry_run: bool = False) -> list[BatchRelinkCount]:
    """Rewrite student and video batch pointers still holding a legacy batch id."""
    out: list[BatchRelinkCount] = []
    for legacy_id, local_id in mapping.items():
        if legacy_id == local_id:
            continue
        row = BatchRelinkCount(legacy_id=legacy_id, local_id=local_id)
        if dry_run:
            row.users = store.users.count_students_with_batch(legacy_id)
            row.videos = store.videos.count_with_batch(legacy_id)
        else:
            local = store.batches.get(local_id)
            row.users = store.users.replace_student_batch_id(legacy_id, local_id)
            row.videos = store.videos.replace_batch_id(legacy_id, local_id, batch_name=local.name if local else None)
        if row.users or row.videos:
            logger.info(
                'legacy_batch_relinked legacy_id=%s local_id=%s users=%s videos=%s dry_run=%s',
                legacy_id,
                local_id,
                row.users,
                row.videos,
                dry_run,
            )
        out.append(row)
    return out


def _log_unmatched(batch_map: BatchMapping, legacy_batches: list[LegacyBatch]) -> None:
    if not batch_map.unmatched:
        return
    names = {record.id: record.name for record in legacy_batches}
    record_observability_event('legacy_batch_unmatched', count=len(batch_map.unmatched))
    for legacy_id in batch_map.unmatched:
        logger.warning('legacy_batch_unmatched legacy_id=%s name=%s', legacy_id, names.get(legacy_id, ''))


@timed_service('reconcile_batches')
def reconcile_batches(store: EntityStore, reader: LegacyStoreReader, *, dry_run: bool = False) -> ReconciliationReport:
    legacy_batches = reader.list_batches()
    local_batches = store.batches.list_all()
    batch_map = build_legacy_batch_map(legacy_batches, local_batches)
    _log_unmatched(batch_map, legacy_batches)
    for warning in batch_map.warnings:
        logger.warning('batch_mapping_warning %s', warning)

    report = ReconciliationReport(batch_map=batch_map, dry_run=dry_run)
    report.relinked = apply_legacy_batch_map(store, batch_map.mapping, dry_run=dry_run)
    if not dry_run:
        report.sweep = rebuild_all_rosters(store)
    logger.info(
        'reconcile_batches_done legacy=%s mapped=%s unmatched=%s users=%s videos=%s dry_run=%s',
        len(legacy_batches),
        len(batch_map.mapping),
        batch_map.unmatched_count,
        report.users_updated,
        report.videos_updated,
        dry_run,
    )
    return report


@dataclass
class LegacyImport:
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {'created': list(self.created), 'skipped': list(self.skipped)}


def import_legacy_batches(store: EntityStore, reader: LegacyStoreReader) -> LegacyImport:
    """Create local batches for legacy batches that have no local counterpart yet."""
    legacy_batches = reader.list_batches()
    result = LegacyImport()
    for record in legacy_batches:
        name = _clean(record.name)
        if not name:
            logger.warning('legacy_batch_import_skipped legacy_id=%s reason=no_name', record.id)
            result.skipped.append(record.id)
            continue
        existing = store.batches.find_by_legacy_id(record.id) or store.batches.find_by_name_and_teacher(
            name, _clean(record.teacher_id)
        )
        if existing is not None:
            result.skipped.append(record.id)
            continue
        created = store.batches.create(**batch_fields_from_legacy(record))
        result.created.append(created.id)
        logger.info('legacy_batch_imported legacy_id=%s batch_id=%s name=%s', record.id, created.id, name)
    return result


@dataclass
class BatchIdSync:
    users_updated: int = 0
    users_skipped: int = 0
    videos_updated: int = 0
    videos_skipped: int = 0
    videos_assigned_by_course: int = 0
    sweep: RosterSweep | None = None

    def as_dict(self) -> dict:
        return {
            'users_updated': self.users_updated,
            'users_skipped': self.users_skipped,
            'videos_updated': self.videos_updated,
            'videos_skipped': self.videos_skipped,
            'videos_assigned_by_course': self.videos_assigned_by_course,
            'rosters': self.sweep.as_dict() if self.sweep else None,
        }


class _BatchIndex:
    def __init__(self, batches: list[Batch]):
        self.by_id = {batch.id: batch for batch in batches}
        self.by_name: dict[str, Batch] = {}
        self.by_course: dict[str, list[Batch]] = {}
        for batch in batches:
            name = _clean(batch.name)
            if name:
                self.by_name.setdefault(name, batch)
            course = _clean(batch.course)
            if course:
                self.by_course.setdefault(course, []).append(batch)

    def first_for_course(self, course) -> Batch | None:
        matches = self.by_course.get(_clean(course), [])
        return matches[0] if matches else None

    def only_for_course(self, course) -> Batch | None:
        matches = self.by_course.get(_clean(course), [])
        return matches[0] if len(matches) == 1 else None


@timed_service('sync_batch_ids')
def sync_batch_ids(store: EntityStore) -> BatchIdSync:
    """Point every student and video at a current batch id, then rebuild rosters.

    A pointer that is not a current id is resolved by batch name, then by the
    first batch carrying the row's course. Videos without a batch are only
    placed when exactly one batch carries their course.
    """
    index = _BatchIndex(store.batches.list_all())
    result = BatchIdSync()
    orphans = []

    for user in store.users.list_students():
        if user.batch_id is None:
            continue
        current = parse_optional_id(user.batch_id)
        if current is None:
            store.users.set_batch(user, None)
            result.users_updated += 1
            continue
        if current in index.by_id:
            continue
        target = index.by_name.get(current) or index.first_for_course(user.course)
        if target is None:
            result.users_skipped += 1
            logger.warning('batch_id_unresolved entity=user id=%s batch_id=%s', user.id, current)
            continue
        store.users.set_batch(user, target.id)
        result.users_updated += 1

    for video in store.videos.list_all():
        current = parse_optional_id(video.batch_id)
        if current is None:
            orphans.append(video)
            continue
        if current in index.by_id:
            continue
        target = (
            index.by_name.get(_clean(video.batch_name))
            or index.by_name.get(current)
            or index.first_for_course(video.course)
        )
        if target is None:
            result.videos_skipped += 1
            logger.warning('batch_id_unresolved entity=video id=%s batch_id=%s', video.id, current)
            continue
        store.videos.set_batch(video, target.id, batch_name=target.name)
        result.videos_updated += 1

    result.sweep = rebuild_all_rosters(store)

    for video in orphans:
        target = index.only_for_course(video.course)
        if target is None:
            continue
        store.videos.set_batch(video, target.id, batch_name=target.name)
        result.videos_assigned_by_course += 1

    logger.info(
        'sync_batch_ids_done users_updated=%s users_skipped=%s videos_updated=%s videos_skipped=%s by_course=%s',
        result.users_updated,
        result.users_skipped,
        result.videos_updated,
        result.videos_skipped,
        result.videos_assigned_by_course,
    )
    return result


@dataclass
class LegacyAudit:
    legacy_batches: int
    local_batches: int
    legacy_students: int
    local_students: int
    legacy_videos: int
    local_videos: int
    batch_map: BatchMapping
    students_pointer_mismatch: list[str] = field(default_factory=list)
    legacy_students_missing: list[str] = field(default_factory=list)
    legacy_videos_missing: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'counts': {
                'batches': {'legacy': self.legacy_batches, 'local': self.local_batches},
                'students': {'legacy': self.legacy_students, 'local': self.local_students},
                'videos': {'legacy': self.legacy_videos, 'local': self.local_videos},
            },
            'batch_map': self.batch_map.as_dict(),
            'students_pointer_mismatch': list(self.students_pointer_mismatch),
            'legacy_students_missing': list(self.legacy_students_missing),
            'legacy_videos_missing': list(self.legacy_videos_missing),
        }


def _local_video_key(video) -> tuple[str, str, str]:
    link = video.youtube_video_url or video.drive_id or video.zoom_url or ''
    return ((video.title or '').strip(), (video.date or '').strip(), link.strip())


def audit_legacy_store(store: EntityStore, reader: LegacyStoreReader) -> LegacyAudit:
    """Compare both stores without writing to either."""
    legacy_batches = reader.list_batches()
    legacy_users = reader.list_users()
    legacy_videos = reader.list_videos()
    local_batches = store.batches.list_all()
    local_students = store.users.list_students()
    local_videos = store.videos.list_all()

    batch_map = build_legacy_batch_map(legacy_batches, local_batches)
    legacy_students = [user for user in legacy_users if user.role == Role.STUDENT.value]
    audit = LegacyAudit(
        legacy_batches=len(legacy_batches),
        local_batches=len(local_batches),
        legacy_students=len(legacy_students),
        local_students=len(local_students),
        legacy_videos=len(legacy_videos),
        local_videos=len(local_videos),
        batch_map=batch_map,
    )

    students_by_email = {(user.email or '').lower(): user for user in local_students if user.email}
    for legacy_user in legacy_students:
        local = students_by_email.get(legacy_user.email)
        if local is None:
            audit.legacy_students_missing.append(legacy_user.id)
            continue
        expected = batch_map.mapping.get(legacy_user.batch_id, legacy_user.batch_id) if legacy_user.batch_id else None
        if expected != parse_optional_id(local.batch_id):
            audit.students_pointer_mismatch.append(local.id)

    local_keys = {_local_video_key(video) for video in local_videos}
    local_content_ids = {video.external_content_id for video in local_videos if video.external_content_id}
    for legacy_video in legacy_videos:
        if legacy_video.match_key in local_keys:
            continue
        if legacy_video.content_id and legacy_video.content_id in local_content_ids:
            continue
        audit.legacy_videos_missing.append(legacy_video.id)

    logger.info(
        'legacy_audit_done batches=%s/%s students=%s/%s videos=%s/%s unmatched_batches=%s',
        audit.legacy_batches,
        audit.local_batches,
        audit.legacy_students,
        audit.local_students,
        audit.legacy_videos,
        audit.local_videos,
        batch_map.unmatched_count,
    )
    return audit
