from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from lms_sync.core.ids import parse_optional_id
from lms_sync.core.video_ids import content_id_for, normalize_title
from lms_sync.errors import ConsistencyWarning
from lms_sync.metrics import timed_service
from lms_sync.models import ClassroomVideo
from lms_sync.repositories import EntityStore
from lms_sync.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)

KIND_CONTENT = 'content'
KIND_TITLE_DATE = 'title_date'
KIND_ORPHAN_CONTENT = 'orphan_content'

ACTION_UNASSIGN = 'unassign'
ACTION_DELETE = 'delete'


@dataclass(frozen=True)
class _VideoKey:
    id: str
    title: str
    batch_id: str | None
    content_id: str | None
    title_norm: str
    date_norm: str
    created_at: datetime


@dataclass(frozen=True)
class DuplicateGroup:
    kind: str
    key: tuple[str, ...]
    canonical_id: str
    canonical_title: str
    loser_ids: tuple[str, ...]
    action: str

    def as_dict(self) -> dict:
        return {
            'kind': self.kind,
            'key': list(self.key),
            'canonical_id': self.canonical_id,
            'canonical_title': self.canonical_title,
            'loser_ids': list(self.loser_ids),
            'action': self.action,
        }


@dataclass
class DedupePlan:
    groups: list[DuplicateGroup] = field(default_factory=list)
    total_videos: int = 0
    assigned_videos: int = 0

    @property
    def to_unassign(self) -> list[str]:
        # A batch loser that also loses in the orphan pool is deleted, not unassigned.
        deleted = set(self.to_delete)
        return [
            video_id
            for group in self.groups
            if group.action == ACTION_UNASSIGN
            for video_id in group.loser_ids
            if video_id not in deleted
        ]

    @property
    def to_delete(self) -> list[str]:
        return [video_id for group in self.groups if group.action == ACTION_DELETE for video_id in group.loser_ids]


@dataclass
class DedupeReport:
    plan: DedupePlan
    dry_run: bool
    unassigned: int = 0
    deleted: int = 0
    warnings: list[ConsistencyWarning] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'dry_run': self.dry_run,
            'total_videos': self.plan.total_videos,
            'assigned_videos': self.plan.assigned_videos,
            'duplicate_groups': len(self.plan.groups),
            'to_unassign': self.plan.to_unassign,
            'to_delete': self.plan.to_delete,
            'unassigned': self.unassigned,
            'deleted': self.deleted,
            'groups': [group.as_dict() for group in self.plan.groups],
            'warnings': [str(item) for item in self.warnings],
        }


def _video_key(video) -> _VideoKey:
    created_at = getattr(video, 'created_at', None) or datetime.min
    return _VideoKey(
        id=str(video.id),
        title=video.title or '',
        batch_id=parse_optional_id(getattr(video, 'batch_id', None)),
        content_id=content_id_for(
            external_content_id=getattr(video, 'external_content_id', None),
            youtube_video_url=getattr(video, 'youtube_video_url', None),
            youtube_embed_url=getattr(video, 'youtube_embed_url', None),
            zoom_recording_id=getattr(video, 'zoom_recording_id', None),
            drive_id=getattr(video, 'drive_id', None),
        ),
        title_norm=normalize_title(video.title),
        date_norm=(getattr(video, 'date', None) or '').strip() or created_at.isoformat(),
        created_at=created_at,
    )


def _grouped(rows: Iterable[_VideoKey], key_fn) -> dict[tuple, list[_VideoKey]]:
    groups: dict[tuple, list[_VideoKey]] = {}
    for row in rows:
        key = key_fn(row)
        if key is None:
            continue
        groups.setdefault(key, []).append(row)
    return groups


def _collapse(groups: dict[tuple, list[_VideoKey]], *, kind: str, action: str) -> list[DuplicateGroup]:
    out: list[DuplicateGroup] = []
    for key, members in groups.items():
        if len(members) <= 1:
            continue
        canonical, *losers = members
        out.append(
            DuplicateGroup(
                kind=kind,
                key=tuple(key),
                canonical_id=canonical.id,
                canonical_title=canonical.title,
                loser_ids=tuple(row.id for row in losers),
                action=action,
            )
        )
    return out


def find_duplicate_videos(videos: Iterable) -> DedupePlan:
    """Group videos describing the same lecture and pick the earliest as canonical.

    Pure: nothing is written. Orphan grouping runs on the state the in-batch
    decisions would produce, so a single applied pass reaches a fixed point.
    """
    rows = sorted((_video_key(video) for video in videos), key=lambda row: (row.created_at, row.id))
    plan = DedupePlan(total_videos=len(rows), assigned_videos=sum(1 for row in rows if row.batch_id))

    content_groups = _collapse(
        _grouped(rows, lambda row: (row.batch_id, row.content_id) if row.batch_id and row.content_id else None),
        kind=KIND_CONTENT,
        action=ACTION_UNASSIGN,
    )
    unassigned = {video_id for group in content_groups for video_id in group.loser_ids}

    title_groups = _collapse(
        _grouped(
            (row for row in rows if row.id not in unassigned),
            lambda row: (row.batch_id, row.title_norm, row.date_norm) if row.batch_id and row.title_norm else None,
        ),
        kind=KIND_TITLE_DATE,
        action=ACTION_UNASSIGN,
    )
    unassigned.update(video_id for group in title_groups for video_id in group.loser_ids)

    # Rows unassigned above join the orphan pool they are about to land in.
    orphan_groups = _collapse(
        _grouped(
            (row for row in rows if row.batch_id is None or row.id in unassigned),
            lambda row: (row.content_id,) if row.content_id else None,
        ),
        kind=KIND_ORPHAN_CONTENT,
        action=ACTION_DELETE,
    )

    plan.groups = content_groups + title_groups + orphan_groups
    return plan


def _log_group(group: DuplicateGroup, *, dry_run: bool) -> None:
    verb = {ACTION_UNASSIGN: 'unassign', ACTION_DELETE: 'delete'}[group.action]
    logger.info(
        'video_duplicate_group kind=%s key=%s keep=%s %s=%s dry_run=%s',
        group.kind,
        '::'.join(group.key),
        group.canonical_id,
        verb,
        ','.join(group.loser_ids),
        dry_run,
    )


@timed_service('dedupe_videos')
def dedupe_videos(store: EntityStore, *, dry_run: bool = False) -> DedupeReport:
    videos = store.videos.list_all()
    plan = find_duplicate_videos(videos)
    report = DedupeReport(plan=plan, dry_run=dry_run)
    by_id: dict[str, ClassroomVideo] = {video.id: video for video in videos}

    for group in plan.groups:
        _log_group(group, dry_run=dry_run)

    if not plan.groups:
        report.warnings.append(ConsistencyWarning('no_duplicates', 'No duplicate classroom videos found'))
        logger.info('video_dedupe_clean total=%s', plan.total_videos)
        return report
    if dry_run:
        return report

    for video_id in plan.to_unassign:
        store.videos.set_batch(by_id[video_id], None)
        report.unassigned += 1
    for video_id in plan.to_delete:
        store.videos.delete(by_id[video_id])
        report.deleted += 1

    record_observability_event('video_duplicate_unassigned', count=report.unassigned)
    record_observability_event('video_duplicate_deleted', count=report.deleted)
    logger.info('video_dedupe_applied unassigned=%s deleted=%s', report.unassigned, report.deleted)
    return report
