from __future__ import annotations

import argparse
import json
import logging
import sys

from lms_sync.config import settings
from lms_sync.errors import ExternalStoreError, NotFoundError, ValidationError
from lms_sync.repositories import EntityStore, open_store
from lms_sync.services.batch_membership_service import assign_students_to_batch
from lms_sync.services.legacy_store import build_legacy_reader
from lms_sync.services.reconciliation_service import (
    audit_legacy_store,
    import_legacy_batches,
    reconcile_batches,
    sync_batch_ids,
)
from lms_sync.services.roster_service import rebuild_all_rosters
from lms_sync.services.video_dedupe_service import dedupe_videos


logger = logging.getLogger('lms_sync.cli')

DRY_RUN_BANNER = 'DRY RUN - no changes will be made'


def _print_summary(title: str, summary: dict) -> None:
    print(f'--- {title} ---')
    for key, value in summary.items():
        print(f'  {key}: {value}')


def cmd_reconcile_batches(args: argparse.Namespace, store: EntityStore) -> int:
    if args.dry_run:
        print(DRY_RUN_BANNER)
    reader = build_legacy_reader(export_path=args.export_path)
    report = reconcile_batches(store, reader, dry_run=args.dry_run)
    for legacy_id, local_id in report.batch_map.mapping.items():
        print(f'  {legacy_id} -> {local_id} ({report.batch_map.match_kind[legacy_id]})')
    for legacy_id in report.batch_map.unmatched:
        print(f'  {legacy_id} -> NO MATCH')
    for warning in report.batch_map.warnings:
        print(f'  WARNING {warning}')
    _print_summary(
        'Batch reconciliation',
        {
            'mapped': len(report.batch_map.mapping),
            'unmatched': report.batch_map.unmatched_count,
            'users_updated': report.users_updated,
            'videos_updated': report.videos_updated,
            'rosters_updated': report.sweep.batches_updated if report.sweep else 0,
        },
    )
    return 0


def cmd_sync_memberships(args: argparse.Namespace, store: EntityStore) -> int:
    change = assign_students_to_batch(store, args.batch, args.students)
    for from_batch, ids in sorted(change.removed_from.items()):
        print(f'  moved {", ".join(sorted(ids))} out of {from_batch}')
    _print_summary(
        'Membership sync',
        {
            'batch_id': change.batch_id,
            'students': len(change.student_ids),
            'added': len(change.added),
            'pointers_updated': len(change.pointers_updated),
        },
    )
    return 0


def cmd_dedupe_videos(args: argparse.Namespace, store: EntityStore) -> int:
    if args.dry_run:
        print(DRY_RUN_BANNER)
    report = dedupe_videos(store, dry_run=args.dry_run)
    if args.verbose:
        for group in report.plan.groups:
            print(
                f'  [{group.kind}] keep {group.canonical_id} "{group.canonical_title}" '
                f'{group.action} {", ".join(group.loser_ids)}'
            )
    for warning in report.warnings:
        print(f'  {warning}')
    _print_summary(
        'Video dedupe',
        {
            'total_videos': report.plan.total_videos,
            'assigned_videos': report.plan.assigned_videos,
            'duplicate_groups': len(report.plan.groups),
            'to_unassign': len(report.plan.to_unassign),
            'to_delete': len(report.plan.to_delete),
            'unassigned': report.unassigned,
            'deleted': report.deleted,
        },
    )
    return 0


def cmd_rebuild_rosters(args: argparse.Namespace, store: EntityStore) -> int:
    sweep = rebuild_all_rosters(store)
    for rebuild in sweep.rebuilds:
        if rebuild.changed:
            print(f'  {rebuild.batch_id}: +{len(rebuild.added)} -{len(rebuild.removed)}')
    _print_summary('Roster rebuild', {'checked': sweep.batches_checked, 'updated': sweep.batches_updated})
    return 0


def cmd_import_legacy_batches(args: argparse.Namespace, store: EntityStore) -> int:
    reader = build_legacy_reader(export_path=args.export_path)
    result = import_legacy_batches(store, reader)
    for batch_id in result.created:
        print(f'  created {batch_id}')
    _print_summary('Legacy batch import', {'created': len(result.created), 'skipped': len(result.skipped)})
    return 0


def cmd_sync_batch_ids(args: argparse.Namespace, store: EntityStore) -> int:
    result = sync_batch_ids(store)
    _print_summary('Batch id sync', result.as_dict())
    return 0


def cmd_audit_legacy(args: argparse.Namespace, store: EntityStore) -> int:
    reader = build_legacy_reader(export_path=args.export_path)
    audit = audit_legacy_store(store, reader)
    if args.json:
        print(json.dumps(audit.as_dict(), indent=2, sort_keys=True))
        return 0
    counts = audit.as_dict()['counts']
    print('--- Counts ---')
    for entity, pair in counts.items():
        print(f'  {entity}: legacy={pair["legacy"]} local={pair["local"]}')
    print('--- Batch mapping ---')
    for legacy_id, local_id in audit.batch_map.mapping.items():
        print(f'  {legacy_id} -> {local_id}')
    for legacy_id in audit.batch_map.unmatched:
        print(f'  {legacy_id} -> NO MATCH')
    _print_summary(
        'Audit',
        {
            'students_pointer_mismatch': len(audit.students_pointer_mismatch),
            'legacy_students_missing': len(audit.legacy_students_missing),
            'legacy_videos_missing': len(audit.legacy_videos_missing),
        },
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='lms-sync', description='Batch, roster and classroom video consistency tools.')
    parser.add_argument('--log-level', default=settings.log_level, help='Logging level (default from LOG_LEVEL).')
    sub = parser.add_subparsers(dest='command', required=True)

    reconcile = sub.add_parser('reconcile-batches', help='Map legacy batch ids to local batches and relink pointers.')
    reconcile.add_argument('--dry-run', action='store_true', help='Report the mapping without writing.')
    reconcile.add_argument('--export-path', default=None, help='Read the legacy store from a JSON export.')
    reconcile.set_defaults(handler=cmd_reconcile_batches)

    memberships = sub.add_parser('sync-memberships', help='Assign students to one batch.')
    memberships.add_argument('--batch', required=True, help='Target batch id.')
    memberships.add_argument('--students', required=True, help='Comma separated student ids.')
    memberships.set_defaults(handler=cmd_sync_memberships)

    dedupe = sub.add_parser('dedupe-videos', help='Collapse duplicate classroom videos.')
    dedupe.add_argument('--dry-run', action='store_true', help='Show decisions without writing.')
    dedupe.add_argument('--verbose', action='store_true', help='Print every duplicate group.')
    dedupe.set_defaults(handler=cmd_dedupe_videos)

    rosters = sub.add_parser('rebuild-rosters', help='Recompute every batch roster from student pointers.')
    rosters.set_defaults(handler=cmd_rebuild_rosters)

    importer = sub.add_parser('import-legacy-batches', help='Create local batches missing from the legacy store.')
    importer.add_argument('--export-path', default=None, help='Read the legacy store from a JSON export.')
    importer.set_defaults(handler=cmd_import_legacy_batches)

    batch_ids = sub.add_parser('sync-batch-ids', help='Normalize batch pointers to current batch ids.')
    batch_ids.set_defaults(handler=cmd_sync_batch_ids)

    audit = sub.add_parser('audit-legacy', help='Compare the legacy store with the local store (read-only).')
    audit.add_argument('--export-path', default=None, help='Read the legacy store from a JSON export.')
    audit.add_argument('--json', action='store_true', help='Print the audit as JSON.')
    audit.set_defaults(handler=cmd_audit_legacy)
    return parser


def main(argv: list[str] | None = None, *, session_factory=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )
    try:
        with open_store(session_factory) as store:
            return args.handler(args, store)
    except (ValidationError, NotFoundError) as exc:
        logger.error('cli_command_rejected command=%s error=%s', args.command, exc)
        print(f'ERROR: {exc}', file=sys.stderr)
        return 1
    except ExternalStoreError as exc:
        logger.error('cli_command_failed command=%s error=%s', args.command, exc)
        print(f'ERROR: {exc}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    raise SystemExit(main())
