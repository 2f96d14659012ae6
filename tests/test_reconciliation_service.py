import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lms_sync.db import Base
from lms_sync.errors import ExternalStoreError
from lms_sync.models import Batch, BatchStudent, ClassroomVideo, User
from lms_sync.repositories import EntityStore
from lms_sync.services.legacy_mapping_service import LegacyBatch
from lms_sync.services.legacy_store import JsonExportLegacyReader
from lms_sync.services.observability_counters import clear_observability_events, count_observability_events
from lms_sync.services.reconciliation_service import (
    MATCH_LEGACY_ID,
    MATCH_NAME,
    MATCH_NAME_TEACHER,
    audit_legacy_store,
    build_legacy_batch_map,
    import_legacy_batches,
    reconcile_batches,
    sync_batch_ids,
)


def _local(batch_id, name, teacher_id='', legacy_id=None):
    return SimpleNamespace(id=batch_id, name=name, teacher_id=teacher_id, legacy_id=legacy_id)


class BuildLegacyBatchMapTests(unittest.TestCase):
    def test_teacher_match_beats_name_only_match(self):
        result = build_legacy_batch_map(
            [LegacyBatch(id='fs1', name='Cohort A', teacher_id='T1')],
            [_local('m2', 'Cohort A', 'T2'), _local('m1', 'Cohort A', 'T1')],
        )
        self.assertEqual(result.mapping, {'fs1': 'm1'})
        self.assertEqual(result.match_kind, {'fs1': MATCH_NAME_TEACHER})
        self.assertEqual(result.warnings, [])

    def test_recorded_legacy_id_beats_name_matches(self):
        result = build_legacy_batch_map(
            [LegacyBatch(id='fs1', name='Cohort A', teacher_id='T1')],
            [_local('m1', 'Cohort A', 'T1'), _local('m2', 'Cohort A (renamed)', 'T2', legacy_id='fs1')],
        )
        self.assertEqual(result.mapping, {'fs1': 'm2'})
        self.assertEqual(result.match_kind, {'fs1': MATCH_LEGACY_ID})

    def test_name_only_fallback_takes_first_local_and_warns(self):
        result = build_legacy_batch_map(
            [LegacyBatch(id='fs1', name='Cohort A', teacher_id='T9')],
            [_local('m1', 'Cohort A', 'T1'), _local('m2', 'Cohort A', 'T2')],
        )
        self.assertEqual(result.mapping, {'fs1': 'm1'})
        self.assertEqual(result.match_kind, {'fs1': MATCH_NAME})
        self.assertEqual([warning.code for warning in result.warnings], ['ambiguous_name_match'])
        self.assertEqual(result.warnings[0].ids, ('m1', 'm2'))

    def test_every_legacy_batch_is_mapped_or_unmatched(self):
        legacy = [
            LegacyBatch(id='fs1', name='Cohort A', teacher_id='T1'),
            LegacyBatch(id='fs2', name='Ghost'),
            LegacyBatch(id='fs3', name=''),
            LegacyBatch(id='fs4', name=' Cohort B '),
        ]
        result = build_legacy_batch_map(legacy, [_local('m1', 'Cohort A', 'T1'), _local('m2', 'Cohort B')])

        self.assertEqual(set(result.mapping) | set(result.unmatched), {'fs1', 'fs2', 'fs3', 'fs4'})
        self.assertEqual(set(result.mapping) & set(result.unmatched), set())
        self.assertEqual(result.unmatched, ['fs2', 'fs3'])
        self.assertEqual(result.mapping['fs4'], 'm2')
        self.assertEqual(result.unmatched_count, 2)


class _FailingReader:
    def list_batches(self):
        raise ExternalStoreError('legacy store unreachable')

    def list_users(self):
        raise ExternalStoreError('legacy store unreachable')

    def list_videos(self):
        raise ExternalStoreError('legacy store unreachable')


class ReconciliationServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_reconciliation.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)
        cls._export_path = Path(cls._tmpdir.name) / 'legacy_export.json'
        cls._export_path.write_text(
            json.dumps(
                {
                    'batches': [
                        {'id': 'fs1', 'name': 'Cohort A', 'teacherId': 'T1', 'course': 'Math'},
                        {'id': 'fs2', 'name': 'Evening Batch', 'teacherId': 'T3', 'course': 'Chemistry'},
                        {'name': 'No id at all'},
                    ],
                    'users': {
                        'fs-u1': {'email': 'Asha@Example.com', 'role': 'student', 'batchId': 'fs1'},
                        'fs-u2': {'email': 'nobody@example.com', 'role': 'student', 'batchId': 'fs1'},
                        'fs-u3': {'email': 'teacher@example.com', 'role': 'teacher'},
                    },
                    'classroom': [
                        {
                            'id': 'fs-v1',
                            'title': 'Lecture 1',
                            'date': '2024-03-01',
                            'youtubeVideoUrl': 'https://youtu.be/dQw4w9WgXcQ',
                            'batchId': 'fs1',
                        },
                        {'id': 'fs-v2', 'title': 'Lecture 2', 'date': '2024-03-02', 'driveId': 'drive-2'},
                    ],
                }
            ),
            encoding='utf-8',
        )

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        clear_observability_events()
        db = self._session_factory()
        try:
            for table in (BatchStudent, Batch, User, ClassroomVideo):
                db.query(table).delete()
            db.commit()
            db.add(Batch(id='m1', name='Cohort A', teacher_id='T1', course='Math', created_at=datetime(2024, 1, 1)))
            db.add(Batch(id='m2', name='Cohort A', teacher_id='T2', course='Math', created_at=datetime(2024, 1, 2)))
            db.add(User(id='s1', name='Asha', email='asha@example.com', role='student', batch_id='fs1'))
            db.add(
                ClassroomVideo(
                    id='v1',
                    title='Lecture 1',
                    date='2024-03-01',
                    batch_id='fs1',
                    youtube_video_url='https://youtu.be/dQw4w9WgXcQ',
                    created_at=datetime(2024, 3, 1),
                )
            )
            db.commit()
        finally:
            db.close()
        self.db = self._session_factory()
        self.store = EntityStore(self.db)
        self.reader = JsonExportLegacyReader(self._export_path)

    def tearDown(self):
        self.db.close()

    def test_reconcile_relinks_pointers_and_rebuilds_rosters(self):
        report = reconcile_batches(self.store, self.reader)

        self.assertEqual(report.batch_map.mapping, {'fs1': 'm1'})
        self.assertEqual(report.batch_map.unmatched, ['fs2'])
        self.assertEqual(report.users_updated, 1)
        self.assertEqual(report.videos_updated, 1)
        self.assertEqual(self.store.users.get('s1').batch_id, 'm1')
        video = self.store.videos.get('v1')
        self.assertEqual(video.batch_id, 'm1')
        self.assertEqual(video.batch_name, 'Cohort A')
        self.assertEqual(self.store.batches.roster_ids('m1'), {'s1'})
        self.assertEqual(count_observability_events('legacy_batch_unmatched'), 1)

    def test_reconcile_dry_run_counts_without_writing(self):
        report = reconcile_batches(self.store, self.reader, dry_run=True)

        self.assertEqual(report.users_updated, 1)
        self.assertEqual(report.videos_updated, 1)
        self.assertIsNone(report.sweep)
        self.assertEqual(self.store.users.get('s1').batch_id, 'fs1')
        self.assertEqual(self.store.videos.get('v1').batch_id, 'fs1')
        self.assertEqual(self.store.batches.roster_ids('m1'), set())

    def test_reconcile_twice_changes_nothing_more(self):
        reconcile_batches(self.store, self.reader)
        second = reconcile_batches(self.store, self.reader)
        self.assertEqual(second.users_updated, 0)
        self.assertEqual(second.videos_updated, 0)
        self.assertEqual(second.sweep.batches_updated, 0)

    def test_unreachable_legacy_store_aborts_without_writes(self):
        with self.assertRaises(ExternalStoreError):
            reconcile_batches(self.store, _FailingReader())
        self.assertEqual(self.store.users.get('s1').batch_id, 'fs1')

    def test_missing_export_file_is_an_external_store_error(self):
        reader = JsonExportLegacyReader(Path(self._tmpdir.name) / 'missing.json')
        with self.assertRaises(ExternalStoreError):
            reconcile_batches(self.store, reader)

    def test_import_creates_missing_batches_once(self):
        first = import_legacy_batches(self.store, self.reader)
        self.assertEqual(len(first.created), 1)
        self.assertEqual(first.skipped, ['fs1'])
        created = self.store.batches.get(first.created[0])
        self.assertEqual(created.name, 'Evening Batch')
        self.assertEqual(created.legacy_id, 'fs2')
        self.assertEqual(created.course, 'Chemistry')

        second = import_legacy_batches(self.store, self.reader)
        self.assertEqual(second.created, [])
        self.assertEqual(sorted(second.skipped), ['fs1', 'fs2'])

        preview = reconcile_batches(self.store, self.reader, dry_run=True)
        self.assertEqual(preview.batch_map.mapping['fs2'], created.id)
        self.assertEqual(preview.batch_map.match_kind['fs2'], MATCH_LEGACY_ID)

    def test_audit_is_read_only_and_counts_both_sides(self):
        audit = audit_legacy_store(self.store, self.reader)

        self.assertEqual((audit.legacy_batches, audit.local_batches), (2, 2))
        self.assertEqual((audit.legacy_students, audit.local_students), (2, 1))
        self.assertEqual((audit.legacy_videos, audit.local_videos), (2, 1))
        self.assertEqual(audit.legacy_students_missing, ['fs-u2'])
        self.assertEqual(audit.students_pointer_mismatch, ['s1'])
        self.assertEqual(audit.legacy_videos_missing, ['fs-v2'])
        self.assertEqual(self.store.users.get('s1').batch_id, 'fs1')

        reconcile_batches(self.store, self.reader)
        self.assertEqual(audit_legacy_store(self.store, self.reader).students_pointer_mismatch, [])


class SyncBatchIdsTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_sync_batch_ids.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            for table in (BatchStudent, Batch, User, ClassroomVideo):
                db.query(table).delete()
            db.commit()
            db.add(Batch(id='m1', name='Cohort A', course='Math', created_at=datetime(2024, 1, 1)))
            db.add(Batch(id='m2', name='Cohort B', course='Physics', created_at=datetime(2024, 1, 2)))
            db.add(User(id='s1', name='A', email='a@example.com', role='student', batch_id='Cohort A'))
            db.add(User(id='s2', name='B', email='b@example.com', role='student', batch_id='fs-old', course='Physics'))
            db.add(User(id='s3', name='C', email='c@example.com', role='student', batch_id='zzz', course='Biology'))
            db.add(User(id='s4', name='D', email='d@example.com', role='student', batch_id='null'))
            db.add(User(id='s5', name='E', email='e@example.com', role='student', batch_id='m1'))
            db.add(ClassroomVideo(id='v1', title='One', batch_id='fs-x', batch_name='Cohort B', created_at=datetime(2024, 3, 1)))
            db.add(ClassroomVideo(id='v2', title='Two', batch_id=None, course='Math', created_at=datetime(2024, 3, 2)))
            db.add(ClassroomVideo(id='v3', title='Three', batch_id='fs-y', course='Art', created_at=datetime(2024, 3, 3)))
            db.commit()
        finally:
            db.close()
        self.db = self._session_factory()
        self.store = EntityStore(self.db)

    def tearDown(self):
        self.db.close()

    def test_pointers_are_normalised_to_current_batch_ids(self):
        result = sync_batch_ids(self.store)

        self.assertEqual(self.store.users.get('s1').batch_id, 'm1')
        self.assertEqual(self.store.users.get('s2').batch_id, 'm2')
        self.assertEqual(self.store.users.get('s3').batch_id, 'zzz')
        self.assertIsNone(self.store.users.get('s4').batch_id)
        self.assertEqual((result.users_updated, result.users_skipped), (3, 1))

        self.assertEqual(self.store.videos.get('v1').batch_id, 'm2')
        self.assertEqual(self.store.videos.get('v2').batch_id, 'm1')
        self.assertEqual(self.store.videos.get('v3').batch_id, 'fs-y')
        self.assertEqual((result.videos_updated, result.videos_skipped), (1, 1))
        self.assertEqual(result.videos_assigned_by_course, 1)

        self.assertEqual(self.store.batches.roster_ids('m1'), {'s1', 's5'})
        self.assertEqual(self.store.batches.roster_ids('m2'), {'s2'})

    def test_second_run_is_a_noop(self):
        sync_batch_ids(self.store)
        again = sync_batch_ids(self.store)
        self.assertEqual((again.users_updated, again.videos_updated, again.videos_assigned_by_course), (0, 0, 0))
        self.assertEqual(again.sweep.batches_updated, 0)


if __name__ == '__main__':
    unittest.main()
