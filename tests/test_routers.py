import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lms_sync.config import settings
from lms_sync.core.router_guard import http_error_for
from lms_sync.db import Base, get_db
from lms_sync.errors import ExternalStoreError
from lms_sync.models import Batch, BatchStudent, ClassroomVideo, OneToOneBatch, User
from lms_sync.routers import batches as batches_router
from lms_sync.routers import maintenance as maintenance_router


class RouterTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_routers.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

        app = FastAPI()
        app.include_router(batches_router.router)
        app.include_router(maintenance_router.router)

        def override_get_db():
            db = cls._session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            for table in (BatchStudent, Batch, User, ClassroomVideo, OneToOneBatch):
                db.query(table).delete()
            db.add(Batch(id='b1', name='Cohort A', course='Math', created_at=datetime(2024, 1, 1)))
            db.add(Batch(id='b2', name='Cohort B', course='Physics', created_at=datetime(2024, 1, 2)))
            db.add(User(id='s1', name='Asha', email='asha@example.com', role='student', batch_id='b1'))
            db.add(User(id='t1', name='Teacher', email='teacher@example.com', role='teacher'))
            db.add(BatchStudent(batch_id='b1', student_id='s1'))
            db.add(ClassroomVideo(id='v1', title='L1', batch_id='b1', external_content_id='yt1', created_at=datetime(2024, 3, 1)))
            db.add(ClassroomVideo(id='v2', title='L1', batch_id='b1', external_content_id='yt1', created_at=datetime(2024, 3, 2)))
            db.add(OneToOneBatch(id='o1', name='Asha 1:1', course='Chemistry'))
            db.commit()
        finally:
            db.close()

    def test_put_students_moves_membership(self):
        response = self.client.put('/api/batches/b2/students', json={'student_ids': ['s1']})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['added'], ['s1'])
        self.assertEqual(body['removed_from'], {'b1': ['s1']})

        roster = self.client.get('/api/batches/b2/roster').json()
        self.assertEqual(roster['roster'], ['s1'])
        self.assertTrue(roster['in_sync'])

    def test_error_mapping(self):
        self.assertEqual(self.client.put('/api/batches/nope/students', json={'student_ids': ['s1']}).status_code, 404)
        self.assertEqual(self.client.put('/api/batches/b2/students', json={'student_ids': ['t1']}).status_code, 400)
        self.assertEqual(self.client.put('/api/batches/b2/students', json={'student_ids': []}).status_code, 422)
        self.assertEqual(self.client.get('/api/batches/nope/roster').status_code, 404)

    def test_delete_student_and_video(self):
        response = self.client.delete('/api/batches/b1/students/s1')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['pointers_updated'], ['s1'])

        response = self.client.delete('/api/batches/b1/videos/v1')
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()['batch_id'])
        self.assertEqual(self.client.delete('/api/batches/b1/videos/missing').status_code, 404)

    def test_dedupe_defaults_to_dry_run(self):
        response = self.client.post('/api/admin/videos/dedupe')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['dry_run'])
        self.assertEqual(response.json()['to_unassign'], ['v2'])

        applied = self.client.post('/api/admin/videos/dedupe', params={'dry_run': 'false'}).json()
        self.assertEqual(applied['unassigned'], 1)

    def test_roster_rebuild_endpoint(self):
        db = self._session_factory()
        try:
            db.add(BatchStudent(batch_id='b2', student_id='s1'))
            db.commit()
        finally:
            db.close()

        body = self.client.post('/api/admin/rosters/rebuild').json()
        self.assertEqual(body['batches_checked'], 2)
        self.assertEqual(body['updated_batch_ids'], ['b2'])

    def test_one_to_one_assignment_round_trip(self):
        response = self.client.put('/api/one-to-one-batches/o1/student', json={'student_id': 's1'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['student_email'], 'asha@example.com')

        response = self.client.delete('/api/one-to-one-batches/o1/student')
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()['student_id'])
        self.assertEqual(self.client.delete('/api/one-to-one-batches/nope/student').status_code, 404)

    def test_recording_import_endpoint(self):
        payload = {'title': 'L9', 'drive_id': 'drive-9', 'batch_id': 'b2'}
        first = self.client.post('/api/admin/videos/import', json=payload).json()
        second = self.client.post('/api/admin/videos/import', json=payload).json()
        self.assertTrue(first['created'])
        self.assertFalse(second['created'])
        self.assertEqual(first['video_id'], second['video_id'])

    def test_admin_token_is_enforced_when_configured(self):
        with patch.object(settings, 'admin_api_token', 'secret-token'):
            self.assertEqual(self.client.get('/api/batches/b1/roster').status_code, 401)
            wrong = self.client.get('/api/batches/b1/roster', headers={'Authorization': 'Bearer nope'})
            self.assertEqual(wrong.status_code, 403)
            ok = self.client.get('/api/batches/b1/roster', headers={'Authorization': 'Bearer secret-token'})
            self.assertEqual(ok.status_code, 200)

    def test_store_failures_map_to_503(self):
        self.assertEqual(http_error_for(ExternalStoreError('down')).status_code, 503)


if __name__ == '__main__':
    unittest.main()
