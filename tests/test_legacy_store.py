import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from google.api_core.exceptions import ServiceUnavailable

from lms_sync.config import Settings
from lms_sync.errors import ExternalStoreError, ValidationError
from lms_sync.services.legacy_mapping_service import (
    batch_fields_from_legacy,
    batch_from_legacy,
    user_from_legacy,
    video_from_legacy,
)
from lms_sync.services.legacy_store import FirestoreLegacyReader, JsonExportLegacyReader, build_legacy_reader


class LegacyMappingTests(unittest.TestCase):
    def test_batch_document_is_typed(self):
        record = batch_from_legacy(
            {
                'id': 'fs1',
                'name': ' Cohort A ',
                'instructorId': 'T1',
                'status': 'COMPLETED',
                'students': ['u1', 'u1', 'null', 'u2'],
                'schedule': {'days': ['Mon', 'Wed'], 'time': '18:00', 'timeZone': 'Asia/Kolkata'},
            }
        )
        self.assertEqual(record.name, 'Cohort A')
        self.assertEqual(record.teacher_id, 'T1')
        self.assertEqual(record.status, 'completed')
        self.assertEqual(record.students, ('u1', 'u2'))
        self.assertEqual(record.schedule_days, ('Mon', 'Wed'))
        self.assertEqual(record.schedule_timezone, 'Asia/Kolkata')

        fields = batch_fields_from_legacy(record)
        self.assertEqual(fields['legacy_id'], 'fs1')
        self.assertEqual(fields['schedule_days'], 'Mon,Wed')

    def test_unknown_batch_status_defaults_to_active(self):
        self.assertEqual(batch_from_legacy({'id': 'fs1', 'name': 'A', 'status': 'archived?'}).status, 'active')

    def test_document_without_id_is_rejected(self):
        with self.assertRaises(ValidationError):
            batch_from_legacy({'name': 'A'})
        with self.assertRaises(ValidationError):
            user_from_legacy({'id': 'undefined', 'email': 'a@example.com'})
        with self.assertRaises(ValidationError):
            video_from_legacy('fs1')

    def test_user_document_normalises_email_and_absent_batch(self):
        user = user_from_legacy({'id': 'u1', 'email': ' Asha@Example.COM ', 'batchId': 'null'})
        self.assertEqual(user.email, 'asha@example.com')
        self.assertIsNone(user.batch_id)
        self.assertEqual(user.role, 'student')

    def test_video_document_derives_content_id_and_match_key(self):
        video = video_from_legacy(
            {
                'id': 'v1',
                'title': ' Lecture 1 ',
                'date': '2024-03-01',
                'youtubeVideoUrl': 'https://www.youtube.com/watch?v=dQw4w9WgXcQ',
                'batchId': '',
            }
        )
        self.assertEqual(video.content_id, 'dQw4w9WgXcQ')
        self.assertIsNone(video.batch_id)
        self.assertEqual(video.match_key, ('Lecture 1', '2024-03-01', 'https://www.youtube.com/watch?v=dQw4w9WgXcQ'))


class JsonExportLegacyReaderTests(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self._tmpdir.name) / 'export.json'

    def tearDown(self):
        self._tmpdir.cleanup()

    def test_list_and_keyed_collections_are_both_read(self):
        self.path.write_text(
            json.dumps(
                {
                    'batches': [{'id': 'fs1', 'name': 'A'}, {'name': 'skipped'}],
                    'users': {'u1': {'email': 'a@example.com'}},
                }
            ),
            encoding='utf-8',
        )
        reader = JsonExportLegacyReader(self.path)

        self.assertEqual([row.id for row in reader.list_batches()], ['fs1'])
        self.assertEqual([row.id for row in reader.list_users()], ['u1'])
        self.assertEqual(reader.list_videos(), [])

    def test_malformed_export_raises_external_store_error(self):
        self.path.write_text('{not json', encoding='utf-8')
        with self.assertRaises(ExternalStoreError):
            JsonExportLegacyReader(self.path).list_batches()

        self.path.write_text('[]', encoding='utf-8')
        reader = JsonExportLegacyReader(self.path)
        with self.assertRaises(ExternalStoreError):
            reader.list_batches()
        with self.assertRaises(ExternalStoreError):
            reader.list_users()

    def test_non_object_documents_are_skipped(self):
        self.path.write_text(
            json.dumps(
                {
                    'batches': ['fs1', 'fs2', {'id': 'fs3', 'name': 'C', 'students': 7, 'schedule': {'days': 3}}],
                    'users': {'u1': 'Asha', 'u2': {'email': 'b@example.com'}},
                    'classroom': [None, 42],
                }
            ),
            encoding='utf-8',
        )
        reader = JsonExportLegacyReader(self.path)

        with self.assertLogs('lms_sync.services.legacy_store', level='WARNING') as logs:
            batches = reader.list_batches()
        self.assertEqual([row.id for row in batches], ['fs3'])
        self.assertEqual(batches[0].students, ())
        self.assertEqual(batches[0].schedule_days, ())
        self.assertTrue(all('legacy_document_skipped' in line for line in logs.output))
        self.assertEqual([row.id for row in reader.list_users()], ['u2'])
        self.assertEqual(reader.list_videos(), [])

    def test_scalar_collection_raises_external_store_error(self):
        self.path.write_text(json.dumps({'batches': 'Cohort A'}), encoding='utf-8')
        with self.assertRaises(ExternalStoreError):
            JsonExportLegacyReader(self.path).list_batches()

    def test_builder_prefers_explicit_export_path(self):
        reader = build_legacy_reader(Settings(legacy_backend='firestore'), export_path=str(self.path))
        self.assertIsInstance(reader, JsonExportLegacyReader)

    def test_builder_rejects_unusable_configuration(self):
        with self.assertRaises(ExternalStoreError):
            build_legacy_reader(Settings(legacy_backend='json', legacy_export_path=''))
        with self.assertRaises(ExternalStoreError):
            build_legacy_reader(Settings(legacy_backend='mongo'))
        with self.assertRaises(ExternalStoreError):
            build_legacy_reader(Settings(legacy_backend='firestore', legacy_project_id=''))


class FirestoreLegacyReaderTests(unittest.TestCase):
    def _snapshot(self, doc_id, data):
        snapshot = MagicMock()
        snapshot.id = doc_id
        snapshot.to_dict.return_value = data
        return snapshot

    def test_documents_are_streamed_with_their_ids(self):
        client = MagicMock()
        client.collection.return_value.stream.return_value = [
            self._snapshot('fs1', {'name': 'Cohort A', 'teacherId': 'T1'}),
            self._snapshot('fs2', None),
        ]
        batches = FirestoreLegacyReader(client).list_batches()

        client.collection.assert_called_with('batches')
        self.assertEqual([row.id for row in batches], ['fs1', 'fs2'])
        self.assertEqual(batches[0].teacher_id, 'T1')

    def test_api_failure_becomes_external_store_error(self):
        client = MagicMock()
        client.collection.return_value.stream.side_effect = ServiceUnavailable('down')
        with self.assertRaises(ExternalStoreError):
            FirestoreLegacyReader(client).list_users()

    def test_from_settings_wraps_client_construction_errors(self):
        config = Settings(legacy_backend='firestore', legacy_project_id='demo-project')
        with patch('lms_sync.services.legacy_store.firestore.Client', side_effect=ValueError('bad project')):
            with self.assertRaises(ExternalStoreError):
                FirestoreLegacyReader.from_settings(config)

    def test_from_settings_wraps_bad_credentials(self):
        for raw in ('{not json', '{"type": "service_account"}', '[]'):
            config = Settings(legacy_backend='firestore', legacy_project_id='demo-project', legacy_credentials_json=raw)
            with self.subTest(raw=raw), patch('lms_sync.services.legacy_store.firestore.Client') as client_cls:
                with self.assertRaises(ExternalStoreError):
                    FirestoreLegacyReader.from_settings(config)
                client_cls.assert_not_called()


if __name__ == '__main__':
    unittest.main()
