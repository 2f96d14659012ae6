from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Iterable, Protocol, TypeVar

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import firestore
from google.oauth2.service_account import Credentials

from lms_sync.config import Settings, settings
from lms_sync.errors import ExternalStoreError, ValidationError
from lms_sync.services.legacy_mapping_service import (
    LegacyBatch,
    LegacyUser,
    LegacyVideo,
    batch_from_legacy,
    user_from_legacy,
    video_from_legacy,
)


logger = logging.getLogger(__name__)

T = TypeVar('T')

BATCHES_COLLECTION = 'batches'
USERS_COLLECTION = 'users'
CLASSROOM_COLLECTION = 'classroom'


class LegacyStoreReader(Protocol):
    """Read-only enumeration of the legacy collections. Nothing is ever written back."""

    def list_batches(self) -> list[LegacyBatch]: ...

    def list_users(self) -> list[LegacyUser]: ...

    def list_videos(self) -> list[LegacyVideo]: ...


def _parse_documents(docs: Iterable[dict], parser: Callable[[dict], T], collection: str) -> list[T]:
    out: list[T] = []
    for doc in docs:
        try:
            out.append(parser(doc))
        except ValidationError as exc:
            logger.warning('legacy_document_skipped collection=%s reason=%s', collection, exc)
    return out


class FirestoreLegacyReader:
    def __init__(self, client: firestore.Client):
        self._client = client

    @classmethod
    def from_settings(cls, config: Settings = settings) -> 'FirestoreLegacyReader':
        if not config.legacy_project_id:
            raise ExternalStoreError('legacy_project_id is not configured')
        try:
            credentials = None
            if config.legacy_credentials_json:
                info = json.loads(config.legacy_credentials_json)
                if not isinstance(info, dict):
                    raise ValueError('legacy_credentials_json is not a JSON object')
                credentials = Credentials.from_service_account_info(info)
            client = firestore.Client(project=config.legacy_project_id, credentials=credentials)
        except (GoogleAPIError, GoogleAuthError, ValueError, TypeError, KeyError) as exc:
            logger.exception('legacy_store_connect_failed project=%s', config.legacy_project_id)
            raise ExternalStoreError(f'Legacy store unreachable: {exc}') from exc
        return cls(client)

    def _stream(self, collection: str) -> list[dict]:
        try:
            return [{'id': snapshot.id, **(snapshot.to_dict() or {})} for snapshot in self._client.collection(collection).stream()]
        except (GoogleAPIError, GoogleAuthError) as exc:
            logger.exception('legacy_store_read_failed collection=%s', collection)
            raise ExternalStoreError(f'Legacy store read failed for {collection}: {exc}') from exc

    def list_batches(self) -> list[LegacyBatch]:
        return _parse_documents(self._stream(BATCHES_COLLECTION), batch_from_legacy, BATCHES_COLLECTION)

    def list_users(self) -> list[LegacyUser]:
        return _parse_documents(self._stream(USERS_COLLECTION), user_from_legacy, USERS_COLLECTION)

    def list_videos(self) -> list[LegacyVideo]:
        return _parse_documents(self._stream(CLASSROOM_COLLECTION), video_from_legacy, CLASSROOM_COLLECTION)


class JsonExportLegacyReader:
    """Reads an offline export shaped as {"batches": [...], "users": [...], "classroom": [...]}."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._payload: dict | None = None

    def _collection(self, name: str) -> list[dict]:
        if self._payload is None:
            try:
                payload = json.loads(self._path.read_text(encoding='utf-8'))
            except (OSError, json.JSONDecodeError) as exc:
                raise ExternalStoreError(f'Legacy export unreadable at {self._path}: {exc}') from exc
            if not isinstance(payload, dict):
                raise ExternalStoreError(f'Legacy export at {self._path} is not a JSON object')
            self._payload = payload
        rows = self._payload.get(name) or []
        if isinstance(rows, dict):
            # Firestore exports key documents by id; non-object values are left for the parser to skip.
            return [{'id': doc_id, **doc} if isinstance(doc, dict) else doc for doc_id, doc in rows.items()]
        if not isinstance(rows, list):
            raise ExternalStoreError(f'Legacy export collection {name} is not a list or object')
        return rows

    def list_batches(self) -> list[LegacyBatch]:
        return _parse_documents(self._collection(BATCHES_COLLECTION), batch_from_legacy, BATCHES_COLLECTION)

    def list_users(self) -> list[LegacyUser]:
        return _parse_documents(self._collection(USERS_COLLECTION), user_from_legacy, USERS_COLLECTION)

    def list_videos(self) -> list[LegacyVideo]:
        return _parse_documents(self._collection(CLASSROOM_COLLECTION), video_from_legacy, CLASSROOM_COLLECTION)


def build_legacy_reader(config: Settings = settings, *, export_path: str | None = None) -> LegacyStoreReader:
    path = export_path or (config.legacy_export_path if config.legacy_backend == 'json' else '')
    if path:
        return JsonExportLegacyReader(path)
    if config.legacy_backend not in ('firestore', 'json'):
        raise ExternalStoreError(f'Unknown legacy backend: {config.legacy_backend}')
    if config.legacy_backend == 'json':
        raise ExternalStoreError('legacy_export_path is not configured')
    return FirestoreLegacyReader.from_settings(config)
