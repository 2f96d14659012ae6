from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from lms_sync.config import settings
from lms_sync.db import get_db
from lms_sync.errors import ExternalStoreError, NotFoundError, ValidationError
from lms_sync.repositories import EntityStore


def _resolve_token(request: Request) -> str | None:
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def require_admin_token(request: Request) -> None:
    expected = (settings.admin_api_token or '').strip()
    if not expected:
        return
    token = _resolve_token(request)
    if not token:
        raise HTTPException(status_code=401, detail='Unauthorized')
    if not secrets.compare_digest(token, expected):
        raise HTTPException(status_code=403, detail='Forbidden')


def get_store(db: Session = Depends(get_db)) -> EntityStore:
    return EntityStore(db)


def http_error_for(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ExternalStoreError):
        return HTTPException(status_code=503, detail='Store unavailable')
    return HTTPException(status_code=500, detail='Internal error')
