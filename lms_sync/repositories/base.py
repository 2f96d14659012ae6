from __future__ import annotations

import functools
import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms_sync.errors import ExternalStoreError


logger = logging.getLogger(__name__)

T = TypeVar('T')


def store_call(func: Callable[..., T]) -> Callable[..., T]:
    """Translate driver failures into ExternalStoreError after rolling back the session."""

    @functools.wraps(func)
    def wrapper(self: 'SessionRepository', *args, **kwargs) -> T:
        try:
            return func(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('store_call_failed repository=%s op=%s', type(self).__name__, func.__name__)
            raise ExternalStoreError(f'{type(self).__name__}.{func.__name__} failed: {exc}') from exc

    return wrapper


class SessionRepository:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, *rows) -> None:
        self.db.commit()
        for row in rows:
            self.db.refresh(row)
