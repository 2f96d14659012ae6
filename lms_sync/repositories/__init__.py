from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from sqlalchemy.orm import Session

from lms_sync.db import SessionLocal
from lms_sync.repositories.batch_repository import BatchRepository
from lms_sync.repositories.classroom_repository import ClassroomVideoRepository
from lms_sync.repositories.one_to_one_repository import OneToOneBatchRepository
from lms_sync.repositories.user_repository import UserRepository


@dataclass
class EntityStore:
    """Per-entity repositories sharing one session; injected into every service."""

    db: Session
    users: UserRepository = field(init=False)
    batches: BatchRepository = field(init=False)
    videos: ClassroomVideoRepository = field(init=False)
    one_to_one: OneToOneBatchRepository = field(init=False)

    def __post_init__(self) -> None:
        self.users = UserRepository(self.db)
        self.batches = BatchRepository(self.db)
        self.videos = ClassroomVideoRepository(self.db)
        self.one_to_one = OneToOneBatchRepository(self.db)


@contextmanager
def open_store(session_factory=None) -> Iterator[EntityStore]:
    db = (session_factory or SessionLocal)()
    try:
        yield EntityStore(db)
    finally:
        db.close()


__all__ = [
    'BatchRepository',
    'ClassroomVideoRepository',
    'EntityStore',
    'OneToOneBatchRepository',
    'UserRepository',
    'open_store',
]
