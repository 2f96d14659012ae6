from __future__ import annotations

from lms_sync.core.time_provider import default_time_provider
from lms_sync.models import UNASSIGNED_PLACEHOLDER, OneToOneBatch, User
from lms_sync.repositories.base import SessionRepository, store_call


class OneToOneBatchRepository(SessionRepository):
    @store_call
    def get(self, batch_id: str) -> OneToOneBatch | None:
        return self.db.query(OneToOneBatch).filter(OneToOneBatch.id == batch_id).first()

    @store_call
    def list_for_student(self, student_id: str) -> list[OneToOneBatch]:
        return (
            self.db.query(OneToOneBatch)
            .filter(OneToOneBatch.student_id == student_id)
            .order_by(OneToOneBatch.created_at.asc(), OneToOneBatch.id.asc())
            .all()
        )

    @store_call
    def create(self, **fields) -> OneToOneBatch:
        row = OneToOneBatch(**fields)
        self.db.add(row)
        self._commit(row)
        return row

    @store_call
    def set_student(self, batch: OneToOneBatch, student: User) -> None:
        batch.student_id = student.id
        batch.student_name = student.name
        batch.student_email = student.email
        batch.updated_at = default_time_provider.utcnow()
        self._commit(batch)

    @store_call
    def clear_student(self, batch: OneToOneBatch) -> None:
        batch.student_id = None
        batch.student_name = UNASSIGNED_PLACEHOLDER
        batch.student_email = UNASSIGNED_PLACEHOLDER
        batch.updated_at = default_time_provider.utcnow()
        self._commit(batch)
