from __future__ import annotations

from typing import Iterable

from lms_sync.core.time_provider import default_time_provider
from lms_sync.models import Batch, BatchStudent
from lms_sync.repositories.base import SessionRepository, store_call


class BatchRepository(SessionRepository):
    @store_call
    def get(self, batch_id: str) -> Batch | None:
        return self.db.query(Batch).filter(Batch.id == batch_id).first()

    @store_call
    def list_all(self) -> list[Batch]:
        # Creation order doubles as the "first match wins" order for name lookups.
        return self.db.query(Batch).order_by(Batch.created_at.asc(), Batch.id.asc()).all()

    @store_call
    def find_by_name_and_teacher(self, name: str, teacher_id: str) -> Batch | None:
        return (
            self.db.query(Batch)
            .filter(Batch.name == name, Batch.teacher_id == teacher_id)
            .order_by(Batch.created_at.asc(), Batch.id.asc())
            .first()
        )

    @store_call
    def find_by_legacy_id(self, legacy_id: str) -> Batch | None:
        return self.db.query(Batch).filter(Batch.legacy_id == legacy_id).first()

    @store_call
    def create(self, **fields) -> Batch:
        row = Batch(**fields)
        self.db.add(row)
        self._commit(row)
        return row

    @store_call
    def roster_ids(self, batch_id: str) -> set[str]:
        rows = self.db.query(BatchStudent.student_id).filter(BatchStudent.batch_id == batch_id).all()
        return {student_id for (student_id,) in rows}

    @store_call
    def list_batch_ids_containing(self, student_ids: Iterable[str], *, exclude_batch_id: str | None = None) -> list[str]:
        ids = list(student_ids)
        if not ids:
            return []
        query = self.db.query(BatchStudent.batch_id).filter(BatchStudent.student_id.in_(ids))
        if exclude_batch_id:
            query = query.filter(BatchStudent.batch_id != exclude_batch_id)
        return sorted({batch_id for (batch_id,) in query.distinct().all()})

    @store_call
    def remove_students(self, batch_id: str, student_ids: Iterable[str]) -> set[str]:
        ids = set(student_ids)
        if not ids:
            return set()
        rows = (
            self.db.query(BatchStudent)
            .filter(BatchStudent.batch_id == batch_id, BatchStudent.student_id.in_(ids))
            .all()
        )
        removed = {row.student_id for row in rows}
        if not rows:
            return removed
        for row in rows:
            self.db.delete(row)
        self._touch(batch_id)
        self.db.commit()
        return removed

    @store_call
    def add_students(self, batch_id: str, student_ids: Iterable[str]) -> set[str]:
        existing = self.roster_ids(batch_id)
        added = {student_id for student_id in student_ids if student_id not in existing}
        if not added:
            return set()
        for student_id in sorted(added):
            self.db.add(BatchStudent(batch_id=batch_id, student_id=student_id))
        self._touch(batch_id)
        self.db.commit()
        return added

    @store_call
    def replace_roster(self, batch_id: str, student_ids: Iterable[str]) -> None:
        self.db.query(BatchStudent).filter(BatchStudent.batch_id == batch_id).delete(synchronize_session=False)
        for student_id in sorted(set(student_ids)):
            self.db.add(BatchStudent(batch_id=batch_id, student_id=student_id))
        self._touch(batch_id)
        self.db.commit()

    def _touch(self, batch_id: str) -> None:
        self.db.query(Batch).filter(Batch.id == batch_id).update(
            {Batch.updated_at: default_time_provider.utcnow()},
            synchronize_session=False,
        )
