from __future__ import annotations

from lms_sync.core.time_provider import default_time_provider
from lms_sync.models import Role, User
from lms_sync.repositories.base import SessionRepository, store_call


class UserRepository(SessionRepository):
    @store_call
    def get(self, user_id: str) -> User | None:
        return self.db.query(User).filter(User.id == user_id).first()

    @store_call
    def find_by_id_or_legacy(self, identifier: str) -> User | None:
        row = self.db.query(User).filter(User.id == identifier).first()
        if row:
            return row
        return self.db.query(User).filter(User.legacy_id == identifier).order_by(User.created_at.asc()).first()

    @store_call
    def list_students(self) -> list[User]:
        return (
            self.db.query(User)
            .filter(User.role == Role.STUDENT.value)
            .order_by(User.created_at.asc(), User.id.asc())
            .all()
        )

    @store_call
    def list_student_ids_with_batch(self, batch_id: str) -> set[str]:
        rows = (
            self.db.query(User.id)
            .filter(User.role == Role.STUDENT.value, User.batch_id == batch_id)
            .all()
        )
        return {user_id for (user_id,) in rows}

    @store_call
    def count_students_with_batch(self, batch_id: str) -> int:
        return self.db.query(User).filter(User.role == Role.STUDENT.value, User.batch_id == batch_id).count()

    @store_call
    def create(self, **fields) -> User:
        if 'email' in fields:
            fields['email'] = (fields['email'] or '').strip().lower()
        row = User(**fields)
        self.db.add(row)
        self._commit(row)
        return row

    @store_call
    def set_batch(self, user: User, batch_id: str | None, *, course: str | None = None) -> bool:
        changed = user.batch_id != batch_id or (course is not None and user.course != course)
        if not changed:
            return False
        user.batch_id = batch_id
        if course is not None:
            user.course = course
        user.updated_at = default_time_provider.utcnow()
        self._commit(user)
        return True

    @store_call
    def set_one_to_one_batch(self, user: User, one_to_one_batch_id: str | None, *, course: str | None = None) -> None:
        user.one_to_one_batch_id = one_to_one_batch_id
        if course:
            user.course = course
        user.updated_at = default_time_provider.utcnow()
        self._commit(user)

    @store_call
    def clear_one_to_one_pointers(self, one_to_one_batch_id: str, *, keep_user_id: str | None = None) -> int:
        query = self.db.query(User).filter(User.one_to_one_batch_id == one_to_one_batch_id)
        if keep_user_id:
            query = query.filter(User.id != keep_user_id)
        count = query.update(
            {User.one_to_one_batch_id: None, User.updated_at: default_time_provider.utcnow()},
            synchronize_session=False,
        )
        self.db.commit()
        return int(count or 0)

    @store_call
    def replace_student_batch_id(self, old_batch_id: str, new_batch_id: str) -> int:
        count = (
            self.db.query(User)
            .filter(User.role == Role.STUDENT.value, User.batch_id == old_batch_id)
            .update(
                {User.batch_id: new_batch_id, User.updated_at: default_time_provider.utcnow()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return int(count or 0)

