from __future__ import annotations

from sqlalchemy import or_

from lms_sync.core.time_provider import default_time_provider
from lms_sync.models import ClassroomVideo
from lms_sync.repositories.base import SessionRepository, store_call


class ClassroomVideoRepository(SessionRepository):
    @store_call
    def get(self, video_id: str) -> ClassroomVideo | None:
        return self.db.query(ClassroomVideo).filter(ClassroomVideo.id == video_id).first()

    @store_call
    def list_all(self) -> list[ClassroomVideo]:
        return (
            self.db.query(ClassroomVideo)
            .order_by(ClassroomVideo.created_at.asc(), ClassroomVideo.id.asc())
            .all()
        )

    @store_call
    def find_by_content_id(self, content_id: str) -> ClassroomVideo | None:
        return (
            self.db.query(ClassroomVideo)
            .filter(
                or_(
                    ClassroomVideo.external_content_id == content_id,
                    ClassroomVideo.zoom_recording_id == content_id,
                )
            )
            .order_by(ClassroomVideo.created_at.asc())
            .first()
        )

    @store_call
    def count_with_batch(self, batch_id: str) -> int:
        return self.db.query(ClassroomVideo).filter(ClassroomVideo.batch_id == batch_id).count()

    @store_call
    def create(self, **fields) -> ClassroomVideo:
        row = ClassroomVideo(**fields)
        self.db.add(row)
        self._commit(row)
        return row

    @store_call
    def set_batch(self, video: ClassroomVideo, batch_id: str | None, *, batch_name: str | None = None) -> None:
        video.batch_id = batch_id
        if batch_id is None or batch_name is not None:
            video.batch_name = batch_name
        video.updated_at = default_time_provider.utcnow()
        self._commit(video)

    @store_call
    def replace_batch_id(self, old_batch_id: str, new_batch_id: str, *, batch_name: str | None = None) -> int:
        values = {ClassroomVideo.batch_id: new_batch_id, ClassroomVideo.updated_at: default_time_provider.utcnow()}
        if batch_name is not None:
            values[ClassroomVideo.batch_name] = batch_name
        count = (
            self.db.query(ClassroomVideo)
            .filter(ClassroomVideo.batch_id == old_batch_id)
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        return int(count or 0)

    @store_call
    def delete(self, video: ClassroomVideo) -> None:
        self.db.delete(video)
        self.db.commit()
