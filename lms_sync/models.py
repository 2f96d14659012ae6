from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lms_sync.core.ids import new_object_id
from lms_sync.db import Base


class Role(str, Enum):
    STUDENT = 'student'
    TEACHER = 'teacher'
    INSTRUCTOR = 'instructor'
    MENTOR = 'mentor'
    ADMIN = 'admin'


class UserStatus(str, Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'


class BatchStatus(str, Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    COMPLETED = 'completed'


class VideoSource(str, Enum):
    YOUTUBE_URL = 'youtube-url'
    YOUTUBE = 'youtube'
    ZOOM = 'zoom'
    DRIVE = 'drive'
    FIREBASE = 'firebase'


UNASSIGNED_PLACEHOLDER = 'To be assigned'


class User(Base):
    __tablename__ = 'users'

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_object_id)
    name: Mapped[str] = mapped_column(String(180))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), default='')
    role: Mapped[str] = mapped_column(String(20), default=Role.STUDENT.value, index=True)
    status: Mapped[str] = mapped_column(String(20), default=UserStatus.ACTIVE.value, index=True)
    course: Mapped[str | None] = mapped_column(String(180), nullable=True)
    # Plain string: before reconciliation this may still hold a legacy id or a batch name.
    batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    one_to_one_batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    legacy_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Batch(Base):
    __tablename__ = 'batches'
    __table_args__ = (
        Index('ix_batches_name_teacher', 'name', 'teacher_id'),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_object_id)
    name: Mapped[str] = mapped_column(String(180), index=True)
    course: Mapped[str] = mapped_column(String(180), default='', index=True)
    teacher_id: Mapped[str] = mapped_column(String(64), default='', index=True)
    teacher_name: Mapped[str] = mapped_column(String(180), default='')
    status: Mapped[str] = mapped_column(String(20), default=BatchStatus.ACTIVE.value, index=True)
    schedule_days: Mapped[str] = mapped_column(String(80), default='')
    schedule_time: Mapped[str] = mapped_column(String(20), default='')
    schedule_timezone: Mapped[str] = mapped_column(String(60), default='')
    legacy_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    roster_links: Mapped[list['BatchStudent']] = relationship(
        'BatchStudent',
        back_populates='batch',
        cascade='all, delete-orphan',
    )


class BatchStudent(Base):
    """One roster entry. The roster is a cached projection of users.batch_id."""

    __tablename__ = 'batch_students'
    __table_args__ = (
        UniqueConstraint('batch_id', 'student_id', name='uq_batch_students_batch_student'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    batch_id: Mapped[str] = mapped_column(ForeignKey('batches.id'), index=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True)
    added_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    batch: Mapped['Batch'] = relationship('Batch', back_populates='roster_links')


class ClassroomVideo(Base):
    __tablename__ = 'classroom_videos'
    __table_args__ = (
        Index('ix_classroom_videos_batch_content', 'batch_id', 'external_content_id'),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_object_id)
    title: Mapped[str] = mapped_column(String(255))
    date: Mapped[str] = mapped_column(String(40), default='')
    course: Mapped[str | None] = mapped_column(String(180), nullable=True, index=True)
    batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    batch_name: Mapped[str | None] = mapped_column(String(180), nullable=True)
    instructor: Mapped[str] = mapped_column(String(180), default='')
    description: Mapped[str] = mapped_column(Text, default='')
    video_source: Mapped[str] = mapped_column(String(20), default=VideoSource.YOUTUBE_URL.value)
    external_content_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    youtube_video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    youtube_embed_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    zoom_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    zoom_passcode: Mapped[str | None] = mapped_column(String(80), nullable=True)
    zoom_recording_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    drive_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    legacy_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class OneToOneBatch(Base):
    __tablename__ = 'one_to_one_batches'

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_object_id)
    name: Mapped[str] = mapped_column(String(180))
    course: Mapped[str] = mapped_column(String(180), default='', index=True)
    teacher_id: Mapped[str] = mapped_column(String(64), default='', index=True)
    teacher_name: Mapped[str] = mapped_column(String(180), default='')
    student_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    student_name: Mapped[str] = mapped_column(String(180), default=UNASSIGNED_PLACEHOLDER)
    student_email: Mapped[str] = mapped_column(String(255), default=UNASSIGNED_PLACEHOLDER)
    status: Mapped[str] = mapped_column(String(20), default=BatchStatus.ACTIVE.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
