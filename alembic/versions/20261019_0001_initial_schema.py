"""initial schema: users, batches, rosters, classroom videos, one-to-one batches

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='student'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('course', sa.String(length=180), nullable=True),
        sa.Column('batch_id', sa.String(length=64), nullable=True),
        sa.Column('one_to_one_batch_id', sa.String(length=64), nullable=True),
        sa.Column('legacy_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_status', 'users', ['status'])
    op.create_index('ix_users_batch_id', 'users', ['batch_id'])
    op.create_index('ix_users_one_to_one_batch_id', 'users', ['one_to_one_batch_id'])
    op.create_index('ix_users_legacy_id', 'users', ['legacy_id'])

    op.create_table(
        'batches',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('course', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('teacher_id', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('teacher_name', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('schedule_days', sa.String(length=80), nullable=False, server_default=''),
        sa.Column('schedule_time', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('schedule_timezone', sa.String(length=60), nullable=False, server_default=''),
        sa.Column('legacy_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_batches_name', 'batches', ['name'])
    op.create_index('ix_batches_course', 'batches', ['course'])
    op.create_index('ix_batches_teacher_id', 'batches', ['teacher_id'])
    op.create_index('ix_batches_status', 'batches', ['status'])
    op.create_index('ix_batches_legacy_id', 'batches', ['legacy_id'])
    op.create_index('ix_batches_name_teacher', 'batches', ['name', 'teacher_id'])

    op.create_table(
        'batch_students',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('batch_id', sa.String(length=64), sa.ForeignKey('batches.id'), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('added_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('batch_id', 'student_id', name='uq_batch_students_batch_student'),
    )
    op.create_index('ix_batch_students_batch_id', 'batch_students', ['batch_id'])
    op.create_index('ix_batch_students_student_id', 'batch_students', ['student_id'])

    op.create_table(
        'classroom_videos',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('date', sa.String(length=40), nullable=False, server_default=''),
        sa.Column('course', sa.String(length=180), nullable=True),
        sa.Column('batch_id', sa.String(length=64), nullable=True),
        sa.Column('batch_name', sa.String(length=180), nullable=True),
        sa.Column('instructor', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('video_source', sa.String(length=20), nullable=False, server_default='youtube-url'),
        sa.Column('external_content_id', sa.String(length=128), nullable=True),
        sa.Column('youtube_video_url', sa.String(length=500), nullable=True),
        sa.Column('youtube_embed_url', sa.String(length=500), nullable=True),
        sa.Column('zoom_url', sa.String(length=500), nullable=True),
        sa.Column('zoom_passcode', sa.String(length=80), nullable=True),
        sa.Column('zoom_recording_id', sa.String(length=128), nullable=True),
        sa.Column('drive_id', sa.String(length=128), nullable=True),
        sa.Column('legacy_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_classroom_videos_course', 'classroom_videos', ['course'])
    op.create_index('ix_classroom_videos_batch_id', 'classroom_videos', ['batch_id'])
    op.create_index('ix_classroom_videos_external_content_id', 'classroom_videos', ['external_content_id'])
    op.create_index('ix_classroom_videos_zoom_recording_id', 'classroom_videos', ['zoom_recording_id'])
    op.create_index('ix_classroom_videos_legacy_id', 'classroom_videos', ['legacy_id'])
    op.create_index('ix_classroom_videos_created_at', 'classroom_videos', ['created_at'])
    op.create_index('ix_classroom_videos_batch_content', 'classroom_videos', ['batch_id', 'external_content_id'])

    op.create_table(
        'one_to_one_batches',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('course', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('teacher_id', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('teacher_name', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('student_id', sa.String(length=64), nullable=True),
        sa.Column('student_name', sa.String(length=180), nullable=False, server_default='To be assigned'),
        sa.Column('student_email', sa.String(length=255), nullable=False, server_default='To be assigned'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_one_to_one_batches_course', 'one_to_one_batches', ['course'])
    op.create_index('ix_one_to_one_batches_teacher_id', 'one_to_one_batches', ['teacher_id'])
    op.create_index('ix_one_to_one_batches_student_id', 'one_to_one_batches', ['student_id'])
    op.create_index('ix_one_to_one_batches_status', 'one_to_one_batches', ['status'])


def downgrade() -> None:
    op.drop_table('one_to_one_batches')
    op.drop_table('classroom_videos')
    op.drop_table('batch_students')
    op.drop_table('batches')
    op.drop_table('users')
