"""task workflow schema

Revision ID: 3f1c9a7d2b40
Revises: 
Create Date: 2026-10-19 10:12:41.508113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('username', sa.String(), nullable=False, unique=True),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('team_type', sa.String(), nullable=True),
        sa.Column('team_leader_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_team_type', 'users', ['team_type'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('client_name', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='CLIENT'),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('team_type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(), nullable=False, server_default='MEDIUM'),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('assigned_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assigned_to', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('qa_assigned_to', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('qa_assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_reviewed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('last_qa_assigned_to', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('rework_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('estimated_minutes', sa.Integer(), nullable=True),
        sa.Column('files', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_tasks_project_id', 'tasks', ['project_id'])
    op.create_index('ix_tasks_status', 'tasks', ['status'])

    op.create_table(
        'task_timers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('is_rework', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('exceeded_notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_task_timers_task_id', 'task_timers', ['task_id'])
    # Only one running timer per task
    op.create_index(
        'uq_task_timers_open', 'task_timers', ['task_id'], unique=True,
        postgresql_where=sa.text('end_time IS NULL'),
        sqlite_where=sa.text('end_time IS NULL'),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'is_read'])
    op.create_index('ix_notifications_task_type', 'notifications', ['task_id', 'type'])

    op.create_table(
        'task_notes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('note', sa.Text(), nullable=False),
        sa.Column('image_ref', sa.String(), nullable=True),
        sa.Column('caption', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_task_notes_task_id', 'task_notes', ['task_id'])


def downgrade() -> None:
    op.drop_table('task_notes')
    op.drop_table('notifications')
    op.drop_index('uq_task_timers_open', table_name='task_timers')
    op.drop_table('task_timers')
    op.drop_table('tasks')
    op.drop_table('projects')
    op.drop_table('users')
