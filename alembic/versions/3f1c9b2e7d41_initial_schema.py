"""initial schema

Revision ID: 3f1c9b2e7d41
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9b2e7d41'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create projection, sync job and workflow step log tables."""
    op.create_table('repositories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('full_name')
    )
    op.create_table('branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('head_sha', sa.String(length=40), nullable=False),
        sa.Column('protected', sa.Boolean(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'name', name='uq_branch_repo_name')
    )
    op.create_table('pull_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('github_id', sa.BigInteger(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('draft', sa.Boolean(), nullable=False),
        sa.Column('author_login', sa.String(length=100), nullable=True),
        sa.Column('head_ref', sa.String(length=255), nullable=False),
        sa.Column('head_sha', sa.String(length=40), nullable=False),
        sa.Column('base_ref', sa.String(length=255), nullable=False),
        sa.Column('merged_at', sa.DateTime(), nullable=True),
        sa.Column('github_created_at', sa.DateTime(), nullable=False),
        sa.Column('github_updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'number', name='uq_repo_pr_number')
    )
    op.create_table('issues',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('github_id', sa.BigInteger(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('author_login', sa.String(length=100), nullable=True),
        sa.Column('labels', sa.JSON(), nullable=False),
        sa.Column('comments', sa.Integer(), nullable=False),
        sa.Column('github_created_at', sa.DateTime(), nullable=False),
        sa.Column('github_updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'number', name='uq_repo_issue_number')
    )
    op.create_table('commits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('sha', sa.String(length=40), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('author_name', sa.String(length=200), nullable=True),
        sa.Column('author_login', sa.String(length=100), nullable=True),
        sa.Column('authored_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'sha', name='uq_repo_commit_sha')
    )
    op.create_table('check_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('github_id', sa.BigInteger(), nullable=False),
        sa.Column('head_sha', sa.String(length=40), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('conclusion', sa.String(length=30), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'github_id', name='uq_repo_check_run')
    )
    op.create_table('workflow_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('github_id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('run_number', sa.Integer(), nullable=False),
        sa.Column('event', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=True),
        sa.Column('conclusion', sa.String(length=30), nullable=True),
        sa.Column('head_sha', sa.String(length=40), nullable=False),
        sa.Column('head_branch', sa.String(length=255), nullable=True),
        sa.Column('github_created_at', sa.DateTime(), nullable=False),
        sa.Column('github_updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'github_id', name='uq_repo_workflow_run')
    )
    op.create_table('workflow_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('workflow_run_id', sa.Integer(), nullable=False),
        sa.Column('github_id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('conclusion', sa.String(length=30), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['workflow_run_id'], ['workflow_runs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'github_id', name='uq_repo_workflow_job')
    )
    op.create_table('pr_file_syncs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('pr_number', sa.Integer(), nullable=False),
        sa.Column('head_sha', sa.String(length=40), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'DONE', name='prfilesyncstatus'), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'pr_number', 'head_sha', name='uq_repo_pr_file_sync')
    )
    op.create_table('sync_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('lock_key', sa.String(length=255), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=True),
        sa.Column('job_type', sa.String(length=50), nullable=False),
        sa.Column('trigger_reason', sa.String(length=50), nullable=False),
        sa.Column('state', sa.Enum('PENDING', 'RUNNING', 'RETRY', 'DONE', 'FAILED', name='syncjobstate'), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lock_key')
    )
    op.create_table('workflow_instances',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('args', sa.JSON(), nullable=False),
        sa.Column('context', sa.JSON(), nullable=False),
        sa.Column('lock_key', sa.String(length=255), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'RUNNING', 'COMPLETED', 'FAILED', 'CANCELED', name='workflowstatus'), nullable=False),
        sa.Column('cursor', sa.Integer(), nullable=False),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False),
        sa.Column('result_kind', sa.String(length=20), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('completion_delivered', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_workflow_instances_lock_key', 'workflow_instances', ['lock_key'])
    op.create_index(
        'uq_workflow_instances_active_lock_key',
        'workflow_instances',
        ['lock_key'],
        unique=True,
        sqlite_where=sa.text("status IN ('PENDING', 'RUNNING')"),
        postgresql_where=sa.text("status IN ('PENDING', 'RUNNING')"),
    )
    op.create_table('workflow_steps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workflow_id', sa.String(length=32), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False),
        sa.Column('skipped', sa.Boolean(), nullable=False),
        sa.Column('output', sa.JSON(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflow_instances.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('workflow_id', 'name', name='uq_workflow_step_name')
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('workflow_steps')
    op.drop_index('uq_workflow_instances_active_lock_key', table_name='workflow_instances')
    op.drop_index('ix_workflow_instances_lock_key', table_name='workflow_instances')
    op.drop_table('workflow_instances')
    op.drop_table('sync_jobs')
    op.drop_table('pr_file_syncs')
    op.drop_table('workflow_jobs')
    op.drop_table('workflow_runs')
    op.drop_table('check_runs')
    op.drop_table('commits')
    op.drop_table('issues')
    op.drop_table('pull_requests')
    op.drop_table('branches')
    op.drop_table('repositories')
    # Drop the enum types
    sa.Enum(name='workflowstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='syncjobstate').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='prfilesyncstatus').drop(op.get_bind(), checkfirst=True)
