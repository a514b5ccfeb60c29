"""scan_queue_schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

scan_job_status = sa.Enum(
    'queued', 'processing', 'completed', 'failed', 'cancelled', name='scanjobstatus'
)
report_risk_level = sa.Enum('critical', 'high', 'medium', 'low', name='reportrisklevel')
issue_category = sa.Enum(
    'cookies', 'trackers', 'consent', 'privacy_policy', 'security', 'forms',
    'data_transfer', 'other', name='issuecategory'
)


def upgrade() -> None:
    """Upgrade schema."""
    # Create scan_jobs table
    op.create_table(
        'scan_jobs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('website_url', sa.String(2048), nullable=False),
        sa.Column('audit_request_id', sa.String(), nullable=True),
        sa.Column('user_email', sa.String(320), nullable=True),
        sa.Column('locale', sa.String(16), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('status', scan_job_status, nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('current_step', sa.String(255), nullable=True),
        sa.Column('report_id', sa.String(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('celery_task_id', sa.String(128), nullable=True),
        sa.Column('queued_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('progress >= 0 AND progress <= 100', name='check_progress_range'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scan_jobs_id'), 'scan_jobs', ['id'], unique=False)
    op.create_index(op.f('ix_scan_jobs_audit_request_id'), 'scan_jobs', ['audit_request_id'], unique=False)
    op.create_index(op.f('ix_scan_jobs_status'), 'scan_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_scan_jobs_celery_task_id'), 'scan_jobs', ['celery_task_id'], unique=False)
    op.create_index('idx_scan_jobs_dequeue', 'scan_jobs', ['status', 'priority', 'queued_at'], unique=False)

    # Create scan_reports table
    op.create_table(
        'scan_reports',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('audit_request_id', sa.String(), nullable=True),
        sa.Column('website_url', sa.String(2048), nullable=False),
        sa.Column('scanned_at', sa.DateTime(), nullable=False),
        sa.Column('scan_duration_ms', sa.Integer(), nullable=False),
        sa.Column('overall_score', sa.Integer(), nullable=False),
        sa.Column('risk_level', report_risk_level, nullable=False),
        sa.Column('cookies', sa.JSON(), nullable=False),
        sa.Column('trackers', sa.JSON(), nullable=False),
        sa.Column('third_party_requests', sa.JSON(), nullable=False),
        sa.Column('consent_banner', sa.JSON(), nullable=False),
        sa.Column('privacy_policy', sa.JSON(), nullable=False),
        sa.Column('security', sa.JSON(), nullable=False),
        sa.Column('forms', sa.JSON(), nullable=False),
        sa.Column('data_transfers', sa.JSON(), nullable=False),
        sa.Column('technologies', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scan_reports_id'), 'scan_reports', ['id'], unique=False)
    op.create_index(op.f('ix_scan_reports_audit_request_id'), 'scan_reports', ['audit_request_id'], unique=False)
    op.create_index(op.f('ix_scan_reports_risk_level'), 'scan_reports', ['risk_level'], unique=False)

    # Create report_issues table
    op.create_table(
        'report_issues',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('report_id', sa.String(), nullable=False),
        sa.Column('code', sa.String(64), nullable=False),
        sa.Column('category', issue_category, nullable=False),
        sa.Column('risk_level', report_risk_level, nullable=False),
        sa.Column('title', sa.String(512), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('recommendation', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['report_id'], ['scan_reports.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_report_issues_id'), 'report_issues', ['id'], unique=False)
    op.create_index(op.f('ix_report_issues_report_id'), 'report_issues', ['report_id'], unique=False)
    op.create_index(op.f('ix_report_issues_category'), 'report_issues', ['category'], unique=False)
    op.create_index(op.f('ix_report_issues_risk_level'), 'report_issues', ['risk_level'], unique=False)
    op.create_index('idx_report_issues_code', 'report_issues', ['code'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('report_issues')
    op.drop_table('scan_reports')
    op.drop_table('scan_jobs')
    issue_category.drop(op.get_bind(), checkfirst=True)
    report_risk_level.drop(op.get_bind(), checkfirst=True)
    scan_job_status.drop(op.get_bind(), checkfirst=True)
