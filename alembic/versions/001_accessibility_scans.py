"""accessibility_scan_requests_and_reports

Revision ID: 001
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

scan_request_status = sa.Enum(
    'pending', 'processing', 'completed', 'failed', 'cancelled', name='scanrequeststatus'
)


def upgrade() -> None:
    """Upgrade schema."""
    # Create scan_requests table
    op.create_table(
        'scan_requests',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('status', scan_request_status, nullable=False),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_scan_requests_id'), 'scan_requests', ['id'], unique=False)
    op.create_index(op.f('ix_scan_requests_user_id'), 'scan_requests', ['user_id'], unique=False)
    op.create_index(op.f('ix_scan_requests_url'), 'scan_requests', ['url'], unique=False)
    op.create_index(op.f('ix_scan_requests_status'), 'scan_requests', ['status'], unique=False)
    op.create_index('ix_scan_requests_user_requested', 'scan_requests', ['user_id', 'requested_at'], unique=False)

    # Create scan_reports table (1:1 with scan_requests)
    op.create_table(
        'scan_reports',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('scan_request_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('compliance_score', sa.Integer(), nullable=False),
        sa.Column('total_issues', sa.Integer(), nullable=False),
        sa.Column('violations', sa.JSON(), nullable=False),
        sa.Column('passes', sa.JSON(), nullable=False),
        sa.Column('incomplete', sa.JSON(), nullable=False),
        sa.Column('summary', sa.JSON(), nullable=False),
        sa.Column('recommendations', sa.JSON(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['scan_request_id'], ['scan_requests.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scan_request_id', name='uq_scan_reports_request'),
    )
    op.create_index(op.f('ix_scan_reports_id'), 'scan_reports', ['id'], unique=False)
    op.create_index(op.f('ix_scan_reports_scan_request_id'), 'scan_reports', ['scan_request_id'], unique=False)
    op.create_index(op.f('ix_scan_reports_user_id'), 'scan_reports', ['user_id'], unique=False)
    op.create_index(op.f('ix_scan_reports_url'), 'scan_reports', ['url'], unique=False)
    op.create_index(op.f('ix_scan_reports_captured_at'), 'scan_reports', ['captured_at'], unique=False)
    op.create_index('ix_scan_reports_url_captured', 'scan_reports', ['url', 'captured_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_scan_reports_url_captured', table_name='scan_reports')
    op.drop_index(op.f('ix_scan_reports_captured_at'), table_name='scan_reports')
    op.drop_index(op.f('ix_scan_reports_url'), table_name='scan_reports')
    op.drop_index(op.f('ix_scan_reports_user_id'), table_name='scan_reports')
    op.drop_index(op.f('ix_scan_reports_scan_request_id'), table_name='scan_reports')
    op.drop_index(op.f('ix_scan_reports_id'), table_name='scan_reports')
    op.drop_table('scan_reports')

    op.drop_index('ix_scan_requests_user_requested', table_name='scan_requests')
    op.drop_index(op.f('ix_scan_requests_status'), table_name='scan_requests')
    op.drop_index(op.f('ix_scan_requests_url'), table_name='scan_requests')
    op.drop_index(op.f('ix_scan_requests_user_id'), table_name='scan_requests')
    op.drop_index(op.f('ix_scan_requests_id'), table_name='scan_requests')
    op.drop_table('scan_requests')
    scan_request_status.drop(op.get_bind(), checkfirst=True)
