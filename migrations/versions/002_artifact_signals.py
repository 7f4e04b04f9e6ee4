"""artifact signal tables: documents, control photos, assessment reports

Revision ID: 002_artifact_signals
Revises: 001_initial_workflow_schema
Create Date: 2026-09-21 10:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers
revision = '002_artifact_signals'
down_revision = '001_initial_workflow_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'application_documents',
        sa.Column('document_id', sa.String(), nullable=False),
        sa.Column('application_id', sa.String(), nullable=False),
        sa.Column('document_type', sa.String(), nullable=False),
        sa.Column('document_name', sa.String(), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('verification_status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('verified_by', sa.String(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('document_id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.application_id']),
    )
    op.create_index('ix_application_documents_application_id', 'application_documents', ['application_id'])

    op.create_table(
        'control_photos',
        sa.Column('photo_id', sa.String(), nullable=False),
        sa.Column('application_id', sa.String(), nullable=False),
        sa.Column('photo_category', sa.String(), nullable=False),
        sa.Column('storage_path', sa.String(), nullable=True),
        sa.Column('captured_by', sa.String(), nullable=True),
        sa.Column('captured_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('photo_id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.application_id']),
    )
    op.create_index('ix_control_photos_application_id', 'control_photos', ['application_id'])
    op.create_index('ix_photos_app_category', 'control_photos', ['application_id', 'photo_category'])

    op.create_table(
        'assessment_reports',
        sa.Column('report_id', sa.String(), nullable=False),
        sa.Column('application_id', sa.String(), nullable=False),
        sa.Column('report_type', sa.String(), nullable=False),
        sa.Column('conclusion', sa.Text(), nullable=True),
        sa.Column('recommendations', sa.Text(), nullable=True),
        sa.Column('submitted_by', sa.String(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('report_id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.application_id']),
        sa.UniqueConstraint('application_id', 'report_type', name='uq_reports_app_type'),
        sa.CheckConstraint("report_type IN ('TECHNICAL', 'SOCIAL')", name='ck_reports_type'),
    )
    op.create_index('ix_assessment_reports_application_id', 'assessment_reports', ['application_id'])


def downgrade() -> None:
    op.drop_index('ix_assessment_reports_application_id', table_name='assessment_reports')
    op.drop_table('assessment_reports')

    op.drop_index('ix_photos_app_category', table_name='control_photos')
    op.drop_index('ix_control_photos_application_id', table_name='control_photos')
    op.drop_table('control_photos')

    op.drop_index('ix_application_documents_application_id', table_name='application_documents')
    op.drop_table('application_documents')
