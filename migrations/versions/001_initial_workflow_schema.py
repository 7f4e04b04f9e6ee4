"""initial workflow schema: applications, steps, audit log

Revision ID: 001_initial_workflow_schema
Revises:
Create Date: 2026-09-14 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers
revision = '001_initial_workflow_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create applications table
    op.create_table(
        'applications',
        sa.Column('application_id', sa.String(), nullable=False),
        sa.Column('application_number', sa.String(), nullable=False),
        sa.Column('applicant_name', sa.String(), nullable=False),
        sa.Column('property_address', sa.String(), nullable=True),
        sa.Column('requested_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('recommended_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('approved_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('priority_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('assigned_to', sa.String(), nullable=True),
        sa.Column('current_state', sa.String(), nullable=False, server_default='DRAFT'),
        sa.Column('state_entered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sla_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('application_id'),
        sa.UniqueConstraint('application_number'),
        sa.CheckConstraint(
            "current_state IN ('DRAFT', 'INTAKE_REVIEW', 'CONTROL_ASSIGN', 'VISIT_SCHEDULED', "
            "'CONTROL_IN_PROGRESS', 'TECHNICAL_REVIEW', 'SOCIAL_REVIEW', 'DIRECTOR_REVIEW', "
            "'MINISTER_DECISION', 'CLOSURE', 'REJECTED')",
            name='ck_applications_state',
        ),
        sa.CheckConstraint(
            "(completed_at IS NOT NULL) = (current_state IN ('CLOSURE', 'REJECTED'))",
            name='ck_applications_completed_terminal',
        ),
    )

    op.create_index('ix_applications_current_state', 'applications', ['current_state'])
    op.create_index('ix_applications_sla_deadline', 'applications', ['sla_deadline'])
    op.create_index('ix_applications_created_at', 'applications', ['created_at'])
    op.create_index('ix_applications_state_entered', 'applications', ['current_state', 'state_entered_at'])

    # Create application_steps table (append-only)
    op.create_table(
        'application_steps',
        sa.Column('step_id', sa.String(), nullable=False),
        sa.Column('application_id', sa.String(), nullable=False),
        sa.Column('step_name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='COMPLETED'),
        sa.Column('from_state', sa.String(), nullable=True),
        sa.Column('to_state', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('sla_hours', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.String(), nullable=False),
        sa.Column('actor_role', sa.String(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('step_id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.application_id']),
    )

    op.create_index('ix_application_steps_application_id', 'application_steps', ['application_id'])
    op.create_index('ix_steps_app_completed', 'application_steps', ['application_id', 'completed_at'])

    # Create audit_log table (append-only)
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('correlation_id', sa.String(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('actor_id', sa.String(), nullable=False),
        sa.Column('actor_role', sa.String(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('resource_id', sa.String(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('result', sa.String(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_index('ix_audit_log_correlation_id', 'audit_log', ['correlation_id'])
    op.create_index('ix_audit_log_timestamp', 'audit_log', ['timestamp'])
    op.create_index('ix_audit_log_resource_id', 'audit_log', ['resource_id'])

    # Refuse UPDATE/DELETE on audit tables at the database level too
    op.execute("""
        CREATE OR REPLACE FUNCTION reject_audit_mutation() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION '% rows are append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;
    """)
    for table in ('application_steps', 'audit_log'):
        op.execute(f"""
            CREATE TRIGGER {table}_append_only
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW EXECUTE FUNCTION reject_audit_mutation();
        """)


def downgrade() -> None:
    for table in ('application_steps', 'audit_log'):
        op.execute(f"DROP TRIGGER IF EXISTS {table}_append_only ON {table}")
    op.execute("DROP FUNCTION IF EXISTS reject_audit_mutation()")

    op.drop_index('ix_audit_log_resource_id', table_name='audit_log')
    op.drop_index('ix_audit_log_timestamp', table_name='audit_log')
    op.drop_index('ix_audit_log_correlation_id', table_name='audit_log')
    op.drop_table('audit_log')

    op.drop_index('ix_steps_app_completed', table_name='application_steps')
    op.drop_index('ix_application_steps_application_id', table_name='application_steps')
    op.drop_table('application_steps')

    op.drop_index('ix_applications_state_entered', table_name='applications')
    op.drop_index('ix_applications_created_at', table_name='applications')
    op.drop_index('ix_applications_sla_deadline', table_name='applications')
    op.drop_index('ix_applications_current_state', table_name='applications')
    op.drop_table('applications')
