"""workflow alerts and tasks

Revision ID: 003_alerts_and_tasks
Revises: 002_artifact_signals
Create Date: 2026-10-02 14:15:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers
revision = '003_alerts_and_tasks'
down_revision = '002_artifact_signals'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'workflow_alerts',
        sa.Column('alert_id', sa.String(), nullable=False),
        sa.Column('alert_type', sa.String(), nullable=False),
        sa.Column('severity', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('application_id', sa.String(), nullable=True),
        sa.Column('state', sa.String(), nullable=True),
        sa.Column('dedup_key', sa.String(), nullable=False),
        sa.Column('resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('alert_id'),
    )
    op.create_index('ix_workflow_alerts_application_id', 'workflow_alerts', ['application_id'])
    op.create_index('ix_workflow_alerts_resolved', 'workflow_alerts', ['resolved'])
    op.create_index('ix_workflow_alerts_created_at', 'workflow_alerts', ['created_at'])

    # At most one open alert per (type, application, state)
    op.create_index(
        'uq_alerts_open_dedup',
        'workflow_alerts',
        ['dedup_key'],
        unique=True,
        postgresql_where=sa.text('resolved = false'),
    )

    op.create_table(
        'workflow_tasks',
        sa.Column('task_id', sa.String(), nullable=False),
        sa.Column('application_id', sa.String(), nullable=False),
        sa.Column('task_type', sa.String(), nullable=False, server_default='WORKFLOW_STEP'),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('assigned_to', sa.String(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('auto_generated', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('task_id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.application_id']),
    )
    op.create_index('ix_workflow_tasks_application_id', 'workflow_tasks', ['application_id'])
    op.create_index('ix_workflow_tasks_assigned_to', 'workflow_tasks', ['assigned_to'])
    op.create_index('ix_workflow_tasks_status', 'workflow_tasks', ['status'])


def downgrade() -> None:
    op.drop_index('ix_workflow_tasks_status', table_name='workflow_tasks')
    op.drop_index('ix_workflow_tasks_assigned_to', table_name='workflow_tasks')
    op.drop_index('ix_workflow_tasks_application_id', table_name='workflow_tasks')
    op.drop_table('workflow_tasks')

    op.drop_index('uq_alerts_open_dedup', table_name='workflow_alerts')
    op.drop_index('ix_workflow_alerts_created_at', table_name='workflow_alerts')
    op.drop_index('ix_workflow_alerts_resolved', table_name='workflow_alerts')
    op.drop_index('ix_workflow_alerts_application_id', table_name='workflow_alerts')
    op.drop_table('workflow_alerts')
