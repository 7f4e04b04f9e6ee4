"""control visit status signal

Revision ID: 004_control_visits
Revises: 003_alerts_and_tasks
Create Date: 2026-10-16 09:40:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers
revision = '004_control_visits'
down_revision = '003_alerts_and_tasks'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'control_visits',
        sa.Column('visit_id', sa.String(), nullable=False),
        sa.Column('application_id', sa.String(), nullable=False),
        sa.Column('visit_status', sa.String(), nullable=False, server_default='SCHEDULED'),
        sa.Column('inspector_id', sa.String(), nullable=True),
        sa.Column('scheduled_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('findings', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('visit_id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.application_id']),
        sa.UniqueConstraint('application_id'),
        sa.CheckConstraint(
            "visit_status IN ('SCHEDULED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED')",
            name='ck_control_visits_status'
        ),
    )


def downgrade() -> None:
    op.drop_table('control_visits')
