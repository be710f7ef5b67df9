"""Intake schema

Revision ID: 001_intake
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_intake'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    # Intake runs
    op.create_table(
        'object_intakes',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('object_id', sa.String(64), nullable=False),
        sa.Column('upload_storage_path', sa.String(500), nullable=False),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='queued'),
        sa.Column('started_at', sa.DateTime(timezone=True)),
        sa.Column('finished_at', sa.DateTime(timezone=True)),
        sa.Column('error_text', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_object_intakes_object_id', 'object_intakes', ['object_id'])
    op.create_index('ix_object_intakes_object_status', 'object_intakes', ['object_id', 'status'])

    # Parser jobs
    op.create_table(
        'intake_jobs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('intake_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='queued'),
        sa.Column('webhook_target', sa.String(500), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True)),
        sa.Column('finished_at', sa.DateTime(timezone=True)),
        sa.Column('error_text', sa.Text()),
        sa.Column('duration_ms', sa.Integer()),
        sa.Column('parser_version', sa.String(50)),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['intake_id'], ['object_intakes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('intake_id')
    )

    # Extraction results
    op.create_table(
        'intake_results',
        sa.Column('intake_id', sa.String(36), nullable=False),
        sa.Column('data', JSONType, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['intake_id'], ['object_intakes.id']),
        sa.PrimaryKeyConstraint('intake_id')
    )

    # Object overrides
    op.create_table(
        'object_intake_overrides',
        sa.Column('object_id', sa.String(64), nullable=False),
        sa.Column('base_intake_id', sa.String(36)),
        sa.Column('data', JSONType, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['base_intake_id'], ['object_intakes.id']),
        sa.PrimaryKeyConstraint('object_id')
    )

    # Editor drafts
    op.create_table(
        'intake_edit_drafts',
        sa.Column('intake_id', sa.String(36), nullable=False),
        sa.Column('data', JSONType, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['intake_id'], ['object_intakes.id']),
        sa.PrimaryKeyConstraint('intake_id')
    )

    # Webhook audit log
    op.create_table(
        'intake_webhook_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.Text()),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('payload', JSONType),
        sa.Column('signature_valid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_intake_webhook_events_job_id', 'intake_webhook_events', ['job_id'])


def downgrade() -> None:
    op.drop_index('ix_intake_webhook_events_job_id', table_name='intake_webhook_events')
    op.drop_table('intake_webhook_events')
    op.drop_table('intake_edit_drafts')
    op.drop_table('object_intake_overrides')
    op.drop_table('intake_results')
    op.drop_table('intake_jobs')
    op.drop_index('ix_object_intakes_object_status', table_name='object_intakes')
    op.drop_index('ix_object_intakes_object_id', table_name='object_intakes')
    op.drop_table('object_intakes')
