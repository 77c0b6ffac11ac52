"""Create workflow_template, workflow_instance and workflow_step tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-12 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'workflow_template',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('uuid', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('steps', postgresql.JSONB(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid', name='uq_workflow_template_uuid'),
        sa.ForeignKeyConstraint(['category_id'], ['category.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by'], ['user.id'], ondelete='RESTRICT'),
        sa.CheckConstraint("jsonb_array_length(steps) >= 1", name='ck_workflow_template_steps_not_empty')
    )
    op.create_index('ix_workflow_template_category_id', 'workflow_template', ['category_id'])

    op.execute("""
        CREATE TRIGGER update_workflow_template_updated_at
        BEFORE UPDATE ON workflow_template
        FOR EACH ROW
        EXECUTE FUNCTION update_updated_at_column();
    """)

    op.create_table(
        'workflow_instance',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('uuid', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('document_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.Text(), server_default='in_progress', nullable=False),
        sa.Column('current_step', sa.Integer(), server_default='1', nullable=False),
        sa.Column('step_snapshot', postgresql.JSONB(), nullable=False),
        sa.Column('started_by', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid', name='uq_workflow_instance_uuid'),
        sa.ForeignKeyConstraint(['template_id'], ['workflow_template.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['document_id'], ['document.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['started_by'], ['user.id'], ondelete='RESTRICT'),
        sa.CheckConstraint(
            "status IN ('in_progress', 'approved', 'rejected', 'cancelled')",
            name='ck_workflow_instance_status'
        ),
        sa.CheckConstraint('current_step >= 1', name='ck_workflow_instance_current_step'),
        # Finished runs carry a completion time, running ones never do
        sa.CheckConstraint(
            "(status = 'in_progress') = (completed_at IS NULL)",
            name='ck_workflow_instance_completed_at'
        )
    )
    op.create_index('ix_workflow_instance_document_id', 'workflow_instance', ['document_id'])
    op.create_index('ix_workflow_instance_template_id', 'workflow_instance', ['template_id'])

    # At most one running instance per document
    op.create_index(
        'uq_workflow_instance_active_document',
        'workflow_instance',
        ['document_id'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'")
    )

    op.create_table(
        'workflow_step',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.Column('step_number', sa.Integer(), nullable=False),
        sa.Column('step_name', sa.Text(), nullable=False),
        sa.Column('assigned_to', sa.Integer(), nullable=False),
        sa.Column('action', sa.Text(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('completed_by', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['instance_id'], ['workflow_instance.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['assigned_to'], ['user.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['completed_by'], ['user.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('instance_id', 'step_number', name='uq_workflow_step_instance_number'),
        sa.CheckConstraint("action IS NULL OR action IN ('approve', 'reject')", name='ck_workflow_step_action'),
        sa.CheckConstraint('step_number >= 1', name='ck_workflow_step_number')
    )
    op.create_index('ix_workflow_step_assigned_open', 'workflow_step', ['assigned_to', 'completed_at'])


def downgrade():
    op.drop_index('ix_workflow_step_assigned_open', table_name='workflow_step')
    op.drop_table('workflow_step')
    op.drop_index('uq_workflow_instance_active_document', table_name='workflow_instance')
    op.drop_index('ix_workflow_instance_template_id', table_name='workflow_instance')
    op.drop_index('ix_workflow_instance_document_id', table_name='workflow_instance')
    op.drop_table('workflow_instance')
    op.execute('DROP TRIGGER IF EXISTS update_workflow_template_updated_at ON workflow_template')
    op.drop_index('ix_workflow_template_category_id', table_name='workflow_template')
    op.drop_table('workflow_template')
