"""Create proposal pricing and approval tables

Revision ID: 001
Revises:
Create Date: 2026-10-18

WHY: Proposals, their priced line items, and the sequential approval
workflow. Enum columns are stored as VARCHAR (non-native enums) so the
schema is identical on PostgreSQL and SQLite.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(name: str, scale: int = 2, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(14, scale), nullable=False, server_default='0', **kwargs)


def upgrade() -> None:
    """Create proposals, proposal_items, approval_workflows and approval_steps."""
    op.create_table(
        'proposals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='draft'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('discount_mode', sa.String(32), nullable=False, server_default='percentage'),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _money('subtotal'),
        _money('total_discount'),
        _money('total_tax'),
        _money('total_setup_fees'),
        _money('grand_total'),
        _money('total_margin'),
        _money('recurring_revenue'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_proposals_id', 'proposals', ['id'])
    op.create_index('ix_proposals_status', 'proposals', ['status'])

    op.create_table(
        'proposal_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('item_order', sa.Integer(), nullable=False),
        sa.Column('item_type', sa.String(32), nullable=False, server_default='product'),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('vendor', sa.String(length=255), nullable=True),
        sa.Column('catalog_item_id', sa.String(length=64), nullable=True),
        _money('quantity', scale=4),
        _money('unit_price', scale=4),
        sa.Column('discount_mode', sa.String(32), nullable=False, server_default='percentage'),
        _money('discount_value', scale=4),
        sa.Column('tax_percent', sa.Numeric(7, 4), nullable=False, server_default='0'),
        _money('setup_fee', scale=4),
        sa.Column('margin_percent', sa.Numeric(7, 4), nullable=False, server_default='0'),
        sa.Column('billing_cycle', sa.String(32), nullable=True),
        sa.Column('renewal_price', sa.Numeric(14, 4), nullable=True),
        _money('total_price'),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_proposal_items_id', 'proposal_items', ['id'])
    op.create_index('ix_proposal_items_proposal_id', 'proposal_items', ['proposal_id'])
    op.create_index('ix_proposal_items_proposal_order', 'proposal_items', ['proposal_id', 'item_order'])

    op.create_table(
        'approval_workflows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approval_workflows_id', 'approval_workflows', ['id'])
    op.create_index('ix_approval_workflows_proposal_id', 'approval_workflows', ['proposal_id'], unique=True)

    op.create_table(
        'approval_steps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workflow_id', sa.Integer(), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('approver_id', sa.String(length=255), nullable=False),
        sa.Column('approver_name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('approver_email', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('required', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['workflow_id'], ['approval_workflows.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('workflow_id', 'step_order', name='uq_approval_steps_order'),
    )
    op.create_index('ix_approval_steps_id', 'approval_steps', ['id'])
    op.create_index('ix_approval_steps_workflow_id', 'approval_steps', ['workflow_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('approval_steps')
    op.drop_table('approval_workflows')
    op.drop_table('proposal_items')
    op.drop_table('proposals')
