"""Add class attendance and the last-collection time of payments

Revision ID: 7b2e9c41d5a0
Revises: 3f1c2a9d8e47
Create Date: 2026-10-19 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7b2e9c41d5a0'
down_revision: Union[str, Sequence[str], None] = '3f1c2a9d8e47'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Track when money was last collected on a payment and create the attendances table."""
    op.add_column('payments', sa.Column('last_collected_at', sa.DateTime(timezone=True), nullable=True))

    op.create_table(
        'attendances',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('student_id', sa.String(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('class_id', sa.String(), sa.ForeignKey('classes.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('session', sa.String(), nullable=False, server_default='full_day'),
        sa.Column('period', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('note', sa.String(), nullable=True),
        sa.Column('marked_by', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('student_id', 'class_id', 'date', 'session', 'period', name='uq_attendances_mark'),
        sa.CheckConstraint('period >= 0 AND period <= 10', name='ck_attendances_period'),
    )
    op.create_index('ix_attendances_student_id', 'attendances', ['student_id'])
    op.create_index('ix_attendances_class_date', 'attendances', ['class_id', 'date'])
    op.create_index('ix_attendances_school_date', 'attendances', ['school_id', 'date'])


def downgrade() -> None:
    """Drop the attendances table."""
    op.drop_index('ix_attendances_school_date', table_name='attendances')
    op.drop_index('ix_attendances_class_date', table_name='attendances')
    op.drop_index('ix_attendances_student_id', table_name='attendances')
    op.drop_table('attendances')
    op.drop_column('payments', 'last_collected_at')
