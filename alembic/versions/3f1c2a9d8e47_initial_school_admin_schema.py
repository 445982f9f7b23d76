"""Initial school administration schema

Revision ID: 3f1c2a9d8e47
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d8e47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create tenants, users, classes, students, scores, payments and the audit log."""
    op.create_table(
        'schools',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_name', sa.String(), nullable=False, unique=True),
        sa.Column('school_name_key', sa.String(), nullable=False, unique=True),
        sa.Column('school_code', sa.String(), nullable=False, unique=True),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('principal_name', sa.String(), nullable=True),
        sa.Column('total_students', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_teachers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_classes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('subscription_plan', sa.String(), nullable=False, server_default='free'),
        sa.Column('subscription_expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('workspace_id', sa.String(), nullable=True),
        sa.Column('workspace_code', sa.String(), nullable=True),
        sa.Column('workspace_path', sa.String(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'workspaces',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('parent_workspace_id', sa.String(), sa.ForeignKey('workspaces.id'), nullable=True),
        sa.Column('linked_entity_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('path', sa.String(), nullable=False, unique=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        *_timestamps(),
        sa.UniqueConstraint('school_id', 'type', 'linked_entity_id', name='uq_workspace_entity'),
        sa.UniqueConstraint('school_id', 'code', name='uq_workspace_school_code'),
    )
    op.create_index('ix_workspaces_school_id', 'workspaces', ['school_id'])

    op.create_table(
        'users',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='user'),
        sa.Column('requested_role', sa.String(), nullable=True),
        sa.Column('can_create', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_update', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_delete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_view_all', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_manage_users', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_manage_school', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('permissions_overridden', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('refresh_token', sa.String(), nullable=True),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_logout', sa.DateTime(timezone=True), nullable=True),
        sa.Column('student_id', sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('school_id', 'username', name='uq_users_school_username'),
        sa.UniqueConstraint('school_id', 'email', name='uq_users_school_email'),
    )
    op.create_index('ix_users_school_id', 'users', ['school_id'])
    op.create_index('ix_users_student_id', 'users', ['student_id'])

    op.create_table(
        'classes',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('class_code', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('grade', sa.Integer(), nullable=False),
        sa.Column('academic_year', sa.String(), nullable=False),
        sa.Column('homeroom_teacher_id', sa.String(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='40'),
        sa.Column('current_students', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('classroom', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('workspace_id', sa.String(), nullable=True),
        sa.Column('workspace_code', sa.String(), nullable=True),
        sa.Column('workspace_path', sa.String(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('school_id', 'class_code', name='uq_classes_school_code'),
    )
    op.create_index('ix_classes_school_id', 'classes', ['school_id'])

    op.create_table(
        'students',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('student_code', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('gender', sa.String(), nullable=True),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('parent_name', sa.String(), nullable=True),
        sa.Column('parent_phone', sa.String(), nullable=True),
        sa.Column('class_id', sa.String(), sa.ForeignKey('classes.id'), nullable=True),
        sa.Column('class_workspace_id', sa.String(), nullable=True),
        sa.Column('academic_year', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='studying'),
        *_timestamps(),
        sa.UniqueConstraint('school_id', 'student_code', name='uq_students_school_code'),
    )
    op.create_index('ix_students_school_id', 'students', ['school_id'])
    op.create_index('ix_students_class_id', 'students', ['class_id'])

    op.create_table(
        'student_transfers',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('student_id', sa.String(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('from_class_id', sa.String(), nullable=True),
        sa.Column('to_class_id', sa.String(), nullable=False),
        sa.Column('transfer_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('transferred_by', sa.String(), nullable=True),
    )
    op.create_index('ix_student_transfers_student_id', 'student_transfers', ['student_id'])

    op.create_table(
        'subjects',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('subject_code', sa.String(), nullable=False),
        sa.Column('subject_name', sa.String(), nullable=False),
        sa.Column('coefficient', sa.Float(), nullable=False, server_default='1'),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('school_id', 'subject_code', name='uq_subjects_school_code'),
    )

    op.create_table(
        'scores',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('student_id', sa.String(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('class_id', sa.String(), sa.ForeignKey('classes.id'), nullable=False),
        sa.Column('subject_id', sa.String(), sa.ForeignKey('subjects.id'), nullable=False),
        sa.Column('semester', sa.Integer(), nullable=False),
        sa.Column('academic_year', sa.String(), nullable=False),
        sa.Column('score_type', sa.String(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('coefficient', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('note', sa.String(), nullable=True),
        sa.Column('teacher_id', sa.String(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('entered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('locked_by', sa.String(), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            'student_id', 'class_id', 'subject_id', 'semester', 'academic_year', 'score_type',
            name='uq_scores_cohort_entry',
        ),
        sa.CheckConstraint('score >= 0 AND score <= 10', name='ck_scores_range'),
    )
    op.create_index('ix_scores_cohort', 'scores', ['school_id', 'class_id', 'subject_id', 'semester', 'academic_year'])

    op.create_table(
        'fees',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('fee_name', sa.String(), nullable=False),
        sa.Column('fee_type', sa.String(), nullable=False, server_default='tuition'),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('academic_year', sa.String(), nullable=False),
        sa.Column('semester', sa.Integer(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('student_id', sa.String(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('fee_id', sa.String(), sa.ForeignKey('fees.id'), nullable=False),
        sa.Column('amount_due', sa.Float(), nullable=False),
        sa.Column('amount_paid', sa.Float(), nullable=False, server_default='0'),
        sa.Column('discount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(), nullable=False, server_default='unpaid'),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('transaction_ref', sa.String(), nullable=True),
        sa.Column('paid_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('note', sa.String(), nullable=True),
        sa.Column('collected_by', sa.String(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('student_id', 'fee_id', name='uq_payments_student_fee'),
    )
    op.create_index('ix_payments_school_id', 'payments', ['school_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('school_id', sa.String(), nullable=True),
        sa.Column('actor_id', sa.String(), nullable=True),
        sa.Column('actor_email', sa.String(), nullable=True),
        sa.Column('actor_role', sa.String(), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('outcome', sa.String(), nullable=False, server_default='success'),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_audit_logs_school_created', 'audit_logs', ['school_id', 'created_at'])
    op.create_index('ix_audit_logs_resource_id', 'audit_logs', ['resource_id'])


def downgrade() -> None:
    """Drop every table in reverse dependency order."""
    op.drop_index('ix_audit_logs_resource_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_school_created', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_payments_school_id', table_name='payments')
    op.drop_table('payments')
    op.drop_table('fees')
    op.drop_index('ix_scores_cohort', table_name='scores')
    op.drop_table('scores')
    op.drop_table('subjects')
    op.drop_index('ix_student_transfers_student_id', table_name='student_transfers')
    op.drop_table('student_transfers')
    op.drop_index('ix_students_class_id', table_name='students')
    op.drop_index('ix_students_school_id', table_name='students')
    op.drop_table('students')
    op.drop_index('ix_classes_school_id', table_name='classes')
    op.drop_table('classes')
    op.drop_index('ix_users_student_id', table_name='users')
    op.drop_index('ix_users_school_id', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_workspaces_school_id', table_name='workspaces')
    op.drop_table('workspaces')
    op.drop_table('schools')
