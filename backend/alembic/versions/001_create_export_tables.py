"""Create export tables

Revision ID: 001_export_tables
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_export_tables'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create organizations, users, beneficiaries, jobs and job_keys."""
    op.create_table(
        'organizations',
        sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('cms_id', sa.String(5), nullable=True),
        sa.Column('client_id', sa.String(255), nullable=True),
        sa.Column('public_key', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cms_id'),
    )
    op.create_index('ix_organizations_client_id', 'organizations', ['client_id'])

    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])

    op.create_table(
        'beneficiaries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('blue_button_id', sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_beneficiaries_blue_button_id', 'beneficiaries', ['blue_button_id'])

    op.create_table(
        'organization_beneficiaries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('beneficiary_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['beneficiary_id'], ['beneficiaries.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('organization_id', 'beneficiary_id', name='uq_org_beneficiary'),
    )
    op.create_index(
        'ix_organization_beneficiaries_organization_id',
        'organization_beneficiaries',
        ['organization_id'],
    )

    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('request_url', sa.String(2048), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='Pending'),
        sa.Column('job_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
    )
    op.create_index('ix_jobs_organization_id', 'jobs', ['organization_id'])
    op.create_index('ix_jobs_user_id', 'jobs', ['user_id'])
    op.create_index('ix_jobs_org_status', 'jobs', ['organization_id', 'status'])

    op.create_table(
        'job_keys',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(127), nullable=False),
        sa.Column('encrypted_key', sa.LargeBinary(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('job_id', 'file_name', name='uq_job_keys_job_file'),
    )
    op.create_index('ix_job_keys_job_id', 'job_keys', ['job_id'])


def downgrade() -> None:
    op.drop_table('job_keys')
    op.drop_table('jobs')
    op.drop_table('organization_beneficiaries')
    op.drop_table('beneficiaries')
    op.drop_table('users')
    op.drop_table('organizations')
