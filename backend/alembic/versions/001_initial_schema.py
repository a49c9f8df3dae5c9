"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Tables:
  - projects: Managed application directories and their lifecycle status
  - deployments: Build-then-start attempts
  - port_assignments: Live port reservation per project
  - logs: Published build, runtime and system log lines
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    schema = 'shipyard'

    # =========================================================================
    # 1. projects
    # =========================================================================
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('path', sa.String(1000), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='stopped'),
        sa.Column('internal_port', sa.Integer(), nullable=True),
        sa.Column('external_port', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        schema=schema,
    )
    op.create_index('ix_projects_name', 'projects', ['name'], unique=True, schema=schema)
    op.create_index('ix_projects_status', 'projects', ['status'], schema=schema)
    op.create_check_constraint(
        'ck_projects_status',
        'projects',
        "status IN ('stopped', 'building', 'running', 'error')",
        schema=schema,
    )

    # =========================================================================
    # 2. deployments
    # =========================================================================
    op.create_table(
        'deployments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('version', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('log_path', sa.String(1000), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ['project_id'], [f'{schema}.projects.id'],
            name='deployments_project_id_fkey', ondelete='CASCADE',
        ),
        schema=schema,
    )
    op.create_index('ix_deployments_project_id', 'deployments', ['project_id'], schema=schema)
    op.create_index('ix_deployments_status', 'deployments', ['status'], schema=schema)
    op.create_check_constraint(
        'ck_deployments_status',
        'deployments',
        "status IN ('pending', 'building', 'success', 'failed', 'cancelled')",
        schema=schema,
    )

    # =========================================================================
    # 3. port_assignments
    # =========================================================================
    op.create_table(
        'port_assignments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('internal_port', sa.Integer(), nullable=False),
        sa.Column('external_port', sa.Integer(), nullable=False),
        sa.Column('protocol', sa.String(10), nullable=False, server_default='http'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['project_id'], [f'{schema}.projects.id'],
            name='port_assignments_project_id_fkey', ondelete='CASCADE',
        ),
        sa.UniqueConstraint('project_id', name='uq_port_assignments_project_id'),
        sa.UniqueConstraint('internal_port', name='uq_port_assignments_internal_port'),
        schema=schema,
    )

    # =========================================================================
    # 4. logs
    # =========================================================================
    op.create_table(
        'logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['project_id'], [f'{schema}.projects.id'],
            name='logs_project_id_fkey', ondelete='CASCADE',
        ),
        schema=schema,
    )
    op.create_index('ix_logs_project_id', 'logs', ['project_id'], schema=schema)
    op.create_index('ix_logs_timestamp', 'logs', ['timestamp'], schema=schema)


def downgrade() -> None:
    schema = 'shipyard'

    op.drop_table('logs', schema=schema)
    op.drop_table('port_assignments', schema=schema)
    op.drop_table('deployments', schema=schema)
    op.drop_table('projects', schema=schema)
