"""Baseline migration - clients, reports, audit log, system config

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-18

Creates the four tables of the client intake store and seeds the default
system configuration keys.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create client intake tables."""

    # ==========================================================================
    # Clients
    # ==========================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('client_id', sa.String(20), nullable=False),
        sa.Column('sheet_row_index', sa.Integer(), nullable=True),
        sa.Column('company_name', sa.String(100), nullable=True),
        sa.Column('service_type', sa.String(100), nullable=False),
        sa.Column('urgency_level', sa.String(20), nullable=False, server_default='Medium'),
        sa.Column('client_full_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('customer_type', sa.String(20), nullable=False, server_default='Residential'),
        sa.Column('project_address', sa.Text(), nullable=False),
        sa.Column('technical_description', sa.Text(), nullable=True),
        sa.Column('budget_range', sa.String(50), nullable=True),
        sa.Column('expected_timeline', sa.String(50), nullable=True),
        sa.Column('preferred_contact_method', sa.String(20), nullable=False, server_default='Phone'),
        sa.Column('additional_notes', sa.Text(), nullable=True),
        sa.Column('special_requirements', sa.Text(), nullable=True),
        sa.Column('channel', sa.String(20), nullable=False, server_default='Website'),
        sa.Column('responsable', sa.String(100), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='New Lead'),
        sa.Column('form_emailer_status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('invoice_status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('estimate_status', sa.String(20), nullable=False, server_default='Pending'),
        *_timestamps(),
    )
    op.create_index('ix_clients_client_id', 'clients', ['client_id'], unique=True)
    op.create_index('idx_clients_status', 'clients', ['status'])
    op.create_index('idx_clients_created_at', 'clients', ['created_at'])
    op.create_index('idx_clients_email', 'clients', ['email'])

    # ==========================================================================
    # Reports (cascade with their client)
    # ==========================================================================
    op.create_table(
        'reports',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('report_id', sa.String(20), nullable=False, unique=True),
        sa.Column(
            'client_id',
            sa.String(20),
            sa.ForeignKey('clients.client_id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('report_type', sa.String(100), nullable=False),
        sa.Column('inspection_date', sa.Date(), nullable=True),
        sa.Column('findings', sa.Text(), nullable=True),
        sa.Column('recommendations', sa.Text(), nullable=True),
        sa.Column('photos', sa.JSON(), nullable=True),
        sa.Column('inspector', sa.String(100), nullable=True),
        sa.Column('next_inspection_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Draft'),
        *_timestamps(),
    )
    op.create_index('ix_reports_client_id', 'reports', ['client_id'])

    # ==========================================================================
    # Audit log (append-only)
    # ==========================================================================
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('table_name', sa.String(50), nullable=False),
        sa.Column('record_id', sa.String(50), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_audit_record_created', 'audit_log', ['record_id', 'created_at'])
    op.create_index('idx_audit_action_created', 'audit_log', ['action', 'created_at'])

    # ==========================================================================
    # System config
    # ==========================================================================
    system_config = op.create_table(
        'system_config',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('config_key', sa.String(100), nullable=False, unique=True),
        sa.Column('config_value', sa.Text(), nullable=True),
        sa.Column('config_type', sa.String(20), nullable=False, server_default='string'),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.bulk_insert(
        system_config,
        [
            {'config_key': 'crm_webhook_enabled', 'config_value': 'true',
             'config_type': 'boolean', 'description': 'Post new clients to the CRM webhook'},
            {'config_key': 'sheets_mirror_enabled', 'config_value': 'true',
             'config_type': 'boolean', 'description': 'Mirror client writes to the spreadsheet'},
            {'config_key': 'default_company', 'config_value': 'IRIAS Ironworks',
             'config_type': 'string', 'description': 'Company name used when none is given'},
        ],
    )


def downgrade() -> None:
    op.drop_table('system_config')
    op.drop_index('idx_audit_action_created', table_name='audit_log')
    op.drop_index('idx_audit_record_created', table_name='audit_log')
    op.drop_table('audit_log')
    op.drop_index('ix_reports_client_id', table_name='reports')
    op.drop_table('reports')
    op.drop_index('idx_clients_email', table_name='clients')
    op.drop_index('idx_clients_created_at', table_name='clients')
    op.drop_index('idx_clients_status', table_name='clients')
    op.drop_index('ix_clients_client_id', table_name='clients')
    op.drop_table('clients')
