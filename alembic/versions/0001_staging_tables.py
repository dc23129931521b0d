"""Create staging tables and the permanent served-notice store

Revision ID: 0001_staging_tables
Revises:
Create Date: 2025-09-02

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_staging_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TXN_FK = 'staged_transactions.transaction_id'


def upgrade() -> None:
    """Create staged_* tables, served_notices and notice_components."""

    # Parent row - one per contract call
    op.create_table(
        'staged_transactions',
        sa.Column('transaction_id', sa.String(64), primary_key=True),
        sa.Column('session_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='staged'),
        sa.Column('network', sa.String(50), nullable=False, server_default='mainnet'),
        sa.Column('server_address', sa.String(255), nullable=False, server_default=''),
        sa.Column('server_name', sa.String(255), nullable=True),
        sa.Column('contract_address', sa.String(255), nullable=False, server_default=''),
        sa.Column('recipient_count', sa.Integer, nullable=False),
        sa.Column('creation_fee', sa.Float, nullable=False),
        sa.Column('sponsorship_fee', sa.Float, nullable=False),
        sa.Column('sponsor_fees', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('total_fee', sa.Float, nullable=False),
        sa.Column('blockchain_tx_hash', sa.String(255), nullable=True),
        sa.Column('energy_used', sa.BigInteger, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('executed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('staged', 'executed')", name='ck_staged_transactions_status'),
    )
    op.create_index('ix_staged_transactions_session_id', 'staged_transactions', ['session_id'])
    op.create_index('ix_staged_transactions_status', 'staged_transactions', ['status'])
    op.create_index('ix_staged_transactions_server_address', 'staged_transactions', ['server_address'])
    op.create_index('ix_staged_transactions_expires_at', 'staged_transactions', ['expires_at'])

    op.create_table(
        'staged_notices',
        sa.Column('transaction_id', sa.String(64), sa.ForeignKey(TXN_FK), primary_key=True),
        sa.Column('notice_type', sa.String(255), nullable=False),
        sa.Column('case_number', sa.String(255), nullable=False, server_default=''),
        sa.Column('issuing_agency', sa.String(255), nullable=False, server_default=''),
        sa.Column('public_text', sa.Text, nullable=False, server_default=''),
        sa.Column('case_details', sa.Text, nullable=False, server_default=''),
        sa.Column('legal_rights', sa.Text, nullable=False, server_default=''),
        sa.Column('has_document', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('requires_signature', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('token_name', sa.String(255), nullable=False),
        sa.Column('delivery_method', sa.String(50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_staged_notices_case_number', 'staged_notices', ['case_number'])

    op.create_table(
        'staged_files',
        sa.Column('transaction_id', sa.String(64), sa.ForeignKey(TXN_FK), primary_key=True),
        sa.Column('thumbnail_path', sa.String(500), nullable=True),
        sa.Column('document_path', sa.String(500), nullable=True),
        sa.Column('encrypted_document_path', sa.String(500), nullable=True),
        sa.Column('thumbnail_url', sa.String(500), nullable=True),
        sa.Column('document_url', sa.String(500), nullable=True),
        sa.Column('encrypted_document_url', sa.String(500), nullable=True),
        sa.Column('thumbnail_size', sa.BigInteger, nullable=True),
        sa.Column('document_size', sa.BigInteger, nullable=True),
        sa.Column('encrypted_document_size', sa.BigInteger, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'staged_ipfs',
        sa.Column('transaction_id', sa.String(64), sa.ForeignKey(TXN_FK), primary_key=True),
        sa.Column('ipfs_hash', sa.String(255), nullable=True),
        sa.Column('encrypted_ipfs', sa.String(255), nullable=True),
        sa.Column('encryption_key', sa.String(500), nullable=True),
        sa.Column('metadata_uri', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'staged_recipients',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('transaction_id', sa.String(64), sa.ForeignKey(TXN_FK), nullable=False),
        sa.Column('recipient_address', sa.String(255), nullable=False),
        sa.Column('notice_id', sa.String(64), nullable=False),
        sa.Column('recipient_index', sa.Integer, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('alert_id', sa.String(255), nullable=True),
        sa.Column('document_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('transaction_id', 'recipient_index', name='uq_staged_recipients_tx_index'),
        sa.CheckConstraint("status IN ('pending', 'executed')", name='ck_staged_recipients_status'),
    )
    op.create_index('ix_staged_recipients_transaction_id', 'staged_recipients', ['transaction_id'])
    op.create_index('ix_staged_recipients_recipient_address', 'staged_recipients', ['recipient_address'])
    op.create_index('ix_staged_recipients_notice_id', 'staged_recipients', ['notice_id'], unique=True)

    op.create_table(
        'staged_energy_estimates',
        sa.Column('transaction_id', sa.String(64), sa.ForeignKey(TXN_FK), primary_key=True),
        sa.Column('estimated_energy', sa.BigInteger, nullable=False),
        sa.Column('burning_cost_trx', sa.Float, nullable=False),
        sa.Column('rental_cost_trx', sa.Float, nullable=False),
        sa.Column('savings_trx', sa.Float, nullable=False),
        sa.Column('actual_energy_used', sa.BigInteger, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Permanent store
    op.create_table(
        'served_notices',
        sa.Column('notice_id', sa.String(64), primary_key=True),
        sa.Column('server_address', sa.String(255), nullable=False, server_default=''),
        sa.Column('recipient_address', sa.String(255), nullable=False),
        sa.Column('notice_type', sa.String(255), nullable=True),
        sa.Column('case_number', sa.String(255), nullable=True),
        sa.Column('issuing_agency', sa.String(255), nullable=True),
        sa.Column('alert_id', sa.String(255), nullable=True),
        sa.Column('document_id', sa.String(255), nullable=True),
        sa.Column('has_document', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('ipfs_hash', sa.String(255), nullable=True),
        sa.Column('batch_id', sa.String(64), nullable=True),
        sa.Column('tx_hash', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    for column in ('server_address', 'recipient_address', 'case_number', 'alert_id', 'document_id', 'batch_id', 'tx_hash'):
        op.create_index(f'ix_served_notices_{column}', 'served_notices', [column])

    op.create_table(
        'notice_components',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('notice_id', sa.String(64), nullable=False),
        sa.Column('chain_type', sa.String(20), nullable=False, server_default='TRON'),
        sa.Column('case_number', sa.String(255), nullable=True),
        sa.Column('server_address', sa.String(255), nullable=True),
        sa.Column('recipient_address', sa.String(255), nullable=True),
        sa.Column('alert_id', sa.String(255), nullable=True),
        sa.Column('alert_thumbnail_url', sa.String(500), nullable=True),
        sa.Column('document_id', sa.String(255), nullable=True),
        sa.Column('document_unencrypted_url', sa.String(500), nullable=True),
        sa.Column('document_ipfs_hash', sa.String(255), nullable=True),
        sa.Column('document_encryption_key', sa.String(500), nullable=True),
        sa.Column('notice_type', sa.String(255), nullable=True),
        sa.Column('issuing_agency', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('notice_id', 'chain_type', name='uq_notice_components_notice_chain'),
    )
    op.create_index('ix_notice_components_notice_id', 'notice_components', ['notice_id'])


def downgrade() -> None:
    """Drop all tables, children first."""
    op.drop_table('notice_components')
    op.drop_table('served_notices')
    for table in (
        'staged_energy_estimates',
        'staged_recipients',
        'staged_ipfs',
        'staged_files',
        'staged_notices',
        'staged_transactions',
    ):
        op.drop_table(table)
