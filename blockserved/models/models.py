"""
BlockServed Database Models
SQLAlchemy ORM models for the staging tables and the permanent notice store.

All datetime columns use DateTime(timezone=True) for proper UTC handling.
Use utc_now() from blockserved.core.utc for all timestamp defaults.
"""

import enum
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Integer, BigInteger, DateTime, ForeignKey, Boolean, Float, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from blockserved.core.database import Base
from blockserved.core.utc import utc_now


# Type alias for timezone-aware DateTime columns
DateTimeTZ = DateTime(timezone=True)

TXN_FK = "staged_transactions.transaction_id"


# =============================================================================
# Status Enums
# =============================================================================

class TransactionStatus(str, enum.Enum):
    """Lifecycle of a staged transaction. Only staged -> executed is allowed."""
    staged = "staged"
    executed = "executed"


class RecipientStatus(str, enum.Enum):
    pending = "pending"
    executed = "executed"


# =============================================================================
# Staged Transaction (parent row)
# =============================================================================

class StagedTransaction(Base):
    """
    Everything needed for one contract call, persisted before the call.

    The fee columns hold the exact amounts the client will pay; they are
    never re-derived after staging. blockchain_tx_hash, energy_used and
    executed_at are written once, when the transaction is executed.
    """
    __tablename__ = "staged_transactions"

    transaction_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(20), default=TransactionStatus.staged.value, index=True)

    # Chain / server identity
    network: Mapped[str] = mapped_column(String(50), default="mainnet")
    server_address: Mapped[str] = mapped_column(String(255), default="", index=True)
    server_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contract_address: Mapped[str] = mapped_column(String(255), default="")

    # Fees (TRX)
    recipient_count: Mapped[int] = mapped_column(Integer)
    creation_fee: Mapped[float] = mapped_column(Float)
    sponsorship_fee: Mapped[float] = mapped_column(Float)
    sponsor_fees: Mapped[bool] = mapped_column(Boolean, default=False)
    total_fee: Mapped[float] = mapped_column(Float)

    # Execution evidence
    blockchain_tx_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    energy_used: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTimeTZ, index=True)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)


# =============================================================================
# Staged Children (1:1 unless noted)
# =============================================================================

class StagedNotice(Base):
    """Notice metadata for a staged transaction."""
    __tablename__ = "staged_notices"

    transaction_id: Mapped[str] = mapped_column(String(64), ForeignKey(TXN_FK), primary_key=True)
    notice_type: Mapped[str] = mapped_column(String(255), default="Legal Notice")
    case_number: Mapped[str] = mapped_column(String(255), default="", index=True)
    issuing_agency: Mapped[str] = mapped_column(String(255), default="")
    public_text: Mapped[str] = mapped_column(Text, default="")
    case_details: Mapped[str] = mapped_column(Text, default="")
    legal_rights: Mapped[str] = mapped_column(Text, default="")
    has_document: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_signature: Mapped[bool] = mapped_column(Boolean, default=False)
    token_name: Mapped[str] = mapped_column(String(255), default="Legal Notice NFT")
    delivery_method: Mapped[str] = mapped_column(String(50), default="document")
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


class StagedFiles(Base):
    """
    Uploaded files for a staged transaction.

    Paths are bare filenames relative to the staging directory; the base
    path is runtime configuration and is never stored.
    """
    __tablename__ = "staged_files"

    transaction_id: Mapped[str] = mapped_column(String(64), ForeignKey(TXN_FK), primary_key=True)
    thumbnail_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    document_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    encrypted_document_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    document_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    encrypted_document_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    thumbnail_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    document_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    encrypted_document_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


class StagedIpfs(Base):
    """Content-addressed references the caller already holds."""
    __tablename__ = "staged_ipfs"

    transaction_id: Mapped[str] = mapped_column(String(64), ForeignKey(TXN_FK), primary_key=True)
    ipfs_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    encrypted_ipfs: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    encryption_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    metadata_uri: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


class StagedRecipient(Base):
    """
    One recipient of a staged transaction (1:N).

    recipient_index is the position in the original request and the only
    key that maps positional contract outputs (alert_ids[i],
    document_ids[i]) back to a recipient.
    """
    __tablename__ = "staged_recipients"
    __table_args__ = (
        UniqueConstraint("transaction_id", "recipient_index", name="uq_staged_recipients_tx_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(64), ForeignKey(TXN_FK), index=True)
    recipient_address: Mapped[str] = mapped_column(String(255), index=True)
    notice_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    recipient_index: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default=RecipientStatus.pending.value)
    alert_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    document_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


class StagedEnergyEstimate(Base):
    """
    Energy and cost estimate computed once at stage time.

    Execute never recomputes it; it only records the caller-reported
    actual_energy_used.
    """
    __tablename__ = "staged_energy_estimates"

    transaction_id: Mapped[str] = mapped_column(String(64), ForeignKey(TXN_FK), primary_key=True)
    estimated_energy: Mapped[int] = mapped_column(BigInteger)
    burning_cost_trx: Mapped[float] = mapped_column(Float)
    rental_cost_trx: Mapped[float] = mapped_column(Float)
    savings_trx: Mapped[float] = mapped_column(Float)
    actual_energy_used: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


# Child tables in the order they must be deleted (before the parent)
STAGED_CHILD_MODELS = (StagedEnergyEstimate, StagedRecipient, StagedIpfs, StagedFiles, StagedNotice)


# =============================================================================
# Permanent Store (written only on execute)
# =============================================================================

class ServedNotice(Base):
    """
    A notice that was actually served on chain, one row per recipient.

    Keyed by the staged notice_id; re-executing refreshes tx_hash and
    updated_at instead of inserting a duplicate.
    """
    __tablename__ = "served_notices"

    notice_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    server_address: Mapped[str] = mapped_column(String(255), default="", index=True)
    recipient_address: Mapped[str] = mapped_column(String(255), index=True)
    notice_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    case_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    issuing_agency: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    alert_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    document_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    has_document: Mapped[bool] = mapped_column(Boolean, default=False)
    ipfs_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    batch_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, onupdate=utc_now)


class NoticeComponent(Base):
    """
    Denormalized per-notice view: notice metadata, file URLs and the
    resolved alert/document ids, for fast lookup by notice_id.
    """
    __tablename__ = "notice_components"
    __table_args__ = (
        UniqueConstraint("notice_id", "chain_type", name="uq_notice_components_notice_chain"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    notice_id: Mapped[str] = mapped_column(String(64), index=True)
    chain_type: Mapped[str] = mapped_column(String(20), default="TRON")
    case_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    server_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    recipient_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    alert_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    alert_thumbnail_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    document_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    document_unencrypted_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    document_ipfs_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    document_encryption_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notice_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    issuing_agency: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, onupdate=utc_now)
