"""
BlockServed - Transaction Staging Service

The backend is the single source of truth for a notice mint. Everything the
contract call needs is persisted here first (stage), the client performs the
call with exactly the staged parameters, and the result is reconciled into
the permanent notice store (execute).

Stage and execute each run in one database transaction, so readers never see
a partially staged or partially executed record. Expiry is enforced in the
queries themselves; expired rows linger until cleanup removes them.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from fastapi import UploadFile
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from blockserved.core.config import Settings, get_settings
from blockserved.core.database import get_db_session
from blockserved.core.errors import NotFoundOrExpiredError, ValidationError
from blockserved.core.utc import to_iso, utc_now
from blockserved.models.models import (
    STAGED_CHILD_MODELS,
    NoticeComponent,
    RecipientStatus,
    ServedNotice,
    StagedEnergyEstimate,
    StagedFiles,
    StagedIpfs,
    StagedNotice,
    StagedRecipient,
    StagedTransaction,
    TransactionStatus,
)
from blockserved.services.energy import compute_total_fee, estimate_energy
from blockserved.services.file_staging import FileStagingArea, StagedUpload
from blockserved.services.staging_request import StagingRequest

logger = logging.getLogger(__name__)

NOT_EXECUTABLE = "Transaction not found, already executed, or expired"
NOT_FOUND = "Transaction not found or expired"
NOTICE_ID_WIDTH = 10
FILE_FIELDS = ("thumbnail_path", "document_path", "encrypted_document_path")


# =============================================================================
# Identifiers
# =============================================================================

def generate_transaction_id() -> str:
    """TXN_<epoch ms>_<16 hex>"""
    return f"TXN_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def derive_notice_id(index: int, now_ms: Optional[int] = None) -> str:
    """Per-recipient notice id: time component + index, last 10 characters."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}{index}"[-NOTICE_ID_WIDTH:]


def row_to_dict(row: Any) -> dict[str, Any]:
    """Column values of an ORM row, datetimes as ISO-8601 UTC."""
    if row is None:
        return {}
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, datetime):
            value = to_iso(value)
        data[column.name] = value
    return data


def staged_filenames(files: Optional[StagedFiles]) -> list[str]:
    """Bare filenames recorded on a StagedFiles row."""
    if files is None:
        return []
    return [name for name in (getattr(files, column) for column in FILE_FIELDS) if name]


# =============================================================================
# Execution evidence
# =============================================================================

@dataclass
class ExecutionEvidence:
    """What the client reports after the contract call has been mined."""
    blockchain_tx_hash: str
    alert_ids: list[Optional[str]] = field(default_factory=list)
    document_ids: list[Optional[str]] = field(default_factory=list)
    energy_used: Optional[int] = None

    def __post_init__(self):
        if not self.blockchain_tx_hash or not self.blockchain_tx_hash.strip():
            raise ValidationError("blockchainTxHash is required", field="blockchainTxHash")
        self.blockchain_tx_hash = self.blockchain_tx_hash.strip()

    @staticmethod
    def _at(values: list[Optional[str]], index: int) -> Optional[str]:
        if 0 <= index < len(values):
            value = values[index]
            if value is not None and str(value) != "":
                return str(value)
        return None

    def alert_id_for(self, index: int, notice_id: str) -> str:
        return self._at(self.alert_ids, index) or notice_id

    def document_id_for(self, index: int, notice_id: str) -> str:
        return self._at(self.document_ids, index) or f"{notice_id}_doc"


# =============================================================================
# Service
# =============================================================================

class TransactionStager:
    """Stage, retrieve, execute and clean up staged notice transactions."""

    def __init__(self, settings: Optional[Settings] = None, files: Optional[FileStagingArea] = None):
        self.settings = settings or get_settings()
        self.files = files or FileStagingArea(self.settings)

    # -------------------------------------------------------------------------
    # Stage
    # -------------------------------------------------------------------------

    async def stage_transaction(
        self,
        request: StagingRequest,
        uploads: Optional[Mapping[str, UploadFile]] = None,
    ) -> dict[str, Any]:
        """
        Persist a notice request and its uploads.

        All rows commit together or not at all. On any failure the files
        written for this request are removed before the error propagates.
        """
        transaction_id = generate_transaction_id()
        session_id = request.session_id or secrets.token_hex(16)
        recipients = request.recipients
        saved: list[StagedUpload] = []

        try:
            for field_name, upload in (uploads or {}).items():
                saved.append(await self.files.save(field_name, upload))

            total_fee = compute_total_fee(
                len(recipients), request.creation_fee, request.sponsorship_fee, request.sponsor_fees
            )
            estimate = estimate_energy(len(recipients), request.has_document, self.settings)
            created_at = utc_now()
            expires_at = created_at + timedelta(minutes=self.settings.staging_ttl_minutes)

            async with get_db_session() as db:
                db.add(StagedTransaction(
                    transaction_id=transaction_id,
                    session_id=session_id,
                    status=TransactionStatus.staged.value,
                    network=request.network,
                    server_address=request.server_address,
                    server_name=request.server_name or None,
                    contract_address=request.contract_address,
                    recipient_count=len(recipients),
                    creation_fee=request.creation_fee,
                    sponsorship_fee=request.sponsorship_fee,
                    sponsor_fees=request.sponsor_fees,
                    total_fee=total_fee,
                    created_at=created_at,
                    expires_at=expires_at,
                ))
                await db.flush()

                db.add(StagedNotice(
                    transaction_id=transaction_id,
                    notice_type=request.notice_type,
                    case_number=request.case_number,
                    issuing_agency=request.issuing_agency,
                    public_text=request.public_text,
                    case_details=request.case_details,
                    legal_rights=request.legal_rights,
                    has_document=request.has_document,
                    requires_signature=request.requires_signature,
                    token_name=request.token_name,
                    delivery_method=request.delivery_method,
                ))

                if saved:
                    columns: dict[str, Any] = {}
                    for upload in saved:
                        columns[f"{upload.column}_path"] = upload.filename
                        columns[f"{upload.column}_url"] = upload.url
                        columns[f"{upload.column}_size"] = upload.size
                    db.add(StagedFiles(transaction_id=transaction_id, **columns))

                if request.has_ipfs:
                    db.add(StagedIpfs(
                        transaction_id=transaction_id,
                        ipfs_hash=request.ipfs_hash or None,
                        encrypted_ipfs=request.encrypted_ipfs or None,
                        encryption_key=request.encryption_key or None,
                        metadata_uri=request.metadata_uri or None,
                    ))
                await db.flush()

                notice_ids = await self._allocate_notice_ids(db, len(recipients))
                for index, address in enumerate(recipients):
                    db.add(StagedRecipient(
                        transaction_id=transaction_id,
                        recipient_address=address,
                        notice_id=notice_ids[index],
                        recipient_index=index,
                        status=RecipientStatus.pending.value,
                    ))
                    await db.flush()

                db.add(StagedEnergyEstimate(
                    transaction_id=transaction_id,
                    estimated_energy=estimate.energy_required,
                    burning_cost_trx=estimate.burning_cost_trx,
                    rental_cost_trx=estimate.rental_cost_trx,
                    savings_trx=estimate.savings_trx,
                ))
                await db.flush()

        except Exception as exc:
            removed = await self.files.discard_many(upload.filename for upload in saved)
            if isinstance(exc, ValidationError):
                logger.warning("Rejected stage request: %s", exc.message)
            else:
                logger.error("Transaction staging error for %s: %s", transaction_id, exc)
            if saved:
                logger.info("Removed %d/%d staged files for failed %s", removed, len(saved), transaction_id)
            raise

        logger.info(
            "Staged %s: %d recipient(s), fee %.2f TRX, %d energy",
            transaction_id, len(recipients), total_fee, estimate.energy_required,
        )
        files_by_field = {upload.field: upload.url for upload in saved}
        return {
            "transactionId": transaction_id,
            "sessionId": session_id,
            "status": TransactionStatus.staged.value,
            "recipients": list(recipients),
            "files": {
                "thumbnail": files_by_field.get("thumbnail"),
                "document": files_by_field.get("document"),
                "encryptedDocument": files_by_field.get("encryptedDocument"),
            },
            "estimates": {**estimate.to_dict(), "totalFeeTRX": total_fee},
            "expiresAt": to_iso(expires_at),
        }

    async def _allocate_notice_ids(self, db: AsyncSession, count: int) -> list[str]:
        """One notice id per recipient index, skipping ids already in use."""
        now_ms = int(time.time() * 1000)
        allocated: list[str] = []
        for index in range(count):
            candidate_ms = now_ms
            candidate = derive_notice_id(index, candidate_ms)
            while candidate in allocated or await self._notice_id_taken(db, candidate):
                candidate_ms += 1
                candidate = derive_notice_id(index, candidate_ms)
            allocated.append(candidate)
        return allocated

    @staticmethod
    async def _notice_id_taken(db: AsyncSession, notice_id: str) -> bool:
        result = await db.execute(
            select(StagedRecipient.id).where(StagedRecipient.notice_id == notice_id).limit(1)
        )
        return result.first() is not None

    # -------------------------------------------------------------------------
    # Retrieve
    # -------------------------------------------------------------------------

    async def get_staged_transaction(self, transaction_id: str) -> dict[str, Any]:
        """
        The full staged record, only while it has not expired.

        Read-only; expired rows are reported exactly like missing ones.
        """
        async with get_db_session() as db:
            result = await db.execute(
                select(StagedTransaction).where(
                    StagedTransaction.transaction_id == transaction_id,
                    StagedTransaction.expires_at > utc_now(),
                )
            )
            transaction = result.scalar_one_or_none()
            if transaction is None:
                raise NotFoundOrExpiredError(NOT_FOUND, transaction_id=transaction_id)

            notice = await db.get(StagedNotice, transaction_id)
            files = await db.get(StagedFiles, transaction_id)
            ipfs = await db.get(StagedIpfs, transaction_id)
            energy = await db.get(StagedEnergyEstimate, transaction_id)
            recipients = await self._recipients(db, transaction_id)

        return {
            "transactionId": transaction_id,
            "status": transaction.status,
            "expiresAt": to_iso(transaction.expires_at),
            "completeData": {
                "transaction": row_to_dict(transaction),
                "notice": row_to_dict(notice),
                "files": row_to_dict(files),
                "ipfs": row_to_dict(ipfs),
                "recipients": [row_to_dict(recipient) for recipient in recipients],
                "energy": row_to_dict(energy),
            },
        }

    @staticmethod
    async def _recipients(db: AsyncSession, transaction_id: str) -> list[StagedRecipient]:
        result = await db.execute(
            select(StagedRecipient)
            .where(StagedRecipient.transaction_id == transaction_id)
            .order_by(StagedRecipient.recipient_index)
        )
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    async def execute_transaction(self, transaction_id: str, evidence: ExecutionEvidence) -> dict[str, Any]:
        """
        Reconcile a mined contract call with its staged record.

        The staged row is locked before the status check so two concurrent
        executions cannot both pass it. Permanent rows are upserted, so a
        retry after a rolled-back attempt redoes the same writes. Files are
        promoted once the database work has committed.
        """
        async with get_db_session() as db:
            now = utc_now()
            result = await db.execute(
                select(StagedTransaction)
                .where(
                    StagedTransaction.transaction_id == transaction_id,
                    StagedTransaction.status == TransactionStatus.staged.value,
                    StagedTransaction.expires_at > now,
                )
                .with_for_update()
            )
            transaction = result.scalar_one_or_none()
            if transaction is None:
                raise NotFoundOrExpiredError(NOT_EXECUTABLE, transaction_id=transaction_id)

            notice = await db.get(StagedNotice, transaction_id)
            files = await db.get(StagedFiles, transaction_id)
            ipfs = await db.get(StagedIpfs, transaction_id)
            recipients = await self._recipients(db, transaction_id)
            if notice is None:
                raise RuntimeError(f"Staged notice missing for {transaction_id}")

            resolved = []
            for recipient in recipients:
                index = recipient.recipient_index
                alert_id = evidence.alert_id_for(index, recipient.notice_id)
                document_id = evidence.document_id_for(index, recipient.notice_id)

                await self._upsert_served_notice(
                    db, transaction, notice, ipfs, recipient, alert_id, document_id, evidence.blockchain_tx_hash, now
                )
                recipient.status = RecipientStatus.executed.value
                recipient.alert_id = alert_id
                recipient.document_id = document_id
                resolved.append({
                    "address": recipient.recipient_address,
                    "noticeId": recipient.notice_id,
                    "alertId": alert_id,
                    "documentId": document_id,
                })
            await db.flush()

            if files is not None:
                for recipient in recipients:
                    await self._upsert_notice_component(db, transaction, notice, files, ipfs, recipient, now)

            transaction.status = TransactionStatus.executed.value
            transaction.blockchain_tx_hash = evidence.blockchain_tx_hash
            transaction.energy_used = evidence.energy_used
            transaction.executed_at = now

            if evidence.energy_used is not None:
                estimate = await db.get(StagedEnergyEstimate, transaction_id)
                if estimate is not None:
                    estimate.actual_energy_used = evidence.energy_used
            await db.flush()

        for filename in staged_filenames(files):
            if not await self.files.promote(filename):
                # notice_components already points at the documents URL
                logger.warning(
                    "%s: %s left in staging, %s will not resolve until it is moved",
                    transaction_id, filename, self.files.document_url(filename),
                )

        logger.info(
            "Executed %s with tx %s for %d recipient(s)",
            transaction_id, evidence.blockchain_tx_hash, len(resolved),
        )
        return {
            "transactionId": transaction_id,
            "blockchainTxHash": evidence.blockchain_tx_hash,
            "recipients": resolved,
        }

    async def _upsert_served_notice(
        self,
        db: AsyncSession,
        transaction: StagedTransaction,
        notice: StagedNotice,
        ipfs: Optional[StagedIpfs],
        recipient: StagedRecipient,
        alert_id: str,
        document_id: str,
        tx_hash: str,
        now: datetime,
    ) -> None:
        existing = await db.get(ServedNotice, recipient.notice_id)
        if existing is not None:
            existing.tx_hash = tx_hash
            existing.updated_at = now
            return

        db.add(ServedNotice(
            notice_id=recipient.notice_id,
            server_address=transaction.server_address,
            recipient_address=recipient.recipient_address,
            notice_type=notice.notice_type,
            case_number=notice.case_number,
            issuing_agency=notice.issuing_agency,
            alert_id=alert_id,
            document_id=document_id,
            has_document=notice.has_document,
            ipfs_hash=ipfs.ipfs_hash if ipfs else None,
            batch_id=transaction.transaction_id,
            tx_hash=tx_hash,
            created_at=now,
            updated_at=now,
        ))

    async def _upsert_notice_component(
        self,
        db: AsyncSession,
        transaction: StagedTransaction,
        notice: StagedNotice,
        files: StagedFiles,
        ipfs: Optional[StagedIpfs],
        recipient: StagedRecipient,
        now: datetime,
    ) -> None:
        chain_type = self.settings.chain_type
        thumbnail_url = self.files.document_url(files.thumbnail_path)
        document_url = self.files.document_url(files.document_path)

        result = await db.execute(
            select(NoticeComponent).where(
                NoticeComponent.notice_id == recipient.notice_id,
                NoticeComponent.chain_type == chain_type,
            )
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            existing.alert_thumbnail_url = thumbnail_url
            existing.document_unencrypted_url = document_url
            existing.alert_id = recipient.alert_id
            existing.document_id = recipient.document_id
            existing.updated_at = now
            return

        db.add(NoticeComponent(
            notice_id=recipient.notice_id,
            chain_type=chain_type,
            case_number=notice.case_number,
            server_address=transaction.server_address,
            recipient_address=recipient.recipient_address,
            alert_id=recipient.alert_id,
            alert_thumbnail_url=thumbnail_url,
            document_id=recipient.document_id,
            document_unencrypted_url=document_url,
            document_ipfs_hash=ipfs.ipfs_hash if ipfs else None,
            document_encryption_key=ipfs.encryption_key if ipfs else None,
            notice_type=notice.notice_type,
            issuing_agency=notice.issuing_agency,
            created_at=now,
            updated_at=now,
        ))

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def cleanup_expired_transactions(self) -> dict[str, Any]:
        """
        Remove staged transactions that expired without being executed.

        Staged files go first (best-effort), then child rows, then the parent.
        Executed transactions are never touched, whatever their age.
        """
        async with get_db_session() as db:
            result = await db.execute(
                select(StagedTransaction.transaction_id).where(
                    StagedTransaction.status == TransactionStatus.staged.value,
                    StagedTransaction.expires_at < utc_now(),
                )
            )
            expired_ids = list(result.scalars().all())
            if not expired_ids:
                return {"cleaned": 0, "transactionIds": []}

            file_rows = await db.execute(select(StagedFiles).where(StagedFiles.transaction_id.in_(expired_ids)))
            removed = 0
            for files in file_rows.scalars().all():
                removed += await self.files.discard_many(staged_filenames(files))

            for model in STAGED_CHILD_MODELS:
                await db.execute(delete(model).where(model.transaction_id.in_(expired_ids)))
            await db.execute(
                delete(StagedTransaction).where(
                    StagedTransaction.transaction_id.in_(expired_ids),
                    StagedTransaction.status == TransactionStatus.staged.value,
                )
            )

        logger.info("Cleaned %d expired staged transaction(s), %d file(s) removed", len(expired_ids), removed)
        return {"cleaned": len(expired_ids), "transactionIds": expired_ids}


_stager: Optional[TransactionStager] = None


def get_transaction_stager() -> TransactionStager:
    """Get or create the transaction stager instance."""
    global _stager
    if _stager is None:
        _stager = TransactionStager()
    return _stager


def reset_transaction_stager() -> None:
    """Drop the cached instance (settings changed, or on shutdown)."""
    global _stager
    _stager = None

