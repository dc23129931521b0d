"""
Lookups over the permanent served-notice store.

Answers "which transaction served this notice" and "which transactions
served this case" from the rows written by the execute step.
"""

from typing import Any

from sqlalchemy import or_, select

from blockserved.core.database import get_db_session
from blockserved.core.errors import NotFoundOrExpiredError
from blockserved.core.utc import to_iso
from blockserved.models.models import ServedNotice


async def get_notice_transaction(notice_id: str) -> dict[str, Any]:
    """Tx hash for a notice, looked up by notice id, alert id or document id."""
    async with get_db_session() as db:
        result = await db.execute(
            select(ServedNotice)
            .where(
                or_(
                    ServedNotice.notice_id == notice_id,
                    ServedNotice.alert_id == notice_id,
                    ServedNotice.document_id == notice_id,
                )
            )
            .order_by(ServedNotice.created_at)
            .limit(1)
        )
        notice = result.scalar_one_or_none()

    if notice is None or not notice.tx_hash:
        raise NotFoundOrExpiredError("Transaction hash not found for this notice")

    return {
        "noticeId": notice.notice_id,
        "txHash": notice.tx_hash,
        "caseNumber": notice.case_number,
        "recipientAddress": notice.recipient_address,
        "timestamp": to_iso(notice.created_at),
    }


async def list_case_transactions(case_number: str) -> list[dict[str, Any]]:
    """Transactions that served a case, newest first, one entry per tx hash."""
    async with get_db_session() as db:
        result = await db.execute(
            select(ServedNotice)
            .where(ServedNotice.case_number == case_number, ServedNotice.tx_hash.is_not(None))
            .order_by(ServedNotice.created_at)
        )
        notices = list(result.scalars().all())

    grouped: dict[str, dict[str, Any]] = {}
    for notice in notices:
        entry = grouped.setdefault(notice.tx_hash, {
            "txHash": notice.tx_hash,
            "batchId": notice.batch_id,
            "recipientCount": 0,
            "firstTransaction": notice.created_at,
            "recipients": [],
        })
        entry["recipientCount"] += 1
        if notice.recipient_address not in entry["recipients"]:
            entry["recipients"].append(notice.recipient_address)

    transactions = sorted(grouped.values(), key=lambda entry: entry["firstTransaction"], reverse=True)
    for entry in transactions:
        entry["firstTransaction"] = to_iso(entry["firstTransaction"])
    return transactions
