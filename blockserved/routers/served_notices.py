"""
Served Notices API Router
Transaction lookups for notices that have been executed on chain.
"""

from fastapi import APIRouter

from blockserved.services.served_notices import get_notice_transaction, list_case_transactions

router = APIRouter(prefix="/api/notices", tags=["Served Notices"])


@router.get("/{notice_id}/transaction")
async def notice_transaction(notice_id: str):
    """Transaction hash for a notice (by notice, alert or document id)."""
    result = await get_notice_transaction(notice_id)
    return {"success": True, **result}


@router.get("/case/{case_number}")
async def case_transactions(case_number: str):
    """All transactions that served a case, newest first."""
    transactions = await list_case_transactions(case_number)
    return {"success": True, "caseNumber": case_number, "transactions": transactions}
