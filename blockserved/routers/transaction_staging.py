"""
Transaction Staging API Router

The backend is the single source of truth for a notice mint:
stage everything first, let the client sign with the staged parameters,
then report the mined result back for reconciliation.

Every response is JSON, including failures.
"""

import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import FormData, UploadFile

from blockserved.core.config import Settings, get_settings
from blockserved.core.errors import StagingError, ValidationError
from blockserved.services.file_staging import UPLOAD_FIELDS
from blockserved.services.staging_request import StagingRequest
from blockserved.services.transaction_staging import (
    ExecutionEvidence,
    TransactionStager,
    get_transaction_stager,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stage", tags=["Transaction Staging"])


# =============================================================================
# Request Models
# =============================================================================

class ExecuteRequest(BaseModel):
    """What the client reports after the contract call is mined."""
    model_config = ConfigDict(populate_by_name=True)

    blockchain_tx_hash: Optional[str] = Field(None, alias="blockchainTxHash")
    alert_ids: Optional[list[Optional[Union[int, str]]]] = Field(None, alias="alertIds")
    document_ids: Optional[list[Optional[Union[int, str]]]] = Field(None, alias="documentIds")
    energy_used: Optional[int] = Field(None, alias="energyUsed", ge=0)

    def to_evidence(self) -> ExecutionEvidence:
        return ExecutionEvidence(
            blockchain_tx_hash=self.blockchain_tx_hash or "",
            alert_ids=_as_strings(self.alert_ids),
            document_ids=_as_strings(self.document_ids),
            energy_used=self.energy_used,
        )


def _as_strings(values: Optional[list[Any]]) -> list[Optional[str]]:
    return [None if value is None else str(value) for value in (values or [])]


# =============================================================================
# Helper Functions
# =============================================================================

def split_form(form: FormData) -> tuple[dict[str, Any], dict[str, UploadFile]]:
    """
    Separate text fields from file parts.

    Repeated "recipients" fields are kept as a list; other repeated text
    fields keep their last value. At most one file per upload field.
    """
    fields: dict[str, Any] = {}
    uploads: dict[str, UploadFile] = {}
    for key in dict.fromkeys(form.keys()):
        values = form.getlist(key)
        files = [value for value in values if isinstance(value, UploadFile)]
        texts = [value for value in values if isinstance(value, str)]

        if files:
            if key not in UPLOAD_FIELDS:
                raise ValidationError(f"Unexpected file field: {key}", field=key)
            chosen = [upload for upload in files if upload.filename]
            if len(chosen) > 1:
                raise ValidationError(f"Only one {key} file is allowed", field=key)
            if chosen:
                uploads[key] = chosen[0]

        if texts:
            if key == "recipients" and len(texts) > 1:
                fields[key] = texts
            else:
                fields[key] = texts[-1]
    return fields, uploads


def _failure(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/transaction")
async def stage_transaction(
    request: Request,
    stager: TransactionStager = Depends(get_transaction_stager),
    settings: Settings = Depends(get_settings),
):
    """
    Stage a complete transaction with all data and files.

    Multipart form: recipients (JSON array or single address), notice
    fields, fee/sponsorship flags, network identifiers, and optional
    thumbnail / document / encryptedDocument files.
    """
    logger.info("POST /api/stage/transaction from %s", request.headers.get("origin", "-"))
    form: Optional[FormData] = None
    try:
        form = await request.form()
        fields, uploads = split_form(form)
        staging_request = StagingRequest.from_form(fields, settings)
        result = await stager.stage_transaction(staging_request, uploads)
    except StagingError as exc:
        body = exc.to_dict()
        body["message"] = "Failed to stage transaction"
        return _failure(exc.status_code, body)
    except Exception as exc:
        logger.exception("Transaction staging error")
        return _failure(500, {"success": False, "error": str(exc), "message": "Failed to stage transaction"})
    finally:
        if form is not None:
            await form.close()

    return {
        "success": True,
        **result,
        "message": "Transaction staged successfully. Backend is now the source of truth.",
    }


@router.get("/transaction/{transaction_id}")
async def get_staged_transaction(
    transaction_id: str,
    stager: TransactionStager = Depends(get_transaction_stager),
):
    """Retrieve all data for a staged transaction that has not expired."""
    try:
        result = await stager.get_staged_transaction(transaction_id)
    except StagingError:
        raise
    except Exception as exc:
        logger.exception("Error retrieving staged transaction %s", transaction_id)
        return _failure(500, {
            "success": False,
            "error": str(exc) or "Failed to retrieve staged transaction",
            "transactionId": transaction_id,
        })
    return {"success": True, **result}


@router.post("/execute/{transaction_id}")
async def execute_transaction(
    transaction_id: str,
    payload: ExecuteRequest = Body(...),
    stager: TransactionStager = Depends(get_transaction_stager),
):
    """
    Record the result of the contract call for a staged transaction.

    Not found, expired and already executed are reported the same way;
    none of them can succeed on retry.
    """
    try:
        result = await stager.execute_transaction(transaction_id, payload.to_evidence())
    except ValidationError:
        raise
    except Exception as exc:
        if not isinstance(exc, StagingError):
            logger.exception("Transaction execution error for %s", transaction_id)
        else:
            logger.warning("Execute rejected for %s: %s", transaction_id, exc)
        return _failure(500, {"success": False, "error": str(exc)})

    return {
        "success": True,
        **result,
        "message": "Transaction executed and backend updated successfully",
    }


@router.delete("/cleanup")
async def cleanup_expired(stager: TransactionStager = Depends(get_transaction_stager)):
    """Remove staged transactions that expired without being executed."""
    try:
        result = await stager.cleanup_expired_transactions()
    except Exception as exc:
        logger.exception("Cleanup error")
        return _failure(500, {"success": False, "error": str(exc)})
    return {"success": True, **result}
