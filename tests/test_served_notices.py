"""
BlockServed - Served Notice Lookup Tests
"""

import pytest
from httpx import AsyncClient


async def stage_and_execute(stage, client: AsyncClient, recipients, tx_hash, case_number="CASE-77", **execute):
    staged = (await stage(recipients=recipients, caseNumber=case_number)).json()
    response = await client.post(
        f"/api/stage/execute/{staged['transactionId']}",
        json={"blockchainTxHash": tx_hash, **execute},
    )
    assert response.status_code == 200
    return response.json()


@pytest.mark.anyio
async def test_notice_transaction_by_notice_id(stage, client: AsyncClient):
    executed = await stage_and_execute(stage, client, ["TA"], "0xnotice")
    notice_id = executed["recipients"][0]["noticeId"]

    response = await client.get(f"/api/notices/{notice_id}/transaction")
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["noticeId"] == notice_id
    assert data["txHash"] == "0xnotice"
    assert data["caseNumber"] == "CASE-77"
    assert data["recipientAddress"] == "TA"
    assert data["timestamp"].endswith("Z")


@pytest.mark.anyio
async def test_notice_transaction_by_alert_or_document_id(stage, client: AsyncClient):
    await stage_and_execute(stage, client, ["TA"], "0xalias", alertIds=[555], documentIds=[556])

    by_alert = await client.get("/api/notices/555/transaction")
    by_document = await client.get("/api/notices/556/transaction")
    assert by_alert.json()["txHash"] == "0xalias"
    assert by_document.json()["txHash"] == "0xalias"


@pytest.mark.anyio
async def test_notice_transaction_unknown(client: AsyncClient):
    response = await client.get("/api/notices/9999999999/transaction")
    assert response.status_code == 404
    assert response.json()["success"] is False


@pytest.mark.anyio
async def test_case_transactions_grouped_by_hash(stage, client: AsyncClient):
    await stage_and_execute(stage, client, ["TA", "TB"], "0xfirst")
    await stage_and_execute(stage, client, ["TC"], "0xsecond")
    await stage_and_execute(stage, client, ["TD"], "0xother", case_number="CASE-OTHER")

    response = await client.get("/api/notices/case/CASE-77")
    assert response.status_code == 200
    data = response.json()
    assert data["caseNumber"] == "CASE-77"

    by_hash = {entry["txHash"]: entry for entry in data["transactions"]}
    assert set(by_hash) == {"0xfirst", "0xsecond"}
    assert by_hash["0xfirst"]["recipientCount"] == 2
    assert sorted(by_hash["0xfirst"]["recipients"]) == ["TA", "TB"]
    assert by_hash["0xsecond"]["recipients"] == ["TC"]
    assert by_hash["0xfirst"]["batchId"].startswith("TXN_")


@pytest.mark.anyio
async def test_case_transactions_empty(client: AsyncClient):
    response = await client.get("/api/notices/case/NO-SUCH-CASE")
    assert response.status_code == 200
    assert response.json()["transactions"] == []
