"""
BlockServed - Stage Request Parsing Tests
Recipients normalization and form-to-request conversion.
"""

import pytest

from blockserved.core.config import Settings
from blockserved.core.errors import ValidationError
from blockserved.services.staging_request import StagingRequest, parse_recipients


@pytest.fixture
def fee_settings():
    return Settings(creation_fee_trx=20.0, sponsorship_fee_trx=2.0, default_network="mainnet")


# =============================================================================
# Recipients
# =============================================================================

@pytest.mark.parametrize(
    "raw, expected",
    [
        ('["TA", "TB"]', ["TA", "TB"]),
        ("TSingleAddress", ["TSingleAddress"]),
        ('"TQuoted"', ["TQuoted"]),
        (["TA", " TB "], ["TA", "TB"]),
        ("  TPadded  ", ["TPadded"]),
    ],
)
def test_parse_recipients_shapes(raw, expected):
    assert parse_recipients(raw) == expected


def test_parse_recipients_keeps_order():
    assert parse_recipients('["TC", "TA", "TB"]') == ["TC", "TA", "TB"]


@pytest.mark.parametrize("raw", [None, "", "   ", "[]", []])
def test_parse_recipients_requires_one(raw):
    with pytest.raises(ValidationError) as exc_info:
        parse_recipients(raw)
    assert exc_info.value.field == "recipients"
    assert exc_info.value.status_code == 400


def test_parse_recipients_rejects_malformed_json():
    with pytest.raises(ValidationError, match="not valid JSON"):
        parse_recipients('["TA", ')


def test_parse_recipients_rejects_non_string_entries():
    with pytest.raises(ValidationError, match=r"recipients\[1\]"):
        parse_recipients('["TA", 42]')


def test_parse_recipients_rejects_json_object():
    with pytest.raises(ValidationError):
        parse_recipients({"address": "TA"})


# =============================================================================
# Form Conversion
# =============================================================================

def test_from_form_fills_defaults_from_settings(fee_settings):
    request = StagingRequest.from_form({"recipients": '["TA"]', "creationFee": "", "network": ""}, fee_settings)
    assert request.creation_fee == 20.0
    assert request.sponsorship_fee == 2.0
    assert request.network == "mainnet"
    assert request.sponsor_fees is False
    assert request.notice_type == "Legal Notice"
    assert request.session_id is None


def test_from_form_parses_flags_and_fees(fee_settings):
    request = StagingRequest.from_form(
        {
            "recipients": "TA",
            "sponsorFees": "true",
            "hasDocument": "true",
            "requiresSignature": "false",
            "creationFee": "25",
            "sponsorshipFee": "3.5",
            "network": "nile",
            "sessionId": "abc123",
        },
        fee_settings,
    )
    assert request.recipients == ["TA"]
    assert request.sponsor_fees is True
    assert request.has_document is True
    assert request.requires_signature is False
    assert request.creation_fee == 25.0
    assert request.sponsorship_fee == 3.5
    assert request.network == "nile"
    assert request.session_id == "abc123"


def test_from_form_rejects_non_numeric_fee(fee_settings):
    with pytest.raises(ValidationError) as exc_info:
        StagingRequest.from_form({"recipients": "TA", "creationFee": "twenty"}, fee_settings)
    assert exc_info.value.field == "creationFee"


def test_from_form_rejects_negative_fee(fee_settings):
    with pytest.raises(ValidationError):
        StagingRequest.from_form({"recipients": "TA", "sponsorshipFee": "-1"}, fee_settings)


def test_from_form_requires_recipients(fee_settings):
    with pytest.raises(ValidationError) as exc_info:
        StagingRequest.from_form({"caseNumber": "CASE-1"}, fee_settings)
    assert exc_info.value.field == "recipients"


def test_from_form_recipient_errors_pass_through(fee_settings):
    with pytest.raises(ValidationError, match="not valid JSON"):
        StagingRequest.from_form({"recipients": "[oops"}, fee_settings)


def test_has_ipfs(fee_settings):
    without = StagingRequest.from_form({"recipients": "TA"}, fee_settings)
    with_hash = StagingRequest.from_form({"recipients": "TA", "ipfsHash": "QmHash"}, fee_settings)
    assert without.has_ipfs is False
    assert with_hash.has_ipfs is True
