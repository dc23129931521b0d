"""
Boundary parsing for stage requests.

The upstream form layer sends recipients either as a JSON-encoded array or as
a bare single address, and flags/fees as strings. Everything is normalized
here, once, into a StagingRequest; handlers never see the raw shapes.
"""

import json
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from blockserved.core.config import Settings
from blockserved.core.errors import ValidationError


def parse_recipients(raw: Any) -> list[str]:
    """
    Normalize the recipients input to an ordered list of addresses.

    Accepted shapes:
    - a list (repeated form fields, or an already-decoded JSON array)
    - a JSON array string: '["TA...", "TB..."]'
    - a bare single value: 'TA...' (or the JSON string '"TA..."')
    """
    if raw is None:
        raise ValidationError("At least one recipient is required", field="recipients")

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise ValidationError("At least one recipient is required", field="recipients")
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"recipients is not valid JSON: {exc.msg}", field="recipients") from exc
        elif text.startswith('"'):
            try:
                decoded = [json.loads(text)]
            except json.JSONDecodeError as exc:
                raise ValidationError(f"recipients is not valid JSON: {exc.msg}", field="recipients") from exc
        else:
            decoded = [text]
    elif isinstance(raw, (list, tuple)):
        decoded = list(raw)
    else:
        raise ValidationError("recipients must be a list of addresses", field="recipients")

    if not isinstance(decoded, list):
        raise ValidationError("recipients must be a list of addresses", field="recipients")

    recipients: list[str] = []
    for index, value in enumerate(decoded):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"recipients[{index}] must be a non-empty address", field="recipients")
        recipients.append(value.strip())

    if not recipients:
        raise ValidationError("At least one recipient is required", field="recipients")
    return recipients


class StagingRequest(BaseModel):
    """A fully normalized stage request."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    recipients: list[str]
    session_id: Optional[str] = Field(None, alias="sessionId", max_length=255)

    # Notice details
    notice_type: str = Field("Legal Notice", alias="noticeType")
    case_number: str = Field("", alias="caseNumber")
    issuing_agency: str = Field("", alias="issuingAgency")
    public_text: str = Field("", alias="publicText")
    case_details: str = Field("", alias="caseDetails")
    legal_rights: str = Field("", alias="legalRights")
    token_name: str = Field("Legal Notice NFT", alias="tokenName")
    delivery_method: str = Field("document", alias="deliveryMethod")

    # Server details
    server_address: str = Field("", alias="serverAddress")
    server_name: str = Field("", alias="serverName")

    # Document flags
    has_document: bool = Field(False, alias="hasDocument")
    requires_signature: bool = Field(False, alias="requiresSignature")

    # IPFS
    ipfs_hash: str = Field("", alias="ipfsHash")
    encrypted_ipfs: str = Field("", alias="encryptedIPFS")
    encryption_key: str = Field("", alias="encryptionKey")
    metadata_uri: str = Field("", alias="metadataURI")

    # Fees
    sponsor_fees: bool = Field(False, alias="sponsorFees")
    creation_fee: float = Field(ge=0, alias="creationFee")
    sponsorship_fee: float = Field(ge=0, alias="sponsorshipFee")

    # Network
    network: str
    contract_address: str = Field("", alias="contractAddress")

    @field_validator("recipients", mode="before")
    @classmethod
    def normalize_recipients(cls, v: Any) -> list[str]:
        return parse_recipients(v)

    @field_validator("session_id", mode="before")
    @classmethod
    def blank_session_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def has_ipfs(self) -> bool:
        return bool(self.ipfs_hash or self.encrypted_ipfs or self.encryption_key)

    @classmethod
    def from_form(cls, fields: Mapping[str, Any], settings: Settings) -> "StagingRequest":
        """
        Build a request from submitted form fields.

        Empty strings count as "not supplied", so fee and network defaults
        come from configuration.
        """
        data = {key: value for key, value in fields.items() if not (isinstance(value, str) and value == "" and key != "recipients")}
        data.setdefault("creationFee", settings.creation_fee_trx)
        data.setdefault("sponsorshipFee", settings.sponsorship_fee_trx)
        data.setdefault("network", settings.default_network)
        try:
            return cls.model_validate(data)
        except ValidationError:
            raise
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise ValidationError(f"{field}: {first.get('msg')}", field=field or None) from exc
