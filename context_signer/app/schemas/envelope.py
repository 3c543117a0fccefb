"""
Wire schemas for signed FDC3 contexts.

Field names are snake_case in Python and camelCase on the wire
(``keyIdentifier``, ``createdAt``, ``errorDetail``), matching the
envelopes produced by the JavaScript signer.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ----------------------------------------------------------------------
# Structured objects
# ----------------------------------------------------------------------

JsonObject = Dict[str, Any]


class SigningAlgorithm(str, Enum):
    """
    KMS signing-algorithm identifiers supported by the signer.

    Values are the AWS KMS ``SigningAlgorithmSpec`` names.
    """

    RSASSA_PKCS1_V1_5_SHA_256 = "RSASSA_PKCS1_V1_5_SHA_256"
    ECDSA_SHA_256 = "ECDSA_SHA_256"


_WIRE_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


def require_context_type(payload: Mapping) -> None:
    context_type = payload.get("type")
    if not isinstance(context_type, str) or not context_type:
        raise ValueError("context payload requires a non-empty string 'type'")


# ----------------------------------------------------------------------
# Envelope
# ----------------------------------------------------------------------

class SignedEnvelope(BaseModel):
    """
    An FDC3 context together with its KMS signature and provenance.

    ``payload`` is the original context, not its canonical form.
    ``algorithm`` is kept as a plain string: envelopes arrive from
    peers and an unknown algorithm must surface as a failed
    verification, not as a parse error.
    """

    payload: JsonObject
    signature: str = Field(..., min_length=1, description="Base64 signature")
    key_identifier: str = Field(..., min_length=1)
    created_at: int = Field(..., ge=0, description="Epoch milliseconds")
    algorithm: str

    model_config = _WIRE_CONFIG

    @field_validator("payload")
    @classmethod
    def payload_is_context(cls, v: JsonObject) -> JsonObject:
        require_context_type(v)
        return v

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class VerificationOutcome(BaseModel):
    """
    Result of a verification attempt.

    ``payload`` is present only when valid, ``error_detail`` only when not.
    """

    valid: bool
    payload: Optional[JsonObject] = None
    error_detail: Optional[str] = None

    model_config = _WIRE_CONFIG

    @model_validator(mode="after")
    def fields_match_verdict(self) -> "VerificationOutcome":
        if self.valid and (self.payload is None or self.error_detail is not None):
            raise ValueError("a valid outcome carries a payload and no error")
        if not self.valid and (self.payload is not None or not self.error_detail):
            raise ValueError("an invalid outcome carries an error and no payload")
        return self

    @classmethod
    def success(cls, payload: JsonObject) -> "VerificationOutcome":
        return cls(valid=True, payload=payload)

    @classmethod
    def failure(cls, detail: str) -> "VerificationOutcome":
        return cls(valid=False, error_detail=detail)

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        return {k: v for k, v in data.items() if v is not None}


# ----------------------------------------------------------------------
# Detection
# ----------------------------------------------------------------------

def is_signed_envelope(obj: Any) -> bool:
    """
    Structural check for raw mappings received from a message bus.

    Lets a receiver tell signed contexts apart from plain ones before
    parsing them into a SignedEnvelope.
    """
    if not isinstance(obj, Mapping):
        return False

    payload = obj.get("payload")
    created_at = obj.get("createdAt")

    return (
        isinstance(obj.get("signature"), str)
        and isinstance(obj.get("keyIdentifier"), str)
        and isinstance(created_at, int)
        and not isinstance(created_at, bool)
        and isinstance(obj.get("algorithm"), str)
        and isinstance(payload, Mapping)
        and isinstance(payload.get("type"), str)
    )
