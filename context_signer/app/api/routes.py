import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from context_signer.app.core.errors import SigningFailure, UnsupportedAlgorithm
from context_signer.app.schemas.envelope import (
    JsonObject,
    SignedEnvelope,
    require_context_type,
)
from context_signer.app.services.signer import ContextSigner

logger = logging.getLogger("context_signer.api")

router = APIRouter(tags=["Context Signing"])


class SignRequest(BaseModel):
    context: JsonObject
    algorithm: Optional[str] = Field(
        default=None,
        description="KMS signing algorithm; the configured default if omitted",
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("context")
    @classmethod
    def context_has_type(cls, v: JsonObject) -> JsonObject:
        require_context_type(v)
        return v


# =============================================================================
# Dependency providers
# =============================================================================

def get_correlation_id(
    x_correlation_id: Annotated[
        Optional[str],
        Header(description="Audit trace ID"),
    ] = None,
) -> str:
    """Extract or generate a correlation ID for end-to-end traceability."""
    if x_correlation_id and len(x_correlation_id) > 128:
        return str(uuid.uuid4())
    return x_correlation_id or str(uuid.uuid4())


def get_signer(request: Request) -> ContextSigner:
    signer: Optional[ContextSigner] = getattr(request.app.state, "signer", None)
    if signer is None:
        raise RuntimeError("signer not initialized")
    return signer


# =============================================================================
# POST /sign
# =============================================================================

@router.post(
    "/sign",
    summary="Sign an FDC3 context with the configured KMS key",
    responses={
        422: {"description": "Unsupported algorithm or invalid context"},
        502: {"description": "KMS signing failure"},
    },
)
async def sign_context(
    body: SignRequest,
    signer: Annotated[ContextSigner, Depends(get_signer)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> ORJSONResponse:
    try:
        envelope = await signer.sign(body.context, body.algorithm)
    except UnsupportedAlgorithm as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
            headers={"X-Correlation-ID": correlation_id},
        ) from exc
    except SigningFailure as exc:
        logger.error(
            "sign_request_failed",
            extra={
                "trace_id": correlation_id,
                "error_type": type(exc.__cause__).__name__,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
            headers={"X-Correlation-ID": correlation_id},
        ) from exc

    return ORJSONResponse(
        content=envelope.to_wire(),
        headers={"X-Correlation-ID": correlation_id},
    )


# =============================================================================
# POST /verify
# =============================================================================

@router.post(
    "/verify",
    summary="Verify a signed FDC3 context",
)
async def verify_context(
    envelope: SignedEnvelope,
    signer: Annotated[ContextSigner, Depends(get_signer)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> ORJSONResponse:
    """
    Always answers 200; a rejected signature is a normal outcome.
    """
    outcome = await signer.verify(envelope)

    logger.info(
        "verify_request_complete",
        extra={
            "trace_id": correlation_id,
            "key_id": envelope.key_identifier,
            "valid": outcome.valid,
        },
    )

    return ORJSONResponse(
        content=outcome.to_wire(),
        headers={"X-Correlation-ID": correlation_id},
    )
