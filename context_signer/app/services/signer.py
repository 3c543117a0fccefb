"""
Signing and verification of FDC3 contexts with KMS-held keys.

Implements ContextSigner, which canonicalizes a context, delegates the
private-key operation to KMS, and verifies envelopes locally against
the KMS-issued public key.

Failure policy:
    sign() is all-or-nothing. Every failure is raised as SigningFailure
    carrying the cause, except UnsupportedAlgorithm which is a caller
    error and propagates unchanged.

    verify() never raises. Unavailable keys, malformed signatures,
    unknown algorithms and cryptographic rejection all come back as a
    non-valid VerificationOutcome.
"""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Mapping
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature

from context_signer.app.core.config import Settings
from context_signer.app.core.errors import KeyServiceError, SigningFailure
from context_signer.app.schemas.envelope import (
    JsonObject,
    SignedEnvelope,
    SigningAlgorithm,
    VerificationOutcome,
    require_context_type,
)
from context_signer.app.services.algorithms import resolve_algorithm
from context_signer.app.services.kms_api import AwsKmsClient, KeyServiceClient
from context_signer.app.services.public_key_cache import PublicKeyCache
from context_signer.app.utils.canonical import canonicalize
from context_signer.app.utils.keys import load_public_key

logger = logging.getLogger("context_signer.signer")

PUBLIC_KEY_UNAVAILABLE = "Could not retrieve public key from KMS"
SIGNATURE_REJECTED = "Signature verification failed"


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


class ContextSigner:
    """
    Signs FDC3 contexts with the configured KMS key and verifies
    envelopes produced by any signer sharing the same canonical form.
    """

    def __init__(
        self,
        settings: Settings,
        key_service: Optional[KeyServiceClient] = None,
    ) -> None:
        self.settings = settings
        self.key_service = (
            key_service if key_service is not None else AwsKmsClient(settings)
        )
        self._public_keys = PublicKeyCache(
            settings.public_key_cache_ttl_seconds
        )

    @property
    def key_id(self) -> str:
        return self.settings.kms_key_id

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    async def sign(
        self,
        payload: JsonObject,
        algorithm: Union[SigningAlgorithm, str, None] = None,
    ) -> SignedEnvelope:
        """
        Sign ``payload`` and return it wrapped in a SignedEnvelope.

        The envelope carries the original payload; only the canonical
        bytes are sent to KMS.
        """
        spec = resolve_algorithm(
            algorithm
            if algorithm is not None
            else self.settings.default_signing_algorithm
        )

        try:
            if not isinstance(payload, Mapping):
                raise TypeError(
                    f"context must be a mapping, got {type(payload).__name__}"
                )

            require_context_type(payload)
            message = canonicalize(payload)

            signature = await self.key_service.sign(
                key_id=self.key_id,
                message=message,
                algorithm=spec.name.value,
            )
            if not signature:
                raise SigningFailure("KMS signing failed: No signature returned")

            envelope = SignedEnvelope(
                payload=payload,
                signature=base64.b64encode(signature).decode("ascii"),
                key_identifier=self.key_id,
                created_at=_now_millis(),
                algorithm=spec.name.value,
            )
        except Exception as exc:
            logger.warning(
                "context_signing_failed",
                extra={
                    "key_id": self.key_id,
                    "algorithm": spec.name.value,
                    "error_type": type(exc).__name__,
                },
            )
            raise SigningFailure(f"Failed to sign context: {exc}") from exc

        logger.info(
            "context_signed",
            extra={
                "key_id": self.key_id,
                "algorithm": spec.name.value,
                "context_type": payload.get("type"),
                "message_bytes": len(message),
            },
        )
        return envelope

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(self, envelope: SignedEnvelope) -> VerificationOutcome:
        """Verify ``envelope`` against the public key of its signing key."""
        key_id = envelope.key_identifier

        try:
            try:
                der = await self._fetch_public_key(key_id)
            except KeyServiceError as exc:
                return self._reject(
                    envelope, f"{PUBLIC_KEY_UNAVAILABLE}: {exc}"
                )

            if not der:
                return self._reject(envelope, PUBLIC_KEY_UNAVAILABLE)

            message = canonicalize(envelope.payload)
            signature = base64.b64decode(envelope.signature, validate=True)
            public_key = load_public_key(der)
            spec = resolve_algorithm(envelope.algorithm)

            try:
                spec.verify(public_key, signature, message)
            except InvalidSignature:
                return self._reject(envelope, SIGNATURE_REJECTED)

        except Exception as exc:
            return self._reject(envelope, f"Verification error: {exc}")

        logger.info(
            "context_verified",
            extra={
                "key_id": key_id,
                "algorithm": envelope.algorithm,
                "context_type": envelope.payload.get("type"),
            },
        )
        return VerificationOutcome.success(envelope.payload)

    def invalidate_public_key(self, key_id: Optional[str] = None) -> None:
        """Forget cached public keys, e.g. after a key rotation signal."""
        self._public_keys.invalidate(key_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch_public_key(self, key_id: str) -> Optional[bytes]:
        cached = self._public_keys.get(key_id)
        if cached is not None:
            return cached

        der = await self.key_service.get_public_key(key_id=key_id)
        if der:
            self._public_keys.put(key_id, der)
        return der

    @staticmethod
    def _reject(envelope: SignedEnvelope, detail: str) -> VerificationOutcome:
        logger.warning(
            "context_verification_rejected",
            extra={
                "key_id": envelope.key_identifier,
                "algorithm": envelope.algorithm,
                "reason": detail,
            },
        )
        return VerificationOutcome.failure(detail)
