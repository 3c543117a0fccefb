import functools
import logging
from typing import Any, Optional, Protocol

import anyio
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.hazmat.primitives import hashes

from context_signer.app.core.config import Settings
from context_signer.app.core.errors import KeyServiceError
from context_signer.app.services.algorithms import resolve_algorithm

logger = logging.getLogger("context_signer.kms_api")


class KeyServiceClient(Protocol):
    """
    Remote key-management capability used by the signer.

    Implementations return ``None`` when the service answers without
    key material and raise KeyServiceError on transport or
    authorization failures.
    """

    async def sign(
        self,
        *,
        key_id: str,
        message: bytes,
        algorithm: str,
    ) -> Optional[bytes]:
        ...

    async def get_public_key(self, *, key_id: str) -> Optional[bytes]:
        ...


def build_kms_client(settings: Settings) -> Any:
    """
    Create a boto3 KMS client for ``settings``.

    Each client gets its own boto3 Session so differently configured
    signers never share credentials. Retries are disabled: a single
    failed call is the operation's result.
    """
    session_kwargs: dict[str, Any] = {"region_name": settings.aws_region}

    if settings.has_static_credentials:
        session_kwargs["aws_access_key_id"] = settings.aws_access_key_id
        session_kwargs["aws_secret_access_key"] = (
            settings.aws_secret_access_key.get_secret_value()
        )
        if settings.aws_session_token is not None:
            session_kwargs["aws_session_token"] = (
                settings.aws_session_token.get_secret_value()
            )

    session = boto3.session.Session(**session_kwargs)

    config = BotoConfig(
        region_name=settings.aws_region,
        connect_timeout=settings.kms_connect_timeout_seconds,
        read_timeout=settings.kms_read_timeout_seconds,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )

    return session.client(
        "kms",
        endpoint_url=(
            str(settings.kms_endpoint_url)
            if settings.kms_endpoint_url
            else None
        ),
        config=config,
    )


class AwsKmsClient:
    """
    Async facade over the AWS KMS Sign and GetPublicKey APIs.

    HARD GUARANTEES:
    - Private keys never leave KMS
    - One request per call (no retries)
    - boto3 runs in a worker thread; the event loop is never blocked

    KMS accepts at most 4096 bytes in RAW mode. Longer messages are
    hashed locally and sent as DIGEST, which KMS signs exactly as it
    would have signed the raw message.
    """

    MAX_RAW_MESSAGE_BYTES = 4096

    def __init__(
        self,
        settings: Settings,
        client: Optional[Any] = None,
    ):
        self.settings = settings
        self._client = client if client is not None else build_kms_client(settings)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def sign(
        self,
        *,
        key_id: str,
        message: bytes,
        algorithm: str,
    ) -> Optional[bytes]:
        spec = resolve_algorithm(algorithm)

        message_type = "RAW"
        if len(message) > self.MAX_RAW_MESSAGE_BYTES:
            hasher = hashes.Hash(spec.hash_algorithm())
            hasher.update(message)
            message = hasher.finalize()
            message_type = "DIGEST"

        response = await self._call(
            "sign",
            key_id=key_id,
            KeyId=key_id,
            Message=message,
            MessageType=message_type,
            SigningAlgorithm=spec.name.value,
        )
        return response.get("Signature") or None

    async def get_public_key(self, *, key_id: str) -> Optional[bytes]:
        response = await self._call(
            "get_public_key",
            key_id=key_id,
            KeyId=key_id,
        )
        return response.get("PublicKey") or None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, operation: str, *, key_id: str, **params: Any) -> dict:
        method = getattr(self._client, operation)

        try:
            return await anyio.to_thread.run_sync(
                functools.partial(method, **params)
            )
        except ClientError as exc:
            error = exc.response.get("Error", {})
            logger.exception(
                "kms_request_failed",
                extra={
                    "operation": operation,
                    "key_id": key_id,
                    "error_code": error.get("Code"),
                    "region": self.settings.aws_region,
                },
            )
            raise KeyServiceError(str(exc)) from exc
        except BotoCoreError as exc:
            logger.exception(
                "kms_transport_failed",
                extra={
                    "operation": operation,
                    "key_id": key_id,
                    "error_type": type(exc).__name__,
                    "region": self.settings.aws_region,
                },
            )
            raise KeyServiceError(str(exc)) from exc
