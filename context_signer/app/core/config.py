"""
Centralized configuration management for the Context Signer.

Pydantic v2 settings management to enforce strict validation,
zero secret leakage, and fast-failure on invalid configuration.

Settings are an explicit object handed to each ContextSigner. Several
independently configured signers may coexist in one process.
"""

from functools import lru_cache
from typing import Annotated, Optional

from pydantic import (
    AnyHttpUrl,
    Field,
    SecretStr,
    StringConstraints,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from context_signer.app.schemas.envelope import SigningAlgorithm


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

EnvRequired = Annotated[
    str,
    StringConstraints(min_length=1, strip_whitespace=True),
]

SensitiveEnv = Annotated[
    Optional[SecretStr],
    Field(default=None, description="Sensitive credential, redacted from logs"),
]

AwsRegion = Annotated[
    str,
    Field(
        pattern=r"^[a-z]{2}(-[a-z]+)+-\d{1,2}$",
        description="AWS region name, e.g. us-east-1",
    ),
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Signer settings parsed from the environment.

    Fails fast if the key identifier is missing or the static
    credential triple is only partially supplied.
    """

    # ---------------------------------------------------------------------
    # AWS KMS key
    # ---------------------------------------------------------------------

    kms_key_id: EnvRequired
    aws_region: AwsRegion = "us-east-1"

    kms_endpoint_url: Annotated[
        Optional[AnyHttpUrl],
        Field(
            default=None,
            description="Override for the KMS endpoint (e.g. LocalStack)",
        ),
    ]

    # ---------------------------------------------------------------------
    # Static credentials (optional, default chain otherwise)
    # ---------------------------------------------------------------------

    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: SensitiveEnv
    aws_session_token: SensitiveEnv

    # ---------------------------------------------------------------------
    # Transport boundaries
    # ---------------------------------------------------------------------

    kms_connect_timeout_seconds: Annotated[
        float,
        Field(default=10.0, gt=0, le=60),
    ]

    kms_read_timeout_seconds: Annotated[
        float,
        Field(default=60.0, gt=0, le=300),
    ]

    # ---------------------------------------------------------------------
    # Signing behaviour
    # ---------------------------------------------------------------------

    default_signing_algorithm: SigningAlgorithm = (
        SigningAlgorithm.RSASSA_PKCS1_V1_5_SHA_256
    )

    public_key_cache_ttl_seconds: Annotated[
        int,
        Field(
            default=0,
            ge=0,
            le=86400,
            description=(
                "Lifetime of cached KMS public keys. "
                "0 disables caching (fresh fetch per verification)."
            ),
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="CONTEXT_SIGNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @model_validator(mode="after")
    def credentials_are_complete(self) -> "Settings":
        has_key = bool(self.aws_access_key_id)
        has_secret = self.aws_secret_access_key is not None

        if has_key != has_secret:
            raise ValueError(
                "aws_access_key_id and aws_secret_access_key "
                "must be configured together."
            )
        if self.aws_session_token is not None and not has_key:
            raise ValueError(
                "aws_session_token requires aws_access_key_id "
                "and aws_secret_access_key."
            )
        return self

    @property
    def has_static_credentials(self) -> bool:
        return bool(self.aws_access_key_id)


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Dependency injection provider for the HTTP application.

    Library callers construct Settings directly instead.
    """
    return Settings()
