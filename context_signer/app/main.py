import sys
import logging

from contextlib import asynccontextmanager
from importlib.metadata import version, PackageNotFoundError
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from context_signer.app.api.routes import router as signing_router
from context_signer.app.core.config import Settings, get_settings
from context_signer.app.services.kms_api import KeyServiceClient
from context_signer.app.services.signer import ContextSigner

logger = logging.getLogger("context_signer.main")


def get_app_version() -> str:
    """
    Resolve application version deterministically.

    Falls back to the source version when the package is not installed.
    """
    try:
        return version("fdc3-context-signer")
    except PackageNotFoundError:
        return "0.1.0"


def create_app(
    settings: Optional[Settings] = None,
    key_service: Optional[KeyServiceClient] = None,
) -> FastAPI:
    """
    Application factory for the context signing service.

    ``settings`` and ``key_service`` are resolved at startup when not
    given; tests inject both.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Guarantees:
        - Fail-fast startup if configuration is invalid
        - One ContextSigner (and one KMS client) per application
        """
        logger.info(
            "context_signer_startup_begin",
            extra={
                "service": "context-signer",
                "version": get_app_version(),
            },
        )

        try:
            resolved = settings if settings is not None else get_settings()
        except Exception:
            logger.exception("invalid_signer_configuration")
            raise

        app.state.settings = resolved
        app.state.signer = ContextSigner(resolved, key_service=key_service)

        logger.info(
            "context_signer_ready",
            extra={
                "key_id": resolved.kms_key_id,
                "region": resolved.aws_region,
                "static_credentials": resolved.has_static_credentials,
            },
        )

        try:
            yield
        finally:
            logger.info("context_signer_shutdown")
            app.state.signer = None

    app = FastAPI(
        title="FDC3 Context Signer",
        description=(
            "Signs and verifies FDC3 contexts with keys held in AWS KMS."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.include_router(signing_router)

    @app.get(
        "/healthz",
        tags=["Monitoring"],
        summary="Liveness and readiness probe",
    )
    async def health_check():
        """
        NOTE:
        - Does NOT call KMS
        """
        return ORJSONResponse(
            content={
                "status": "ok",
                "service": "context-signer",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
                "kms_ready": getattr(app.state, "signer", None) is not None,
            }
        )

    return app


app = create_app()
