"""
Public key encoding helpers.

KMS returns public keys as DER-encoded SubjectPublicKeyInfo. Local
verification loads them from PEM. The conversion is formatting only.
"""

import base64
import textwrap
from typing import Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

PEM_HEADER = "-----BEGIN PUBLIC KEY-----"
PEM_FOOTER = "-----END PUBLIC KEY-----"
PEM_LINE_WIDTH = 64


def der_to_pem(der: Union[bytes, bytearray]) -> str:
    """Wrap DER public key bytes in a PEM ``PUBLIC KEY`` block."""
    if not isinstance(der, (bytes, bytearray)):
        raise TypeError(
            f"der_to_pem expects bytes, got {type(der).__name__}"
        )

    body = base64.b64encode(bytes(der)).decode("ascii")
    lines = textwrap.wrap(body, PEM_LINE_WIDTH) or [body]
    return "\n".join([PEM_HEADER, *lines, PEM_FOOTER])


def load_public_key(der: bytes) -> PublicKeyTypes:
    """Load a KMS-issued DER public key through its PEM form."""
    pem = der_to_pem(der)
    return serialization.load_pem_public_key(pem.encode("ascii"))
