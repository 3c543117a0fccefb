"""
Mapping between KMS signing-algorithm identifiers and local verifiers.

This table is the single source of truth for both signing (which
identifiers may be sent to KMS) and verification (which local
primitive checks the resulting signature).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Type

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

from context_signer.app.core.errors import UnsupportedAlgorithm
from context_signer.app.schemas.envelope import SigningAlgorithm


@dataclass(frozen=True)
class AlgorithmSpec:
    """How a KMS signing algorithm is checked locally."""

    name: SigningAlgorithm
    key_type: Type
    hash_algorithm: Type[hashes.HashAlgorithm]

    def verify(
        self,
        public_key: PublicKeyTypes,
        signature: bytes,
        message: bytes,
    ) -> None:
        """
        Check ``signature`` over ``message``.

        Raises InvalidSignature on a negative result and TypeError when
        the key does not belong to this algorithm family.
        """
        if not isinstance(public_key, self.key_type):
            raise TypeError(
                f"{self.name.value} requires a {self.key_type.__name__}, "
                f"got {type(public_key).__name__}"
            )

        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(
                signature,
                message,
                padding.PKCS1v15(),
                self.hash_algorithm(),
            )
        else:
            # KMS returns ECDSA signatures DER-encoded, as cryptography expects
            public_key.verify(
                signature,
                message,
                ec.ECDSA(self.hash_algorithm()),
            )


ALGORITHMS: Dict[str, AlgorithmSpec] = {
    SigningAlgorithm.RSASSA_PKCS1_V1_5_SHA_256.value: AlgorithmSpec(
        name=SigningAlgorithm.RSASSA_PKCS1_V1_5_SHA_256,
        key_type=rsa.RSAPublicKey,
        hash_algorithm=hashes.SHA256,
    ),
    SigningAlgorithm.ECDSA_SHA_256.value: AlgorithmSpec(
        name=SigningAlgorithm.ECDSA_SHA_256,
        key_type=ec.EllipticCurvePublicKey,
        hash_algorithm=hashes.SHA256,
    ),
}


def resolve_algorithm(algorithm: object) -> AlgorithmSpec:
    """Look up ``algorithm`` (enum member or KMS name)."""
    key = algorithm.value if isinstance(algorithm, SigningAlgorithm) else algorithm

    try:
        return ALGORITHMS[key]
    except (KeyError, TypeError):
        raise UnsupportedAlgorithm(key) from None


__all__ = [
    "ALGORITHMS",
    "AlgorithmSpec",
    "resolve_algorithm",
]
