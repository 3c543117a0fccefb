from .algorithms import ALGORITHMS, AlgorithmSpec, resolve_algorithm
from .kms_api import AwsKmsClient, KeyServiceClient
from .public_key_cache import PublicKeyCache
from .signer import ContextSigner

__all__ = [
    "ALGORITHMS",
    "AlgorithmSpec",
    "resolve_algorithm",
    "AwsKmsClient",
    "KeyServiceClient",
    "PublicKeyCache",
    "ContextSigner",
]
