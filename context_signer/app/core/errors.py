"""
Error taxonomy for the Context Signer.

Signing is all-or-nothing and raises. Verification never raises to its
caller; its failures are reported as VerificationOutcome data.
"""


class SigningFailure(RuntimeError):
    """Raised when a signature could not be produced."""


class KeyServiceError(RuntimeError):
    """Raised when the remote key service call fails (transport or auth)."""


class UnsupportedAlgorithm(ValueError):
    """Raised for signing-algorithm identifiers outside the mapping table."""

    def __init__(self, algorithm: object) -> None:
        self.algorithm = algorithm
        super().__init__(f"Unsupported algorithm: {algorithm}")
