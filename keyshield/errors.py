"""
Error hierarchy for the data-key protection layer.

Single-key failures carry the identity of the master key that failed and the
upstream exception. Aggregate failures carry the collected per-key errors.
"""

from typing import List, Optional, Tuple


class KeyShieldError(Exception):
    """Base exception for all master key operations"""


class MalformedIdentifier(KeyShieldError):
    """Raised when a key identifier (e.g. a KMS ARN) cannot be parsed"""
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"No valid ARN found in {identifier!r}")


class _MasterKeyError(KeyShieldError):
    def __init__(self, identity: str, message: str, cause: Optional[BaseException] = None):
        self.identity = identity
        self.cause = cause
        detail = f"{message} ({identity})"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)


class CredentialFailure(_MasterKeyError):
    """Raised when a session for a key cannot be built (host lookup, STS, session)"""


class BackendUnavailable(_MasterKeyError):
    """Raised when an encrypt or decrypt call to a backend fails"""


class AllBackendsFailed(KeyShieldError):
    """Raised when no redundant entry could recover the data key"""
    def __init__(self, attempts: int, errors: List[BaseException]):
        self.attempts = attempts
        self.errors = list(errors)
        msg = f"The key could not be decrypted with any of the {attempts} entries"
        if self.errors:
            msg += ": " + "; ".join(str(e) for e in self.errors)
        super().__init__(msg)


class PartialRotationFailure(KeyShieldError):
    """Raised on request when one or more keys failed during a rotation sweep"""
    def __init__(self, failures: List[Tuple[str, BaseException]]):
        self.failures = list(failures)
        names = ", ".join(identity for identity, _ in self.failures)
        super().__init__(f"Could not encrypt data key with {len(self.failures)} master key(s): {names}")
