from typing import Protocol, runtime_checkable


@runtime_checkable
class MasterKey(Protocol):
    """Capability every master key backend (KMS, GPG, local file) satisfies."""

    def encrypt(self, data_key: bytes) -> None:
        """Wrap `data_key` and store the base64 ciphertext on the key."""

    def encrypt_if_needed(self, data_key: bytes) -> None:
        """Like encrypt, but without a backend call when the stored
        ciphertext is present and not due for rotation.
        """

    def decrypt(self) -> bytes:
        """Return the data key unwrapped from the stored ciphertext."""

    def needs_rotation(self) -> bool:
        """Whether the stored ciphertext is stale."""

    def identity(self) -> str:
        """Stable identifier used for equality and removal, not secret."""


@runtime_checkable
class KeySourceBackend(Protocol):
    """Group of keys able to recover and protect one shared secret."""

    def decrypt_keys(self) -> bytes:
        ...

    def encrypt_keys(self, plaintext: bytes) -> None:
        ...


@runtime_checkable
class Store(Protocol):
    """Serialization boundary a document format implements for Metadata."""

    def load(self, data: str, key: str) -> None:
        ...

    def dump(self, key: str) -> str:
        ...
