import os
import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from keyshield import timeutil
from keyshield.errors import BackendUnavailable

NONCE_SIZE = 12


@dataclass
class FileMasterKey:
    """File-backed master key for local development and tests only.

    Keeps a single 256-bit key in a file (protected via file perms) and
    wraps data keys with AES-GCM, using the key identity as AAD.
    """
    key_path: str
    enc_key: str = ""
    creation_date: Optional[datetime] = field(default=None, compare=False)

    def __post_init__(self):
        self.key_path = os.path.abspath(self.key_path)
        if not os.path.exists(self.key_path):
            mk = AESGCM.generate_key(bit_length=256)
            with open(self.key_path, 'wb') as f:
                f.write(mk)
            os.chmod(self.key_path, 0o600)

    def identity(self) -> str:
        return f"file:{self.key_path}"

    def _load_master(self) -> bytes:
        with open(self.key_path, 'rb') as f:
            return f.read()

    def encrypt(self, data_key: bytes) -> None:
        try:
            aesgcm = AESGCM(self._load_master())
            nonce = os.urandom(NONCE_SIZE)
            enc = aesgcm.encrypt(nonce, data_key, self.identity().encode())
        except (ValueError, OSError) as e:
            raise BackendUnavailable(self.identity(), "Error encrypting key", e) from e
        self.enc_key = base64.b64encode(nonce + enc).decode('ascii')
        self.creation_date = timeutil.now()

    def encrypt_if_needed(self, data_key: bytes) -> None:
        if self.enc_key and not self.needs_rotation():
            return
        self.encrypt(data_key)

    def decrypt(self) -> bytes:
        try:
            data = base64.b64decode(self.enc_key, validate=True)
            aesgcm = AESGCM(self._load_master())
            return aesgcm.decrypt(data[:NONCE_SIZE], data[NONCE_SIZE:], self.identity().encode())
        except (binascii.Error, ValueError, InvalidTag, OSError) as e:
            raise BackendUnavailable(self.identity(), "Error decrypting key", e) from e

    def needs_rotation(self) -> bool:
        return timeutil.is_stale(self.creation_date)

    def to_dict(self) -> dict:
        out = {"path": self.key_path, "enc": self.enc_key}
        if self.creation_date is not None:
            out["created_at"] = self.creation_date.isoformat()
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "FileMasterKey":
        return cls(
            key_path=data["path"],
            enc_key=data.get("enc", ""),
            creation_date=timeutil.parse_timestamp(data.get("created_at")),
        )
