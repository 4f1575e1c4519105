"""
GPG master keys, backed by the local ``gpg`` binary.

The data key is encrypted to a single fingerprint and the binary output is
stored base64 encoded, like every other backend. Decryption relies on the
user's keyring and agent.
"""

import base64
import binascii
import logging
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from keyshield import config, timeutil
from keyshield.errors import BackendUnavailable

logger = logging.getLogger(__name__)


@dataclass
class GPGMasterKey:
    fingerprint: str
    enc_key: str = ""
    creation_date: Optional[datetime] = field(default=None, compare=False)

    def __post_init__(self):
        self.fingerprint = "".join(self.fingerprint.split()).upper()

    def identity(self) -> str:
        return self.fingerprint

    def _run(self, args: List[str], data: bytes, action: str) -> bytes:
        cmd = [config.gpg_binary(), '--batch', '--yes', '--quiet'] + args
        try:
            proc = subprocess.run(cmd, input=data, capture_output=True, check=False)
        except OSError as e:
            raise BackendUnavailable(self.identity(), f"Error running gpg to {action} key", e) from e
        if proc.returncode != 0:
            stderr = proc.stderr.decode('utf-8', errors='replace').strip()
            raise BackendUnavailable(self.identity(), f"gpg failed to {action} key: {stderr}")
        return proc.stdout

    def encrypt(self, data_key: bytes) -> None:
        out = self._run(
            ['--no-default-recipient', '--no-encrypt-to', '--encrypt',
             '-r', self.fingerprint, '--trusted-key', self.fingerprint],
            data_key,
            "encrypt",
        )
        self.enc_key = base64.b64encode(out).decode('ascii')
        self.creation_date = timeutil.now()
        logger.debug("Data key encrypted with GPG", extra={"key": self.identity()})

    def encrypt_if_needed(self, data_key: bytes) -> None:
        if self.enc_key and not self.needs_rotation():
            return
        self.encrypt(data_key)

    def decrypt(self) -> bytes:
        if not self.enc_key:
            raise BackendUnavailable(self.identity(), "No ciphertext stored for key")
        try:
            blob = base64.b64decode(self.enc_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise BackendUnavailable(self.identity(), "Stored ciphertext is not valid base64", e) from e
        return self._run(['--use-agent', '--decrypt'], blob, "decrypt")

    def needs_rotation(self) -> bool:
        return timeutil.is_stale(self.creation_date)

    def to_dict(self) -> dict:
        out = {"fp": self.fingerprint, "enc": self.enc_key}
        if self.creation_date is not None:
            out["created_at"] = self.creation_date.isoformat()
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "GPGMasterKey":
        return cls(
            fingerprint=data["fp"],
            enc_key=data.get("enc", ""),
            creation_date=timeutil.parse_timestamp(data.get("created_at")),
        )


@dataclass
class GPGKeySource:
    """Single GPG identity exposed through the key source interface."""
    key: GPGMasterKey

    def decrypt_keys(self) -> bytes:
        return self.key.decrypt()

    def encrypt_keys(self, plaintext: bytes) -> None:
        self.key.encrypt(plaintext)
