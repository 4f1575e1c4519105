"""
Redundant group of KMS entries protecting one shared secret.

Recovering the secret needs a single working entry, so decrypt_keys tries
every entry in order and only fails once all of them have. Protecting the
secret must hold for every entry, so encrypt_keys stops at the first error.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import List

from keyshield.errors import AllBackendsFailed, KeyShieldError
from keyshield.kms.aws_kms import KMSMasterKey

logger = logging.getLogger(__name__)


@dataclass
class KMSKeySource:
    kms: List[KMSMasterKey] = field(default_factory=list)

    def decrypt_keys(self) -> bytes:
        errors = []
        for entry in self.kms:
            try:
                blob = base64.b64decode(entry.enc_key, validate=True)
            except (binascii.Error, ValueError):
                blob = b""
            if not blob:
                logger.debug("Skipping entry without usable ciphertext", extra={"key": entry.identity()})
                continue
            try:
                return entry.decrypt_blob(blob)
            except KeyShieldError as e:
                errors.append(e)
        raise AllBackendsFailed(len(self.kms), errors)

    def encrypt_keys(self, plaintext: bytes) -> None:
        for entry in self.kms:
            entry.encrypt(plaintext)
