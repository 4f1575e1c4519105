"""
Document metadata: the key sources protecting a document's data key.

Each KeySource independently protects the same data key. Operations here
fan out over every key of every source:

- update_master_keys tolerates per-key failures and reports them;
- rotate_data_key re-encrypts everywhere and, on the first failure, puts
  every key back to its previous ciphertext;
- get_data_key returns the first key that can unwrap the data key.
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from keyshield import timeutil
from keyshield.errors import AllBackendsFailed, KeyShieldError, PartialRotationFailure
from keyshield.kms.aws_kms import KMSMasterKey
from keyshield.kms.file_kms import FileMasterKey
from keyshield.kms.provider import MasterKey
from keyshield.pgp.gpg_key import GPGMasterKey

logger = logging.getLogger(__name__)

DATA_KEY_LEN = 32

# Key source name -> master key type, for the serialized header
KEY_TYPES = {
    "kms": KMSMasterKey,
    "pgp": GPGMasterKey,
    "file": FileMasterKey,
}


@dataclass
class KeySource:
    name: str
    keys: List[MasterKey] = field(default_factory=list)


@dataclass
class KeyOutcome:
    identity: str
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RotationReport:
    """Per-key outcome of a rotation sweep."""
    outcomes: List[KeyOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[Tuple[str, BaseException]]:
        return [(o.identity, o.error) for o in self.outcomes if o.error is not None]

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if not self.ok:
            raise PartialRotationFailure(self.failures)


def _encrypt_if_needed(key: MasterKey, data_key: bytes) -> KeyOutcome:
    identity = key.identity()
    try:
        key.encrypt_if_needed(data_key)
    except Exception as e:
        logger.warning("Could not encrypt data key with master key %s: %s", identity, e,
                       extra={"key": identity})
        return KeyOutcome(identity, e)
    return KeyOutcome(identity)


@dataclass
class Metadata:
    last_modified: datetime = field(default_factory=timeutil.now)
    unencrypted_suffix: str = ""
    mac: str = ""
    version: str = ""
    key_sources: List[KeySource] = field(default_factory=list)

    def _all_keys(self) -> List[MasterKey]:
        return [k for ks in self.key_sources for k in ks.keys]

    def master_key_count(self) -> int:
        return sum(len(ks.keys) for ks in self.key_sources)

    def remove_master_keys(self, targets: Iterable[MasterKey]) -> int:
        """Drop every key whose identity matches one of `targets`.

        Returns the number of keys removed.
        """
        doomed = {t.identity() for t in targets}
        removed = 0
        for ks in self.key_sources:
            kept = [k for k in ks.keys if k.identity() not in doomed]
            removed += len(ks.keys) - len(kept)
            ks.keys = kept
        return removed

    def add_master_keys(self, source_name: str, keys: Iterable[MasterKey]) -> int:
        """Append keys to the named source, creating it if needed.

        Keys whose identity is already present in that source are skipped.
        """
        ks = next((s for s in self.key_sources if s.name == source_name), None)
        if ks is None:
            ks = KeySource(source_name)
            self.key_sources.append(ks)
        present = {k.identity() for k in ks.keys}
        added = 0
        for key in keys:
            if key.identity() in present:
                continue
            ks.keys.append(key)
            present.add(key.identity())
            added += 1
        return added

    def update_master_keys(self, data_key: bytes, max_workers: int | None = None) -> RotationReport:
        """Encrypt `data_key` with every key that lacks a fresh ciphertext.

        A failing key is logged and recorded; the sweep always completes.
        """
        keys = self._all_keys()
        if max_workers and max_workers > 1 and len(keys) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(lambda k: _encrypt_if_needed(k, data_key), keys))
        else:
            outcomes = [_encrypt_if_needed(k, data_key) for k in keys]
        return RotationReport(outcomes)

    def get_data_key(self) -> bytes:
        """Recover the data key from the first master key able to decrypt it."""
        errors = []
        keys = self._all_keys()
        for key in keys:
            if not getattr(key, "enc_key", ""):
                continue
            try:
                return key.decrypt()
            except KeyShieldError as e:
                logger.info("Could not decrypt data key with %s", key.identity(), extra={"key": key.identity()})
                errors.append(e)
        raise AllBackendsFailed(len(keys), errors)

    def rotate_data_key(self) -> bytes:
        """Generate a new data key and encrypt it with every master key.

        Fails on the first key that cannot encrypt. The keys already
        re-encrypted get their previous ciphertext back, so the metadata
        still protects the old data key.
        """
        data_key = os.urandom(DATA_KEY_LEN)
        keys = self._all_keys()
        previous = [(k.enc_key, k.creation_date) for k in keys]
        try:
            for key in keys:
                key.encrypt(data_key)
        except Exception:
            for key, (enc_key, creation_date) in zip(keys, previous):
                key.enc_key = enc_key
                key.creation_date = creation_date
            raise
        self.last_modified = timeutil.now()
        return data_key

    def to_dict(self) -> dict:
        """Serialized header, one list of keys per key source name.

        Key sources that share a name are merged into a single list, and
        from_dict rebuilds the sources in ``kms``, ``pgp``, ``file`` order,
        so grouping and order of same-named sources do not survive a round
        trip; keys keep their order within each name.
        """
        out: Dict[str, Any] = {
            "lastmodified": self.last_modified.isoformat(),
            "mac": self.mac,
            "version": self.version,
            "unencrypted_suffix": self.unencrypted_suffix,
        }
        for ks in self.key_sources:
            if ks.name not in KEY_TYPES:
                raise KeyShieldError(f"Unknown key source {ks.name!r}")
            out.setdefault(ks.name, []).extend(k.to_dict() for k in ks.keys)
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "Metadata":
        sources = []
        for name, key_type in KEY_TYPES.items():
            if name in data:
                sources.append(KeySource(name, [key_type.from_dict(d) for d in data[name] or []]))
        return cls(
            last_modified=timeutil.parse_timestamp(data.get("lastmodified")) or timeutil.now(),
            unencrypted_suffix=data.get("unencrypted_suffix", ""),
            mac=data.get("mac", ""),
            version=data.get("version", ""),
            key_sources=sources,
        )
