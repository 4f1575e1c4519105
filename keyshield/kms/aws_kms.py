import base64
import binascii
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from keyshield import timeutil
from keyshield.errors import BackendUnavailable, KeyShieldError
from keyshield.kms.session import create_session, parse_arn

logger = logging.getLogger(__name__)


@dataclass
class KMSMasterKey:
    """AWS KMS master key, optionally used through an assumed role.

    Credentials come from the environment, a profile or the instance role;
    when `role` is set they are exchanged for the role's temporary ones
    before every call.
    """
    arn: str
    role: str = ""
    enc_key: str = ""
    creation_date: Optional[datetime] = field(default=None, compare=False)

    def __post_init__(self):
        # Reject malformed ARNs before anything can reach the network
        self.region = parse_arn(self.arn).region

    def identity(self) -> str:
        if self.role:
            return f"{self.arn}+{self.role}"
        return self.arn

    def _client(self):
        return create_session(self.arn, self.role, identity=self.identity()).client('kms')

    def decrypt_blob(self, ciphertext: bytes) -> bytes:
        """Decrypt a raw ciphertext blob with this key."""
        client = self._client()
        try:
            resp = client.decrypt(CiphertextBlob=ciphertext)
        except (BotoCoreError, ClientError) as e:
            raise BackendUnavailable(self.identity(), "Error decrypting key", e) from e
        return resp['Plaintext']

    def decrypt(self) -> bytes:
        if not self.enc_key:
            raise BackendUnavailable(self.identity(), "No ciphertext stored for key")
        try:
            blob = base64.b64decode(self.enc_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise BackendUnavailable(self.identity(), "Stored ciphertext is not valid base64", e) from e
        return self.decrypt_blob(blob)

    def encrypt(self, data_key: bytes) -> None:
        client = self._client()
        try:
            resp = client.encrypt(KeyId=self.arn, Plaintext=data_key)
        except (BotoCoreError, ClientError) as e:
            raise BackendUnavailable(self.identity(), "Error encrypting key", e) from e
        self.enc_key = base64.b64encode(resp['CiphertextBlob']).decode('ascii')
        self.creation_date = timeutil.now()
        logger.debug("Data key encrypted with KMS", extra={"key": self.identity()})

    def encrypt_if_needed(self, data_key: bytes) -> None:
        if self.enc_key and not self.needs_rotation():
            return
        self.encrypt(data_key)

    def needs_rotation(self) -> bool:
        return timeutil.is_stale(self.creation_date)

    def to_dict(self) -> dict:
        out = {"arn": self.arn, "enc": self.enc_key}
        if self.role:
            out["role"] = self.role
        if self.creation_date is not None:
            out["created_at"] = self.creation_date.isoformat()
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "KMSMasterKey":
        return cls(
            arn=data["arn"],
            role=data.get("role", ""),
            enc_key=data.get("enc", ""),
            creation_date=timeutil.parse_timestamp(data.get("created_at")),
        )


def master_keys_from_arn_string(arns: str) -> List[KMSMasterKey]:
    """Parse ``"arn1,arn2+role"`` into KMS master keys.

    Each entry may carry an IAM role to assume after a ``+``.
    """
    keys = []
    for entry in arns.split(','):
        entry = entry.strip()
        if not entry:
            continue
        arn, _, role = entry.partition('+')
        keys.append(KMSMasterKey(arn=arn, role=role))
    if not keys:
        raise KeyShieldError("No KMS ARNs given")
    return keys
