from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

ARN_1 = "arn:aws:kms:us-east-1:123456789012:key/1234abcd-12ab-34cd-56ef-1234567890ab"
ARN_2 = "arn:aws:kms:eu-west-1:210987654321:key/5678efgh-56ef-78gh-90ij-0987654321ba"
ARN_3 = "arn:aws:kms:ap-southeast-2:111122223333:key/mrk-0123456789abcdef"
ROLE = "arn:aws:iam::123456789012:role/keyshield-test"


def client_error(op):
    return ClientError({"Error": {"Code": "AccessDeniedException", "Message": "denied"}}, op)


class FakeKMS:
    """In-memory stand-in for the KMS client: ciphertext is ``arn|plaintext``."""

    def __init__(self):
        self.encrypt_calls = 0
        self.decrypt_calls = 0
        self.failing = set()

    def encrypt(self, KeyId, Plaintext):
        self.encrypt_calls += 1
        if KeyId in self.failing:
            raise client_error("Encrypt")
        return {"CiphertextBlob": KeyId.encode() + b"|" + Plaintext, "KeyId": KeyId}

    def decrypt(self, CiphertextBlob):
        self.decrypt_calls += 1
        arn, sep, plaintext = CiphertextBlob.partition(b"|")
        if not sep or arn.decode() in self.failing:
            raise client_error("Decrypt")
        return {"Plaintext": plaintext, "KeyId": arn.decode()}


@pytest.fixture
def fake_kms():
    return FakeKMS()


@pytest.fixture
def sts_client():
    sts = MagicMock()
    sts.assume_role.return_value = {
        "Credentials": {
            "AccessKeyId": "ASIATEMP",
            "SecretAccessKey": "temp-secret",
            "SessionToken": "temp-token",
        }
    }
    return sts


@pytest.fixture
def aws_session(fake_kms, sts_client):
    """Patch boto3.Session so every session hands out the fake clients."""
    clients = {"kms": fake_kms, "sts": sts_client}
    with patch("keyshield.kms.session.boto3.Session") as session_cls:
        session_cls.return_value.client.side_effect = lambda name: clients[name]
        yield session_cls
