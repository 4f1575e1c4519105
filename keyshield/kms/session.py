"""
Session construction for KMS master keys.

A session is built in two explicit steps: a base session in the key's region
using ambient credentials (environment, profile or instance role), then,
when the key names a role, a second session holding the temporary
credentials returned by STS AssumeRole. Nothing is cached between calls.
"""

import re
import socket
from typing import NamedTuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from keyshield import config
from keyshield.errors import CredentialFailure, MalformedIdentifier

ARN_PATTERN = re.compile(r'^arn:aws:kms:([a-z0-9-]+):([0-9]{12}):key/([A-Za-z0-9-]+)$')

# STS RoleSessionName: 2-64 chars of [\w+=,.@-]
SESSION_NAME_MAX_LEN = 64
_SESSION_NAME_INVALID = re.compile(r'[^\w+=,.@-]')


class ArnParts(NamedTuple):
    region: str
    account_id: str
    key_id: str


def parse_arn(arn: str) -> ArnParts:
    """Split a KMS key ARN, raising MalformedIdentifier if it does not match."""
    match = ARN_PATTERN.match(arn or "")
    if match is None:
        raise MalformedIdentifier(arn)
    return ArnParts(*match.groups())


def role_session_name(identity: str = "") -> str:
    try:
        hostname = socket.gethostname()
    except OSError as e:
        raise CredentialFailure(identity, "Could not determine host name", e) from e
    name = f"{config.session_prefix()}@{hostname}"
    return _SESSION_NAME_INVALID.sub('-', name)[:SESSION_NAME_MAX_LEN]


def base_session(region: str, access_key: str | None = None, secret_key: str | None = None,
                 session_token: str | None = None, identity: str = "") -> boto3.Session:
    """Session in `region`, with explicit credentials when given.

    `identity` names the key the session is for, in raised errors.
    """
    try:
        return boto3.Session(
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            aws_session_token=session_token,
        )
    except BotoCoreError as e:
        raise CredentialFailure(identity or region, "Error creating AWS session", e) from e


def assume_role_session(base: boto3.Session, region: str, role: str, identity: str = "") -> boto3.Session:
    """Exchange the credentials of `base` for temporary ones scoped to `role`."""
    identity = identity or role
    name = role_session_name(identity)
    try:
        out = base.client('sts').assume_role(RoleArn=role, RoleSessionName=name)
    except (BotoCoreError, ClientError) as e:
        raise CredentialFailure(identity, f"Error assuming role {role}", e) from e
    creds = out['Credentials']
    return base_session(
        region,
        access_key=creds['AccessKeyId'],
        secret_key=creds['SecretAccessKey'],
        session_token=creds['SessionToken'],
        identity=identity,
    )


def create_session(arn: str, role: str = "", identity: str | None = None) -> boto3.Session:
    """Authenticated session for the KMS key `arn`, assuming `role` if set.

    Credential errors are reported against `identity`, by default the
    ``arn`` or ``arn+role`` the key is known by.
    """
    parts = parse_arn(arn)
    if identity is None:
        identity = f"{arn}+{role}" if role else arn
    sess = base_session(parts.region, identity=identity)
    if role:
        return assume_role_session(sess, parts.region, role, identity=identity)
    return sess
