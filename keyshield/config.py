import os
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Defaults, each overridable through the environment (or a .env file)
DEFAULT_KEY_TTL_DAYS = 180
DEFAULT_SESSION_PREFIX = "keyshield"
DEFAULT_GPG_BINARY = "gpg"
DEFAULT_LOG_LEVEL = "INFO"


def key_ttl() -> timedelta:
    """Age after which a wrapped data key is considered stale."""
    return timedelta(days=int(os.getenv('KEYSHIELD_KEY_TTL_DAYS', DEFAULT_KEY_TTL_DAYS)))


def session_prefix() -> str:
    """Prefix of the STS role session name (``<prefix>@<hostname>``)."""
    return os.getenv('KEYSHIELD_SESSION_PREFIX', DEFAULT_SESSION_PREFIX)


def gpg_binary() -> str:
    return os.getenv('KEYSHIELD_GPG_BINARY', DEFAULT_GPG_BINARY)


def log_level() -> str:
    return os.getenv('KEYSHIELD_LOG_LEVEL', DEFAULT_LOG_LEVEL).upper()


def siem_endpoint() -> Optional[str]:
    # host:port, see keyshield.logging.json_logger
    return os.getenv('KEYSHIELD_SIEM_ENDPOINT') or None
