from datetime import datetime, timezone
from typing import Optional

from keyshield import config


def now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 header timestamp; values without an offset are UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_stale(creation_date: Optional[datetime]) -> bool:
    """Whether a ciphertext created at `creation_date` is due for rotation."""
    if creation_date is None:
        return True
    if creation_date.tzinfo is None:
        creation_date = creation_date.replace(tzinfo=timezone.utc)
    return now() - creation_date > config.key_ttl()
