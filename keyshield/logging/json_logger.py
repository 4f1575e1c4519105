import logging
import json
from logging.handlers import HTTPHandler

from keyshield import config

# Attribute set through ``extra={"key": ...}`` on master key log records
KEY_ATTR = "key"


class JSONFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        key = getattr(record, KEY_ATTR, None)
        if key:
            payload[KEY_ATTR] = key
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_json_logging(siem_endpoint: str | None = None, level=None):
    """Route the ``keyshield`` logger tree through a JSON stream handler.

    Level and SIEM endpoint fall back to KEYSHIELD_LOG_LEVEL and
    KEYSHIELD_SIEM_ENDPOINT.
    """
    logger = logging.getLogger("keyshield")
    logger.setLevel(level if level is not None else config.log_level())

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)

    siem_endpoint = siem_endpoint or config.siem_endpoint()
    if siem_endpoint:
        # siem_endpoint format: host:port
        host, port = siem_endpoint.split(':')
        http = HTTPHandler(f"{host}:{port}", '/ingest', method='POST')
        http.setFormatter(JSONFormatter())
        logger.addHandler(http)

    return logger
