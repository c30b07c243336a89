"""
Structured Logging Configuration Module

JSON log lines for banking operations. Structured fields (user_id, action,
resource, extra) ride on the LogRecord; sensitive values are masked before
anything reaches a handler's output.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional


STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")

# Keys in `extra` whose values are never written in full
SENSITIVE_KEYS = frozenset({
    "ssn", "password", "token", "card_number", "account_number", "routing_number",
})

JWT_PATTERN = re.compile(r'eyJ[\w-]+\.[\w-]+\.[\w-]+')
LONG_DIGIT_RUN_PATTERN = re.compile(r'\b\d{9,19}\b')


def mask_value(value: Any) -> str:
    """Keep only the last four characters"""
    text = str(value)
    return f"***{text[-4:]}" if len(text) > 4 else "***"


def mask_text(text: str) -> str:
    """Mask session tokens and SSN/card-length digit runs in free text"""
    text = JWT_PATTERN.sub(lambda m: mask_value(m.group(0)), text)
    return LONG_DIGIT_RUN_PATTERN.sub(lambda m: mask_value(m.group(0)), text)


def mask_extra(extra: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: mask_value(value) if key in SENSITIVE_KEYS and value is not None else value
        for key, value in extra.items()
    }


class SensitiveDataFilter(logging.Filter):
    """Masks PII in the message and the structured extra payload"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = mask_text(record.getMessage())
        record.args = ()
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            record.extra = mask_extra(extra)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record; unset structured fields are omitted"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.module,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field_name in STRUCTURED_FIELDS:
            value = getattr(record, field_name, None)
            if value is not None:
                log_entry[field_name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", log_format: str = "json",
                  logger_name: str = "securebank") -> logging.Logger:
    """
    Attach a single masked stream handler to the application logger.

    Args:
        level: Log level name
        log_format: "json" for structured lines, anything else for plain text
        logger_name: Application root logger

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.addFilter(SensitiveDataFilter())
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = "securebank") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[int] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """Log a banking action with its actor, verb and target attached to the record"""
    fields = {"user_id": user_id, "action": action, "resource": resource, "extra": extra}
    logger.log(
        getattr(logging, level.upper()),
        message,
        extra={key: value for key, value in fields.items() if value is not None}
    )
