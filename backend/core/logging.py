"""Centralized logging configuration with PII redaction.

Audit files carry IBANs, phone numbers and e-mail addresses of the company and
its customers. Anything that reaches a log handler passes through
``redact_pii`` first.
"""

import json
import logging
import re
import sys
import threading
from datetime import datetime, timezone
from typing import Optional

from backend.core.config import settings

# IBAN pattern: 2 letters + 2 digits + up to 30 alphanumeric characters
IBAN_PATTERN = re.compile(r'\b([A-Z]{2}\d{2}[A-Z0-9]{10,30})\b')
EMAIL_PATTERN = re.compile(r'(\b\S+@\S+\.\S+\b)')
# Phone pattern: optional +, digits, spaces, slashes (dashes would eat ISO dates)
PHONE_PATTERN = re.compile(r'(\+?\d[\d /]{8,}\d)')

_STANDARD_ATTRS = frozenset(
    (
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
        'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
        'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
        'processName', 'process', 'message', 'taskName',
    )
)

_context = threading.local()


def _mask_iban(match) -> str:
    """Mask IBAN: keep country code, mask the rest."""
    iban = match.group(1)
    return iban[:2] + "*" * (len(iban) - 2)


def _mask_email(match) -> str:
    """Mask email: show first char of user, keep domain."""
    email = match.group(1)
    if "@" not in email:
        return email
    user, domain = email.split("@", 1)
    masked_user = "*" if len(user) <= 1 else user[0] + "*" * (len(user) - 1)
    return f"{masked_user}@{domain}"


def _mask_phone(match) -> str:
    """Mask phone: show first 2 chars, mask the rest."""
    phone = match.group(1)
    return phone[:2] + "*" * (len(phone) - 2)


def redact_pii(text: str) -> str:
    if not isinstance(text, str):
        return text
    text = IBAN_PATTERN.sub(_mask_iban, text)
    text = EMAIL_PATTERN.sub(_mask_email, text)
    return PHONE_PATTERN.sub(_mask_phone, text)


class PIIRedactionFilter(logging.Filter):
    """Filter to redact PII from log messages and their string args."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_pii(str(record.msg))
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                redact_pii(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record with trace/tenant context."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'trace_id': getattr(_context, 'trace_id', None) or 'unknown',
            'tenant_id': getattr(_context, 'tenant_id', None) or 'unknown',
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': redact_pii(record.getMessage()),
            'ts_utc': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        }
        if record.exc_info:
            log_entry['exc_info'] = self.formatException(record.exc_info)

        # extra={...} fields
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith('_'):
                continue
            if isinstance(value, str):
                value = redact_pii(value)
            elif not isinstance(value, (int, float, bool, type(None))):
                value = redact_pii(str(value))
            log_entry[key] = value

        return json.dumps(log_entry, ensure_ascii=False)


def set_trace_id(trace_id: Optional[str]) -> None:
    """Set trace ID for current thread context."""
    _context.trace_id = trace_id


def set_tenant_id(tenant_id: Optional[str]) -> None:
    """Set tenant ID for current thread context."""
    _context.tenant_id = tenant_id


def init_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Install a single stderr handler on the root logger."""
    root_logger = logging.getLogger()
    level_name = (level or settings.log_level).upper()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if (fmt or settings.log_format) == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.addFilter(PIIRedactionFilter())
    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with PII redaction applied."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, PIIRedactionFilter) for f in logger.filters):
        logger.addFilter(PIIRedactionFilter())
    return logger
