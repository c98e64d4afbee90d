import json
import logging
import os
import re
import hashlib
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from typing import Dict, Any, Optional

import structlog

from . import config

# Session tokens are three base64url segments starting with an encoded '{"'
_SESSION_TOKEN = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]*")
_BEARER_HEADER = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)

# Upstream lookups that fell back to zero are expected, not errors
_LEVEL_BY_STATUS = {
    "degraded": logging.WARNING,
    "failed": logging.ERROR,
}


def fingerprint(value: Optional[str]) -> str:
    """Short stable digest for secrets that must be correlated but never printed"""
    if not value:
        return ""
    return hashlib.md5(value.encode()).hexdigest()[:8]


def redact_secrets(text: str) -> str:
    """Mask session tokens and bearer headers, keeping a fingerprint for correlation"""
    text = _BEARER_HEADER.sub(r"\1<redacted>", text)
    return _SESSION_TOKEN.sub(lambda m: f"<token:{fingerprint(m.group(0))}>", text)


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per line with the monitor's operation fields"""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "component": getattr(record, 'component', record.name),
            "operation": getattr(record, 'operation', record.funcName or 'unknown'),
            "params_hash": getattr(record, 'params_hash', ''),
            "status": getattr(record, 'status', 'info'),
            "duration_ms": getattr(record, 'duration_ms', 0),
            "error": getattr(record, 'error', ''),
            "level": record.levelname,
            "message": record.getMessage(),
        }

        if record.exc_info:
            data["error"] = self.formatException(record.exc_info)
            data["status"] = "error"

        data = {k: v for k, v in data.items() if v != '' and v is not None}
        for key in ("message", "error"):
            if key in data:
                data[key] = redact_secrets(str(data[key]))

        return json.dumps(data, default=str)


def get_logger(name: str) -> "StructuredLogger":
    return StructuredLogger(logging.getLogger(name))


class StructuredLogger:
    """Logger wrapper whose ``log_operation`` fills the formatter's fields"""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def log_operation(self,
                      operation: str,
                      params: Optional[Dict[str, Any]] = None,
                      status: str = "started",
                      duration_ms: int = 0,
                      error: str = "",
                      message: str = "") -> None:
        """Log one step of an operation.

        ``params`` are only ever logged as an md5 prefix so wallet addresses and
        token fingerprints can be matched across lines. The level follows
        ``status``: ``degraded`` is a warning, ``failed`` (or any other status
        carrying an ``error``) is an error, everything else is info.
        """
        params_hash = ""
        if params:
            params_str = json.dumps(params, sort_keys=True, default=str)
            params_hash = hashlib.md5(params_str.encode()).hexdigest()[:8]

        extra = {
            'component': self._logger.name,
            'operation': operation,
            'params_hash': params_hash,
            'status': status,
            'duration_ms': duration_ms,
            'error': error
        }

        level = _LEVEL_BY_STATUS.get(status, logging.ERROR if error else logging.INFO)
        if not message:
            message = f"Operation {operation} failed" if error else f"Operation {operation} {status}"
        self._logger.log(level, message, extra=extra)

    def __getattr__(self, name):
        return getattr(self._logger, name)


def configure_structlog() -> None:
    """Route structlog events from the HTTP clients through stdlib handlers"""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event", "component"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging() -> None:
    """Console and daily-rotated JSON logs, plus the credential audit trail"""
    settings = config.settings
    os.makedirs(settings.log_dir, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(root.level)
    console_handler.setFormatter(StructuredJsonFormatter())
    root.addHandler(console_handler)

    file_handler = TimedRotatingFileHandler(
        filename=os.path.join(settings.log_dir, f"monitor_{datetime.now().strftime('%Y%m%d')}.log"),
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    file_handler.suffix = "%Y%m%d.log"
    file_handler.setLevel(root.level)
    file_handler.setFormatter(StructuredJsonFormatter())
    root.addHandler(file_handler)

    # Every refresh attempt and outcome, kept out of the main stream
    audit_logger = logging.getLogger('audit')
    audit_handler = logging.FileHandler(os.path.join(settings.log_dir, 'audit.log'), encoding='utf-8')
    audit_handler.setFormatter(StructuredJsonFormatter())
    audit_logger.handlers = [audit_handler]
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False

    configure_structlog()


def log_cycle_summary(component: str, cycle: int, wallets_processed: int, duration_seconds: float) -> None:
    """Log a summary line once a polling cycle has finished"""
    logger = get_logger(component)
    logger.log_operation(
        operation="cycle_summary",
        params={"cycle": cycle},
        status="completed",
        duration_ms=int(duration_seconds * 1000),
        message=f"Processed {wallets_processed} wallets in cycle {cycle}"
    )
