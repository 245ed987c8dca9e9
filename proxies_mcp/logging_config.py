"""
Logging setup for the gateway: one JSON object per record on stderr, an
optional rotating log file, and a small wrapper with event helpers for
payments, HTTP calls, the session cache and service start-up.

stdout is never written to; in stdio mode it carries the tool protocol.
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional

PACKAGE_LOGGER = "proxies_mcp"

# Attribute names a record may carry via `extra=`; each is copied into the JSON entry.
CONTEXT_FIELDS = ("context", "payment_context", "api_context", "cache_context")

SECRET_KEYS = {"private_key", "wallet_private_key", "password", "api_key", "token", "access_token"}

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: ("***" if k.lower() in SECRET_KEYS and v else v) for k, v in fields.items()}


class StructuredFormatter(logging.Formatter):
    """JSON lines formatter."""

    def format(self, record):
        entry = {
            "timestamp": _utc_now(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Replace any handlers on the package logger with the structured ones."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))
    package_logger.propagate = False
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)

    formatter = StructuredFormatter()
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    package_logger.addHandler(stderr_handler)

    if not log_file:
        return

    try:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
        )
    except OSError as e:
        package_logger.warning(f"File logging disabled, cannot open {log_file}: {e}")
        return
    file_handler.setFormatter(formatter)
    package_logger.addHandler(file_handler)


class GatewayLogger:
    """
    Thin wrapper over a stdlib logger. The log_* helpers attach a typed
    context block (event_type plus fields) that StructuredFormatter emits.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def debug(self, msg: str, *args, **kwargs):
        self.logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.logger.error(msg, *args, **kwargs)

    def _event(self, level: int, msg: str, field: str, event_type: str, fields: Dict[str, Any], exc_info=None):
        context = {"event_type": event_type, "timestamp": _utc_now()}
        context.update(_redact(fields))
        self.logger.log(level, msg, extra={field: context}, exc_info=exc_info)

    def log_service_initialization(self, service_name: str, success: bool, details: Dict[str, Any] = None, error: Optional[Exception] = None):
        fields = {"service": service_name, "success": success}
        if details:
            fields["details"] = _redact(details)
        if success:
            self._event(logging.INFO, f"{service_name} ready", "context", "service_initialization", fields)
        else:
            fields["error"] = str(error) if error else "unknown"
            self._event(logging.ERROR, f"{service_name} failed to start", "context",
                        "service_initialization", fields, exc_info=error)

    def log_payment_event(self, event: str, details: Dict[str, Any], success: bool = True):
        """One step of the x402 flow. Confirmed transfers logged here are the payment audit trail."""
        fields = dict(details, event=event, success=success)
        if success:
            self._event(logging.INFO, f"Payment {event}", "payment_context", "payment", fields)
        else:
            self._event(logging.ERROR, f"Payment {event} failed", "payment_context", "payment", fields)

    def log_api_request(self, success: bool, request_details: Dict[str, Any], response_details: Optional[Dict[str, Any]] = None, error_details: Optional[Dict[str, Any]] = None):
        endpoint = request_details.get("endpoint")
        fields = {
            "method": request_details.get("method", "GET"),
            "endpoint": endpoint,
            "success": success,
        }
        if response_details:
            fields["status_code"] = response_details.get("status_code")
            fields["response_time_ms"] = response_details.get("response_time_ms")
        if error_details:
            fields["error"] = {k: error_details.get(k) for k in ("type", "message", "status_code")}

        if success:
            self._event(logging.DEBUG, f"{fields['method']} {endpoint}", "api_context", "api_request", fields)
        else:
            reason = (error_details or {}).get("message") or "request failed"
            self._event(logging.WARNING, f"{fields['method']} {endpoint} failed: {reason}",
                        "api_context", "api_request", fields)

    def log_cache_event(self, event: str, details: Dict[str, Any], level: int = logging.DEBUG):
        self._event(level, f"Session cache {event}", "cache_context", "session_cache", dict(details, event=event))

    def log_error(self, error: Exception, context: Dict[str, Any] = None, severity: str = "ERROR"):
        """Log a caught exception with its traceback; `severity` is a stdlib level name."""
        fields = {"error_type": type(error).__name__, "error_message": str(error)}
        if context:
            fields["context"] = _redact(context)
        level = logging.getLevelName(severity.upper())
        if not isinstance(level, int):
            level = logging.ERROR
        self._event(level, f"{type(error).__name__}: {error}", "context", "error", fields, exc_info=error)


def get_logger(name: str) -> GatewayLogger:
    return GatewayLogger(name)
