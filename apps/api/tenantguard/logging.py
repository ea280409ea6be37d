from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from tenantguard.core.config import get_settings
from tenantguard.core.context import current_request_scope, get_correlation_id


# who and where; rendered at the top level of every line
_SCOPE_KEYS = ("correlation_id", "principal_id", "tenant_id")

# engine events only; anything else passed via ``extra`` is dropped
_EVENT_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "operation",
        "resource",
        "resource_id",
        "role",
        "previous_role",
        "new_role",
        "target_id",
        "reason",
        "action",
        "authz_model",
        "error",
    }
)
_MAX_ERROR_LENGTH = 500


class RequestScopeFilter(logging.Filter):
    """Fill in the request's principal and tenant on records that did not name them."""

    def filter(self, record: logging.LogRecord) -> bool:
        scope = current_request_scope()
        for key in _SCOPE_KEYS:
            if getattr(record, key, None) is None and scope is not None:
                setattr(record, key, getattr(scope, key))
        return True


_DEFAULT_RECORD_FACTORY = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    # principal and tenant stay out of here: ``extra`` may not overwrite record attributes
    record = _DEFAULT_RECORD_FACTORY(*args, **kwargs)
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _SCOPE_KEYS:
            payload[key] = getattr(record, key, None)

        fields = {key: value for key, value in record.__dict__.items() if key in _EVENT_FIELDS}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload["fields"] = fields
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_tenantguard_configured", False):
        return

    level = logging.getLevelName(get_settings().log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(RequestScopeFilter())

    root_logger.handlers.clear()
    root_logger.filters.clear()
    root_logger.setLevel(level)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    root_logger._tenantguard_configured = True  # type: ignore[attr-defined]
