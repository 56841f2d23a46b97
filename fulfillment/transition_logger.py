"""
Structured JSON logging for order state transitions.

One flat record per applied transition (stage change or signature status
change), written to a dedicated logger separate from operational logs.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

# Dedicated logger for transition records (separate from operational logs)
_transition_logger: Optional[logging.Logger] = None


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        # record.msg is already a dict for transition records
        if isinstance(record.msg, dict):
            return json.dumps(record.msg, default=str, ensure_ascii=False)
        return super().format(record)


def _get_transition_logger() -> logging.Logger:
    global _transition_logger
    if _transition_logger is not None:
        return _transition_logger

    _transition_logger = logging.getLogger("fulfillment.transitions")
    _transition_logger.setLevel(logging.INFO)
    _transition_logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(_JsonFormatter())
    _transition_logger.addHandler(handler)

    return _transition_logger


def build_transition_record(
    *,
    order_id: str,
    field: str,
    from_value: Any,
    to_value: Any,
    source: str,
    signature_request_id: Optional[str] = None,
) -> dict[str, Any]:
    record = {
        "type": "order_transition",
        "ts": datetime.now(timezone.utc).isoformat(),
        "order_id": order_id,
        "field": field,
        "from": getattr(from_value, "value", from_value),
        "to": getattr(to_value, "value", to_value),
        "source": source,
    }
    if signature_request_id is not None:
        record["signature_request_id"] = signature_request_id
    return record


def log_transition(**kwargs: Any) -> None:
    """Log a single transition record. Accepts the build_transition_record() arguments."""
    _get_transition_logger().info(build_transition_record(**kwargs))
