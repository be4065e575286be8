"""Structured JSON logging: one JSON object per line on stdout"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

logger = logging.getLogger("sacco_admin")

# Libraries whose chatter drowns out business events at INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Stamps every record with UTC time, level and the emitting service"""

    def __init__(self, *args, service: str = "sacco-admin", **kwargs):
        super().__init__(*args, **kwargs)
        self.service = service

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service


def setup_logging(level: str = "INFO", service: str = "sacco-admin") -> None:
    """Route all logging through a single JSON handler; safe to call more than once"""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s", service=service))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_credit_transition(
    request_id: Optional[str],
    credit_request_id: str,
    admin_id: str,
    action: str,
    outcome: str,
) -> None:
    """Log approve/reject attempts for audit"""
    logger.info(
        "Credit transition",
        extra={
            "request_id": request_id,
            "credit_request_id": credit_request_id,
            "admin_id": admin_id,
            "step": f"credit_{action}",
            "outcome": outcome,
        },
    )


def log_repayment(
    request_id: Optional[str],
    credit_request_id: str,
    user_id: str,
    amount: Decimal,
    reference_number: str,
    attempts: int,
) -> None:
    logger.info(
        "Repayment recorded",
        extra={
            "request_id": request_id,
            "credit_request_id": credit_request_id,
            "user_id": user_id,
            "step": "repayment_created",
            "amount": str(amount),
            "reference_number": reference_number,
            "reference_attempts": attempts,
        },
    )


def log_notification_delivery(outbox_id: str, user_id: str, delivered: bool, error: Optional[str] = None) -> None:
    extra = {
        "outbox_id": outbox_id,
        "user_id": user_id,
        "step": "notification_delivery",
        "outcome": "delivered" if delivered else "failed",
    }
    if delivered:
        logger.info("Notification delivered", extra=extra)
    else:
        logger.warning(f"Notification delivery failed: {error}", extra=extra)
