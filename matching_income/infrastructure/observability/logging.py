"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger
from matching_income.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_sale_ingested(
    request_id: Optional[str],
    sale_id: str,
    seller_id: str,
    leg_type: str,
    amount_paise: int,
    incomes_created: int,
    duration_ms: float,
) -> None:
    """Log structured ingest outcome"""
    logging.info(
        "Sale ingested",
        extra={
            "request_id": request_id,
            "sale_id": sale_id,
            "member_id": seller_id,
            "step": "sale_ingested",
            "leg_type": leg_type,
            "amount_paise": amount_paise,
            "incomes_created": incomes_created,
            "duration_ms": duration_ms,
        },
    )


def log_matching_pass(
    member_id: str,
    matched_paise: int,
    carry_forward_leg: str,
    carry_forward_paise: int,
) -> None:
    """Log a matching pass that produced a bonus"""
    logging.info(
        "Matching pass completed",
        extra={
            "member_id": member_id,
            "step": "matching_pass",
            "matched_paise": matched_paise,
            "carry_forward_leg": carry_forward_leg,
            "carry_forward_paise": carry_forward_paise,
        },
    )


def log_transition(
    record_id: str,
    actor_id: Optional[str],
    from_status: Optional[str],
    to_status: str,
) -> None:
    """Log an income lifecycle transition for the audit trail"""
    logging.info(
        "Income status changed",
        extra={
            "record_id": record_id,
            "actor_id": actor_id,
            "step": "income_transition",
            "from_status": from_status,
            "to_status": to_status,
        },
    )
