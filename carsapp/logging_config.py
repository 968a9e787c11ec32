"""
Logging configuration for the cars gateway app.

Provides structured JSON logging for the operator console and an audit
logger for ledger transaction events.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class LedgerAuditLogger:
    """
    Logger for ledger transaction events.

    Never records key material or signatures; arguments are counted,
    not logged.
    """

    def __init__(self, name: str = "carsapp.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def org_selected(self, org: str, msp_id: str) -> None:
        self._log(
            logging.INFO,
            "ORG_SELECTED",
            org=org,
            msp_id=msp_id,
            message=f"Acting for {org} ({msp_id})"
        )

    def gateway_connected(self, endpoint: str, channel: str, chaincode: str) -> None:
        self._log(
            logging.INFO,
            "GATEWAY_CONNECTED",
            endpoint=endpoint,
            channel=channel,
            chaincode=chaincode,
            message=f"Gateway connected to {endpoint}"
        )

    def gateway_closed(self, endpoint: str) -> None:
        self._log(
            logging.INFO,
            "GATEWAY_CLOSED",
            endpoint=endpoint,
            message=f"Gateway connection to {endpoint} closed"
        )

    def transaction_evaluated(
        self, operation: str, arg_count: int, result_bytes: int, transaction_id: Optional[str] = None
    ) -> None:
        """Log a successful read-only evaluation."""
        self._log(
            logging.INFO,
            "TRANSACTION_EVALUATED",
            operation=operation,
            transaction_id=transaction_id,
            arg_count=arg_count,
            result_bytes=result_bytes,
            message=f"Evaluated {operation}"
        )

    def transaction_submitted(self, operation: str, arg_count: int, transaction_id: Optional[str] = None) -> None:
        """Log a committed transaction."""
        self._log(
            logging.INFO,
            "TRANSACTION_SUBMITTED",
            operation=operation,
            transaction_id=transaction_id,
            arg_count=arg_count,
            message="Transaction committed successfully"
        )

    def transaction_failed(self, operation: str, kind: str, error: Exception) -> None:
        """Log a failed evaluation or submission."""
        code = getattr(error, "code", None)
        self._log(
            logging.ERROR,
            "TRANSACTION_FAILED",
            operation=operation,
            kind=kind,
            error_type=type(error).__name__,
            grpc_status=getattr(code, "name", None),
            transaction_id=getattr(error, "transaction_id", None),
            message=f"failed to {kind} transaction {operation}: {error}"
        )

    def operation_not_implemented(self, operation: str) -> None:
        self._log(
            logging.WARNING,
            "OPERATION_NOT_IMPLEMENTED",
            operation=operation,
            message=f"{operation} is not forwarded to the ledger"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set, or None to generate one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


# Global audit logger instance
audit_log = LedgerAuditLogger()
