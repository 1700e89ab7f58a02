"""
Mapping of ledger errors onto HTTP responses
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone

from flask import Flask, jsonify

from metalledger.api.models import ErrorResponse
from metalledger.core.errors import LedgerError, PersistenceError

logger = logging.getLogger(__name__)


def error_response(error: LedgerError):
    body = ErrorResponse(
        error=error.code,
        timestamp=datetime.now(timezone.utc).isoformat(),
        message=error.message,
        category=error.category,
        retryable=error.retryable,
        details=error.details or None,
    )
    return jsonify(asdict(body)), error.http_status


def register_error_handlers(app: Flask, retry_after_seconds: int = 2) -> None:
    @app.errorhandler(LedgerError)
    def handle_ledger_error(error: LedgerError):
        if isinstance(error, PersistenceError):
            logger.warning(f"Transient persistence failure: {error.message}")
            response, status = error_response(error)
            response.headers["Retry-After"] = str(retry_after_seconds)
            return response, status

        logger.info(f"{error.code}: {error.message}")
        return error_response(error)
