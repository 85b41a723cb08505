from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Flask, jsonify, request

from ..core.exceptions import (
    DomainError,
    InvalidTransitionError,
    NotFoundError,
    RemoteStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (InvalidTransitionError, 409),
    (RemoteStoreError, 502),
)


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def domain_error(exc: DomainError):
        status = next((code for cls, code in _STATUS if isinstance(exc, cls)), 400)
        payload: Dict[str, Any] = {"error": str(exc)}
        if isinstance(exc, RemoteStoreError):
            payload["operation"] = exc.operation
            logger.warning("Remote store failure in %s: %s", exc.operation, exc)
        return jsonify(payload), status
