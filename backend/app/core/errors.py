r"""backend\app\core\errors.py

Error taxonomy shared by the services and the API layer.

Each error carries a machine readable ``code`` and the HTTP status the API
layer maps it to, so the application can render any ``SmartMandiError``
without knowing the concrete type.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SmartMandiError(Exception):
    """Base class for service errors."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(SmartMandiError):
    """Malformed or empty input."""

    code = "invalid_request"
    status_code = 400


class NotFoundError(SmartMandiError):
    code = "not_found"
    status_code = 404


class CatalogUnavailable(SmartMandiError):
    """The product catalog could not be consulted."""

    code = "catalog_unavailable"
    status_code = 503


class PersistenceFailure(SmartMandiError):
    """Reading or writing the store failed."""

    code = "persistence_failed"
    status_code = 503


class PredictorError(SmartMandiError):
    """Base class for external predictor failures."""

    code = "prediction_failed"
    status_code = 502


class PredictorTimeout(PredictorError):
    code = "prediction_timeout"
    status_code = 504


class PredictorProcessFailure(PredictorError):
    code = "prediction_failed"


class PredictorParseFailure(PredictorError):
    code = "prediction_unparseable"


class PredictorStartFailure(PredictorError):
    code = "predictor_unavailable"
