from typing import Any, Optional
import logging
from pydantic import BaseModel

logger = logging.getLogger(__name__)

class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

class ValidationError(AppError):
    status_code = 400

class AccessDeniedError(AppError):
    status_code = 403

class NotFoundError(AppError):
    status_code = 404

class ConfigurationError(AppError):
    status_code = 500

class StoreError(AppError):
    status_code = 500

class CallProxyError(AppError):
    """Raised when the start-call proxy rejects a request or cannot be reached."""
    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message, status_code=status_code)
        self.details = details

class Outcome(BaseModel):
    """Result of a best-effort side effect (webhook, activity log, AI rewrite).

    ``value`` carries whatever the caller should use next, which on failure is
    usually a fallback (e.g. the unmodified email template).
    """
    ok: bool
    value: Any = None
    error: Optional[str] = None
    skipped: bool = False

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: Any, value: Any = None) -> "Outcome":
        return cls(ok=False, value=value, error=str(error) or error.__class__.__name__)

    @classmethod
    def skip(cls, value: Any = None) -> "Outcome":
        return cls(ok=True, value=value, skipped=True)

class ErrorHandler:
    @staticmethod
    def log_outcome(action: str, outcome: Outcome) -> Outcome:
        if outcome.skipped:
            logger.info(f"{action} skipped (not configured)")
        elif not outcome.ok:
            logger.warning(f"{action} failed: {outcome.error}")
        return outcome

