# contentgen/core/errors.py
#
# Error taxonomy for the generation pipeline. The HTTP layer renders every
# GenerationError as {"error": message} with the class's status code.

from __future__ import annotations

from typing import Optional


class GenerationError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GenerationError):
    status_code = 400


class NotFoundError(GenerationError):
    status_code = 404


class UpstreamKeyError(GenerationError):
    """No usable provider key for the organization/app."""
    status_code = 500


class LLMInvocationError(GenerationError):
    """Provider call failed or the reply could not be parsed."""
    status_code = 500


class LedgerError(GenerationError):
    status_code = 500

    def __init__(self, method: str, path: str, status: Optional[int], detail: str = ""):
        shown = status if status is not None else "network error"
        message = f"runs-service {method} {path} failed: {shown}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)
        self.method = method
        self.path = path
        self.status = status


class LedgerTransientError(LedgerError):
    """5xx or transport failure that survived every retry."""


class LedgerPermanentError(LedgerError):
    """Non-retryable ledger response, e.g. an unregistered cost name."""
