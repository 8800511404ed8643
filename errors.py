"""
Error taxonomy for the portfolio API.

Every failure the data layer can surface derives from PortfolioError so that
the HTTP layer can turn it into a JSON response in one place.
"""

from typing import Dict, Optional


class PortfolioError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(PortfolioError):
    """A write was attempted with no signed-in identity."""

    status_code = 401

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class ValidationError(PortfolioError):
    """Form fields failed client-side rules; no request was issued."""

    status_code = 422

    def __init__(self, errors: Dict[str, str], message: str = "Invalid form data"):
        super().__init__(message)
        self.errors = errors


class InvalidFile(PortfolioError):
    status_code = 400


class BackendError(PortfolioError):
    """Any failure reported by the hosted platform."""

    status_code = 502

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class NotFound(BackendError):
    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class RelayError(PortfolioError):
    """The contact relay could not hand a message to the email provider."""
