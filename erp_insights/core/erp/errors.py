from typing import Optional


# -----------------------------------------------------------------------------
# ERP ERRORS
# Purpose: one small taxonomy for everything that can go wrong talking to the ERP.
# AuthError is fatal for a whole analysis, TransientError only for one dataset.
# -----------------------------------------------------------------------------


class ErpError(Exception):
    """Base class for ERP integration failures."""


class AuthError(ErpError):
    """Credentials rejected or session permanently expired."""


class TransientError(ErpError):
    """Timeout, network failure or 5xx that survived every retry."""


class DecodeError(ErpError):
    """The ERP answered with a body we could not understand."""


class ErpRequestError(ErpError):
    """Non-retryable HTTP failure (4xx other than 401/403)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
