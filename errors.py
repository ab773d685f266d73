"""Typed errors raised by the DevCamper core.

Each error carries the HTTP status the transport layer answers with.
"""

from typing import Optional


class DevCamperError(Exception):
    """Base exception for DevCamper"""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(DevCamperError):
    """Malformed or missing input, or a uniqueness violation"""

    status_code = 400


class AuthenticationError(DevCamperError):
    """Missing, invalid or expired credential, or a failed login"""

    status_code = 401


class AuthorizationError(DevCamperError):
    """Valid identity without the required role or ownership"""

    status_code = 403


class NotFoundError(DevCamperError):
    """Referenced entity does not exist"""

    status_code = 404


class DeliveryError(DevCamperError):
    """Downstream mail, geocoding or storage failure"""

    status_code = 500
