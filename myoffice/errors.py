"""Typed error taxonomy shared by the credential manager and the Graph transport.

Every failure that crosses the auth/transport boundary is one of these; raw
``httpx`` or MSAL exceptions are wrapped (and chained) before they leave.
"""

from typing import Optional

LOGIN_HINT = "Run: myoffice login"


class MyOfficeError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# --- Auth ---------------------------------------------------------------


class AuthError(MyOfficeError):
    """Credential/session failure."""

    remediation: Optional[str] = None


class ConfigurationError(AuthError):
    """No app registration (client id) configured."""

    remediation = "Run: myoffice login --client-id <app-client-id> or set M365_CLIENT_ID"


class NotAuthenticated(AuthError):
    """No cached credential exists."""

    remediation = LOGIN_HINT

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ReauthenticationRequired(AuthError):
    """Silent refresh failed (refresh token revoked or expired)."""

    remediation = LOGIN_HINT

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


class DeviceCodeExpired(AuthError):
    """User did not complete device-code sign-in before the code expired."""

    remediation = LOGIN_HINT


class ProviderError(AuthError):
    """Opaque upstream identity-provider failure; message preserved."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


# --- Transport ------------------------------------------------------------


class TransportError(MyOfficeError):
    """Graph transport failure."""


class HttpError(TransportError):
    """Non-2xx response from Graph."""

    def __init__(self, status: int, message: str, code: Optional[str] = None):
        super().__init__(f"Graph API error ({status}): {message}")
        self.status = status
        self.message = message
        self.code = code


class NetworkError(TransportError):
    """Connection, DNS, TLS or timeout failure before a response arrived."""


class UploadSessionError(TransportError):
    """Upload session could not be created or a chunk PUT failed."""

    def __init__(self, message: str, status: Optional[int] = None, offset: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.offset = offset
