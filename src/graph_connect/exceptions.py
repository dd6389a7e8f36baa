# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/graph_connect

"""
Custom exceptions for the graph-connect package.
"""

from graph_connect.models import GraphErrorCode


class GraphConnectError(Exception):
    """Base exception for all graph-connect errors."""


class ConfigurationError(GraphConnectError):
    """Raised when the application is wired up with unusable settings."""


class CertificateStoreError(GraphConnectError):
    """Raised when a certificate store is used incorrectly (e.g. read while closed)."""


class CertificateNotFoundError(GraphConnectError):
    """Raised when the configured client certificate is absent from its store or has no private key."""


class ServiceError(GraphConnectError):
    """
    Structured error surfaced to callers that must send the user back through sign-in.

    Attributes:
        code (GraphErrorCode): Machine-readable error code.
        message (str): Human-readable description.
    """

    def __init__(self, code: GraphErrorCode, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class TokenNotFoundError(ServiceError):
    """Raised when no account for the user is present in the token cache."""

    def __init__(self, message: str = "User not found in token cache. Maybe the server was restarted.") -> None:
        super().__init__(GraphErrorCode.TOKEN_NOT_FOUND, message)


class AuthenticationFailureError(ServiceError):
    """Raised when silent token acquisition fails for any reason."""

    def __init__(
        self,
        message: str = "Caller needs to authenticate. Unable to retrieve the access token silently.",
    ) -> None:
        super().__init__(GraphErrorCode.AUTHENTICATION_FAILURE, message)


class AuthorizationCodeExchangeError(GraphConnectError):
    """
    Raised when the identity provider rejects an authorization code.
    The provider's error code and description are kept as-is.
    """

    def __init__(self, error: str, error_description: str | None = None) -> None:
        super().__init__(f"{error}: {error_description}" if error_description else error)
        self.error = error
        self.error_description = error_description


class GraphRequestError(GraphConnectError):
    """Raised when a Microsoft Graph request fails."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
