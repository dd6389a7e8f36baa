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
Microsoft Graph access for web apps: certificate-authenticated confidential client with per-user token caching.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .auth_provider import GraphAuthProvider, GraphAuthProviderAsync
from .certificate_store import CertificateStore, StoreLocation, StoreName, get_certificate
from .config import GraphConnectConfig, WebHostConfig
from .exceptions import AuthenticationFailureError, ServiceError, TokenNotFoundError
from .graph_client import GraphClientAsync
from .models import AuthenticationResult, GraphErrorCode, GraphUser
from .web import create_app

__all__ = [
    "AuthenticationFailureError",
    "AuthenticationResult",
    "CertificateStore",
    "GraphAuthProvider",
    "GraphAuthProviderAsync",
    "GraphClientAsync",
    "GraphConnectConfig",
    "GraphErrorCode",
    "GraphUser",
    "ServiceError",
    "StoreLocation",
    "StoreName",
    "TokenNotFoundError",
    "WebHostConfig",
    "create_app",
    "get_certificate",
]
