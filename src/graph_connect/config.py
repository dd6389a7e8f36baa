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
Configuration for the graph-connect package.
"""

import re
import uuid
from pathlib import Path

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from graph_connect.certificate_store import StoreLocation, StoreName, normalize_thumbprint

# MSAL adds these to every request itself and refuses them in caller-supplied scopes.
RESERVED_SCOPES = frozenset({"openid", "profile", "offline_access"})


class GraphConnectConfig(BaseSettings):
    """
    Azure AD settings for the confidential client.

    Attributes:
        instance (str): The cloud instance login host.
        client_id (str): The application (client) id.
        tenant_id (str): The directory (tenant) id, a GUID.
        certificate_thumbprint (str): SHA-1 thumbprint of the client certificate.
        base_url (str): Public base URL of the web app (e.g. https://localhost:5001).
        callback_path (str): Path of the redirect URI, appended to base_url.
        graph_scopes (str): Space-delimited Microsoft Graph scopes.
        pii_salt (SecretStr): Salt for anonymizing user ids in logs/traces.
    """

    model_config = SettingsConfigDict(
        env_prefix="AZUREAD_",
        case_sensitive=False,
        frozen=True,
    )

    instance: str = "https://login.microsoftonline.com"
    client_id: str = Field(..., min_length=1)
    tenant_id: str
    certificate_thumbprint: str
    certificate_store_name: StoreName = StoreName.MY
    certificate_store_location: StoreLocation = StoreLocation.CURRENT_USER
    certificate_store_root: Path | None = None
    unsafe_local_dev: bool = False
    base_url: str
    callback_path: str = "/signin-oidc"
    graph_scopes: str = "User.Read"
    graph_endpoint: str = "https://graph.microsoft.com/v1.0"
    http_timeout: float = Field(10.0, gt=0, description="Timeout in seconds for Graph requests.")
    pii_salt: SecretStr = SecretStr("graph-connect-unsafe-default-salt")
    session_secret: SecretStr | None = None

    @field_validator("instance", "graph_endpoint")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("tenant_id")
    @classmethod
    def validate_tenant_id(cls, v: str) -> str:
        """
        Ensures the tenant id is a GUID and returns its canonical lowercase form.
        """
        try:
            return str(uuid.UUID(v.strip()))
        except ValueError as e:
            raise ValueError(f"Tenant id must be a GUID, got '{v}'.") from e

    @field_validator("certificate_thumbprint")
    @classmethod
    def validate_thumbprint(cls, v: str) -> str:
        thumbprint = normalize_thumbprint(v)
        if not re.fullmatch(r"[0-9A-F]{40}", thumbprint):
            raise ValueError("Certificate thumbprint must be a 40 character SHA-1 hex string.")
        return thumbprint

    @field_validator("base_url", mode="after")
    @classmethod
    def validate_https(cls, v: str, info: ValidationInfo) -> str:
        """
        Ensures that the base URL uses HTTPS, unless strictly opted out for local dev.
        """
        v = v.strip().rstrip("/")
        if v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Base URL must be absolute, got '{v}'.")
        return v

    @field_validator("callback_path")
    @classmethod
    def validate_callback_path(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError("Callback path must start with '/'.")
        return v

    @field_validator("graph_scopes")
    @classmethod
    def validate_scopes(cls, v: str) -> str:
        scopes = v.split()
        if not scopes:
            raise ValueError("At least one Graph scope is required.")
        reserved = RESERVED_SCOPES.intersection(scopes)
        if reserved:
            raise ValueError(f"Reserved scopes are added automatically and must not be configured: {sorted(reserved)}")
        return " ".join(scopes)

    @property
    def authority(self) -> str:
        return f"{self.instance}/{self.tenant_id}"

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url}{self.callback_path}"

    @property
    def scopes(self) -> list[str]:
        return self.graph_scopes.split()


class WebHostConfig(BaseSettings):
    """
    Settings for running the web host.
    """

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_CONNECT_",
        case_sensitive=False,
    )

    host: str = "127.0.0.1"
    port: int = Field(5000, ge=1, le=65535)
    debug: bool = False
