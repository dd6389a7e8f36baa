# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/graph_connect

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import msal
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from graph_connect.certificate_store import StoreName
from graph_connect.config import GraphConnectConfig

TENANT_ID = "72f988bf-86f1-41af-91ab-2d7cd011db47"
USER_ID = f"00000000-0000-0000-0000-000000000001.{TENANT_ID}"
ACCOUNT = {
    "home_account_id": USER_ID,
    "environment": "login.microsoftonline.com",
    "username": "alice@contoso.com",
    "local_account_id": "00000000-0000-0000-0000-000000000001",
    "realm": TENANT_ID,
}


@pytest.fixture(autouse=True)
def clean_environment() -> Generator[None, None, None]:
    """Keeps settings from the developer's shell out of the tests."""
    with patch.dict(os.environ):
        for key in list(os.environ):
            if key.upper().startswith(("AZUREAD_", "GRAPH_CONNECT_")):
                del os.environ[key]
        yield


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    root = tmp_path / "certs"
    (root / StoreName.MY.value).mkdir(parents=True)
    return root


@pytest.fixture
def make_certificate() -> Callable[..., tuple[str, str, str]]:
    """Returns a factory minting a self-signed certificate: (certificate PEM, private key PEM, thumbprint)."""

    def _make(common_name: str = "graph-connect-test") -> tuple[str, str, str]:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        now = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + timedelta(days=30))
            .sign(key, hashes.SHA256())
        )
        cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
        key_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode("ascii")
        return cert_pem, key_pem, cert.fingerprint(hashes.SHA1()).hex().upper()

    return _make


@pytest.fixture
def config(store_root: Path) -> GraphConnectConfig:
    return GraphConnectConfig(
        client_id="11111111-2222-3333-4444-555555555555",
        tenant_id=TENANT_ID,
        certificate_thumbprint="A" * 40,
        certificate_store_root=store_root,
        base_url="https://localhost:5001",
        graph_scopes="User.Read Mail.Send",
        session_secret="test-session-secret",
    )


@pytest.fixture
def msal_app() -> MagicMock:
    app = MagicMock(spec=msal.ConfidentialClientApplication)
    app.get_accounts.return_value = [dict(ACCOUNT)]
    app.acquire_token_silent.return_value = {
        "access_token": "access-token-123",
        "token_type": "Bearer",
        "expires_in": 3599,
    }
    app.get_authorization_request_url.return_value = "https://login.microsoftonline.com/authorize?state=s"
    return app


def msal_code_result(**overrides: Any) -> dict[str, Any]:
    result: dict[str, Any] = {
        "access_token": "access-token-123",
        "refresh_token": "refresh-token-456",
        "token_type": "Bearer",
        "expires_in": 3599,
        "scope": "User.Read Mail.Send openid profile",
        "id_token_claims": {
            "oid": "00000000-0000-0000-0000-000000000001",
            "tid": TENANT_ID,
            "name": "Alice",
            "preferred_username": "alice@contoso.com",
        },
    }
    result.update(overrides)
    return result
