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
GraphAuthProvider component for acquiring Microsoft Graph tokens on behalf of signed-in users.
"""

import hashlib
import hmac
from functools import partial
from typing import Any

import anyio
import msal
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from graph_connect.certificate_store import get_certificate
from graph_connect.config import GraphConnectConfig
from graph_connect.exceptions import (
    AuthenticationFailureError,
    AuthorizationCodeExchangeError,
    CertificateNotFoundError,
    TokenNotFoundError,
)
from graph_connect.models import AuthenticationResult
from graph_connect.utils.logger import logger

tracer = trace.get_tracer(__name__)


def build_confidential_client(config: GraphConnectConfig) -> msal.ConfidentialClientApplication:
    """
    Builds the MSAL confidential client, authenticated with the configured certificate.

    Args:
        config: The Azure AD configuration.

    Returns:
        msal.ConfidentialClientApplication: The client application.

    Raises:
        CertificateNotFoundError: If the certificate is not in the store or has no private key.
    """
    cert = get_certificate(
        config.certificate_thumbprint,
        config.certificate_store_name,
        config.certificate_store_location,
        config.certificate_store_root,
    )
    if cert is None:
        raise CertificateNotFoundError(
            f"Certificate {config.certificate_thumbprint} not found in "
            f"{config.certificate_store_location}/{config.certificate_store_name}."
        )
    if not cert.has_private_key:
        raise CertificateNotFoundError(f"Certificate {cert.thumbprint} has no private key.")

    logger.info(f"Using client certificate {cert.subject} (expires {cert.not_valid_after:%Y-%m-%d})")
    return msal.ConfidentialClientApplication(
        client_id=config.client_id,
        authority=config.authority,
        client_credential=cert.to_client_credential(),
    )


class GraphAuthProviderAsync:
    """
    Async implementation of the auth provider (The Core).

    Wraps a process-wide MSAL confidential client whose in-memory token cache holds one
    account per signed-in user. MSAL calls block, so they run in worker threads.

    Attributes:
        config (GraphConnectConfig): The Azure AD configuration.
    """

    def __init__(self, config: GraphConnectConfig, app: msal.ConfidentialClientApplication | None = None) -> None:
        """
        Initialize the GraphAuthProviderAsync.

        Args:
            config: The configuration object.
            app: External MSAL client (optional). If not provided, one is built from the certificate store.
        """
        self.config = config
        self._app = app if app is not None else build_confidential_client(config)
        self._scopes = config.scopes

    @property
    def authority(self) -> str:
        return self.config.authority

    @property
    def scopes(self) -> list[str]:
        return list(self._scopes)

    def _anonymize(self, value: str) -> str:
        """
        Anonymizes a user id using HMAC-SHA256 with the configured salt.

        Args:
            value: The value to anonymize.

        Returns:
            str: The anonymized hex digest.
        """
        return hmac.new(
            self.config.pii_salt.get_secret_value().encode("utf-8"),
            value.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _find_account(self, user_id: str) -> dict[str, Any] | None:
        for account in self._app.get_accounts():
            if account.get("home_account_id") == user_id:
                return account  # type: ignore[no-any-return]
        return None

    def get_authorization_request_url(self, state: str) -> str:
        """
        Builds the URL that starts interactive sign-in.

        Args:
            state: Opaque CSRF token echoed back on the callback.

        Returns:
            str: The authorization endpoint URL.
        """
        return self._app.get_authorization_request_url(  # type: ignore[no-any-return]
            self._scopes,
            state=state,
            redirect_uri=self.config.redirect_uri,
        )

    async def get_user_access_token(self, user_id: str) -> str:
        """
        Gets an access token for the user from the token cache, refreshing it silently if needed.

        Emits an OpenTelemetry span `get_user_access_token`.

        Args:
            user_id: The MSAL home account id of the user ("<oid>.<tid>").

        Returns:
            str: The access token.

        Raises:
            TokenNotFoundError: If the user has no account in the token cache.
            AuthenticationFailureError: If the token cannot be acquired silently.
        """
        with tracer.start_as_current_span("get_user_access_token") as span:
            user_hash = self._anonymize(user_id)
            span.set_attribute("enduser.id", user_hash)

            account = await anyio.to_thread.run_sync(self._find_account, user_id)
            if account is None:
                error = TokenNotFoundError()
                logger.warning(f"No cached account for user {user_hash}")
                span.set_status(Status(StatusCode.ERROR, error.message))
                raise error

            try:
                result = await anyio.to_thread.run_sync(
                    partial(self._app.acquire_token_silent, self._scopes, account=account)
                )
            except Exception as e:
                error = AuthenticationFailureError()
                logger.opt(exception=e).warning(f"Silent token acquisition raised for user {user_hash}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, error.message))
                raise error from e

            if not result or "access_token" not in result:
                error = AuthenticationFailureError()
                reason = result.get("error") if result else "no token in cache"
                logger.warning(f"Silent token acquisition failed for user {user_hash}: {reason}")
                span.set_status(Status(StatusCode.ERROR, error.message))
                raise error

            span.set_status(Status(StatusCode.OK))
            return result["access_token"]  # type: ignore[no-any-return]

    async def get_user_access_token_by_authorization_code(self, authorization_code: str) -> AuthenticationResult:
        """
        Exchanges a one-time authorization code for tokens, caching the user's account.

        Emits an OpenTelemetry span `get_user_access_token_by_authorization_code`.

        Args:
            authorization_code: The code received on the redirect URI.

        Returns:
            AuthenticationResult: The tokens and ID token claims.

        Raises:
            AuthorizationCodeExchangeError: If the identity provider rejects the code.
            Exception: Anything MSAL raises (e.g. network errors) propagates unmodified.
        """
        with tracer.start_as_current_span("get_user_access_token_by_authorization_code") as span:
            result = await anyio.to_thread.run_sync(
                partial(
                    self._app.acquire_token_by_authorization_code,
                    authorization_code,
                    scopes=self._scopes,
                    redirect_uri=self.config.redirect_uri,
                )
            )

            if "error" in result:
                error = AuthorizationCodeExchangeError(result["error"], result.get("error_description"))
                logger.error(f"Authorization code exchange rejected: {result['error']}")
                span.set_status(Status(StatusCode.ERROR, str(error)))
                raise error

            auth_result = AuthenticationResult.from_msal(result)
            if auth_result.account_id:
                user_hash = self._anonymize(auth_result.account_id)
                span.set_attribute("enduser.id", user_hash)
                logger.info(f"Tokens acquired for user {user_hash}")
            span.set_status(Status(StatusCode.OK))
            return auth_result

    async def sign_out(self, user_id: str) -> bool:
        """
        Removes the user's account and tokens from the token cache.

        Args:
            user_id: The MSAL home account id of the user.

        Returns:
            bool: True if an account was removed, False if none was cached.
        """
        with tracer.start_as_current_span("sign_out") as span:
            user_hash = self._anonymize(user_id)
            span.set_attribute("enduser.id", user_hash)

            account = await anyio.to_thread.run_sync(self._find_account, user_id)
            if account is None:
                logger.debug(f"Sign-out for user {user_hash} with no cached account")
                return False

            await anyio.to_thread.run_sync(self._app.remove_account, account)
            logger.info(f"Removed cached account for user {user_hash}")
            return True


class GraphAuthProvider:
    """
    Sync facade over GraphAuthProviderAsync for callers without an event loop.
    """

    def __init__(self, config: GraphConnectConfig, app: msal.ConfidentialClientApplication | None = None) -> None:
        self._async = GraphAuthProviderAsync(config, app=app)

    @property
    def authority(self) -> str:
        return self._async.authority

    @property
    def scopes(self) -> list[str]:
        return self._async.scopes

    def get_authorization_request_url(self, state: str) -> str:
        return self._async.get_authorization_request_url(state)

    def get_user_access_token(self, user_id: str) -> str:
        return anyio.run(self._async.get_user_access_token, user_id)

    def get_user_access_token_by_authorization_code(self, authorization_code: str) -> AuthenticationResult:
        return anyio.run(self._async.get_user_access_token_by_authorization_code, authorization_code)

    def sign_out(self, user_id: str) -> bool:
        return anyio.run(self._async.sign_out, user_id)

