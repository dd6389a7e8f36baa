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
Minimal Microsoft Graph client that calls Graph with the signed-in user's token.
"""

from typing import Any

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from pydantic import ValidationError

from graph_connect.auth_provider import GraphAuthProviderAsync
from graph_connect.config import GraphConnectConfig
from graph_connect.exceptions import GraphRequestError
from graph_connect.models import GraphUser
from graph_connect.utils.logger import logger


def _graph_error_code(response: httpx.Response) -> str | None:
    """Extracts `error.code` from a Graph error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        code = body["error"].get("code")
        return str(code) if code else None
    return None


class GraphClientAsync:
    """
    Calls Microsoft Graph on behalf of a user.
    Handles resources via async context manager.
    """

    def __init__(
        self,
        auth_provider: GraphAuthProviderAsync,
        config: GraphConnectConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the GraphClientAsync.

        Args:
            auth_provider: Supplies access tokens for users.
            config: The configuration object.
            client: External async client (optional). If not provided, one is created and closed on exit.
        """
        self.auth_provider = auth_provider
        self.config = config
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.http_timeout)

        # Instrument the client for distributed tracing
        HTTPXClientInstrumentor().instrument_client(self._client)

    async def __aenter__(self) -> "GraphClientAsync":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def get(self, user_id: str, path: str) -> dict[str, Any]:
        """
        Sends an authenticated GET request to Graph.

        Args:
            user_id: The MSAL home account id of the user.
            path: Path relative to the Graph endpoint (e.g. "/me").

        Returns:
            dict[str, Any]: The JSON response body.

        Raises:
            TokenNotFoundError: If the user has no cached account.
            AuthenticationFailureError: If no token can be acquired silently.
            GraphRequestError: If the request fails or Graph answers with an error.
        """
        token = await self.auth_provider.get_user_access_token(user_id)
        url = f"{self.config.graph_endpoint}/{path.lstrip('/')}"

        try:
            response = await self._client.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            logger.error(f"Graph request to {url} failed: {e}")
            raise GraphRequestError(f"Graph request failed: {e}") from e

        if response.is_error:
            code = _graph_error_code(response)
            logger.error(f"Graph returned {response.status_code} ({code}) for {url}")
            raise GraphRequestError(
                f"Graph returned HTTP {response.status_code}", status_code=response.status_code, code=code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GraphRequestError("Graph returned a non-JSON response", status_code=response.status_code) from e
        if not isinstance(data, dict):
            raise GraphRequestError("Graph returned an unexpected response", status_code=response.status_code)
        return data

    async def get_me(self, user_id: str) -> GraphUser:
        """
        Gets the signed-in user's profile from `/me`.

        Args:
            user_id: The MSAL home account id of the user.

        Returns:
            GraphUser: The user's profile.

        Raises:
            GraphRequestError: If the request fails or the profile cannot be parsed.
        """
        data = await self.get(user_id, "/me")
        try:
            return GraphUser.model_validate(data)
        except ValidationError as e:
            raise GraphRequestError(f"Invalid user profile from Graph: {e}") from e
