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
Data models for the graph-connect package.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class GraphErrorCode(StrEnum):
    TOKEN_NOT_FOUND = "TokenNotFound"
    AUTHENTICATION_FAILURE = "AuthenticationFailure"


def account_id_from_claims(claims: dict[str, Any]) -> str | None:
    """
    Derives the MSAL home account id ("<oid>.<tid>") from ID token claims.

    Returns:
        str | None: The account id, or None if either claim is missing.
    """
    oid = claims.get("oid")
    tid = claims.get("tid")
    if not oid or not tid:
        return None
    return f"{oid}.{tid}"


class AuthenticationResult(BaseModel):
    """
    Tokens returned by an authorization code exchange.

    Attributes:
        access_token (SecretStr): The Graph access token.
        token_type (str): The type of the token (e.g. "Bearer").
        expires_in (int | None): Lifetime of the access token in seconds.
        scopes (list[str]): Scopes granted by the identity provider.
        id_token_claims (dict[str, Any]): Claims of the ID token, if one was issued.
        account_id (str | None): The MSAL home account id used as the cache key for this user.
    """

    model_config = ConfigDict(frozen=True)

    access_token: SecretStr
    token_type: str = "Bearer"
    expires_in: int | None = None
    scopes: list[str] = Field(default_factory=list)
    id_token_claims: dict[str, Any] = Field(default_factory=dict)
    account_id: str | None = None

    @classmethod
    def from_msal(cls, result: dict[str, Any]) -> "AuthenticationResult":
        """
        Builds the model from an MSAL token result dictionary.

        Args:
            result: The dictionary returned by MSAL.

        Returns:
            AuthenticationResult: The parsed result.
        """
        claims = result.get("id_token_claims") or {}
        scope = result.get("scope") or []
        if isinstance(scope, str):
            scope = scope.split()
        return cls(
            access_token=SecretStr(result["access_token"]),
            token_type=result.get("token_type", "Bearer"),
            expires_in=result.get("expires_in"),
            scopes=list(scope),
            id_token_claims=claims,
            account_id=account_id_from_claims(claims),
        )

    def __repr__(self) -> str:
        return (
            f"AuthenticationResult(access_token={self.access_token!r}, "
            f"token_type={self.token_type!r}, "
            f"expires_in={self.expires_in!r}, "
            f"scopes={self.scopes!r}, "
            f"account_id='<REDACTED>')"
        )

    def __str__(self) -> str:
        return self.__repr__()


class SignedInUser(BaseModel):
    """
    The minimal user profile kept in the web session after sign-in.

    This model is frozen; the username is redacted from its repr.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    account_id: str = Field(..., description="MSAL home account id; the token cache key for the user.")
    name: str | None = Field(default=None, description="Display name from the ID token.")
    username: str | None = Field(default=None, description="preferred_username / email / upn from the ID token.")

    @classmethod
    def from_result(cls, result: AuthenticationResult) -> "SignedInUser":
        claims = result.id_token_claims
        if result.account_id is None:
            raise ValueError("ID token claims do not identify an account (missing 'oid' or 'tid').")
        username = None
        for key in ("preferred_username", "email", "upn"):
            value = claims.get(key)
            if isinstance(value, str) and value.strip():
                username = value.strip()
                break
        return cls(account_id=result.account_id, name=claims.get("name") or username, username=username)

    def __repr__(self) -> str:
        return f"SignedInUser(account_id={self.account_id!r}, name={self.name!r}, username='<REDACTED>')"

    def __str__(self) -> str:
        return self.__repr__()


class GraphUser(BaseModel):
    """
    The subset of the Microsoft Graph `user` resource returned by `/me`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    display_name: str | None = Field(default=None, alias="displayName")
    mail: str | None = None
    user_principal_name: str | None = Field(default=None, alias="userPrincipalName")
    job_title: str | None = Field(default=None, alias="jobTitle")
