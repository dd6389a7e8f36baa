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
Flask web application: sign-in with the authorization code flow and Graph calls for the signed-in user.

Endpoints:
  - GET /                      sign-in status
  - GET /account/sign-in       redirect to Microsoft sign-in
  - GET <callback path>        redirect URI; exchanges the authorization code
  - GET /account/sign-out      drop cached tokens and sign out of Entra ID
  - GET /graph/me              the signed-in user's Graph profile
"""

import secrets
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar
from urllib.parse import urlencode

from flask import Blueprint, Flask, current_app, jsonify, redirect, request, session, url_for
from flask.typing import ResponseReturnValue
from werkzeug.middleware.proxy_fix import ProxyFix

from graph_connect.auth_provider import GraphAuthProviderAsync
from graph_connect.config import GraphConnectConfig
from graph_connect.exceptions import (
    AuthorizationCodeExchangeError,
    ConfigurationError,
    GraphRequestError,
    ServiceError,
)
from graph_connect.graph_client import GraphClientAsync
from graph_connect.models import SignedInUser
from graph_connect.utils.logger import logger

F = TypeVar("F", bound=Callable[..., Awaitable[ResponseReturnValue]])

account_bp = Blueprint("account", __name__, url_prefix="/account")
graph_bp = Blueprint("graph", __name__, url_prefix="/graph")


def _config() -> GraphConnectConfig:
    config = current_app.config.get("GRAPH_CONNECT_CONFIG")
    if not isinstance(config, GraphConnectConfig):
        raise ConfigurationError("Graph connect settings not initialized. Use create_app().")
    return config


def _provider() -> GraphAuthProviderAsync:
    provider = current_app.config.get("GRAPH_AUTH_PROVIDER")
    if provider is None:
        raise ConfigurationError("Graph auth provider not initialized. Use create_app().")
    return provider  # type: ignore[no-any-return]


def _current_user() -> SignedInUser | None:
    data = session.get("user")
    if not isinstance(data, dict):
        return None
    return SignedInUser(**data)


def _safe_next(target: str | None) -> str:
    # Only same-site relative paths; anything else goes home.
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return url_for("index")


def _sign_in_redirect() -> ResponseReturnValue:
    return redirect(url_for("account.sign_in", next=request.path))


def login_required(fn: F) -> F:
    """Ensure the user is signed in; otherwise redirect to sign-in."""

    @wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> ResponseReturnValue:
        if _current_user() is not None:
            return await fn(*args, **kwargs)
        return _sign_in_redirect()

    return wrapper  # type: ignore[return-value]


def index() -> ResponseReturnValue:
    user = _current_user()
    return jsonify(
        {
            "signed_in": user is not None,
            "user": user.model_dump(exclude={"account_id"}) if user else None,
        }
    )


@account_bp.get("/sign-in")
def sign_in() -> ResponseReturnValue:
    """
    Start the sign-in flow by redirecting the user to Microsoft.

    Optional query param:
      - next: where to redirect after successful sign-in
    """
    state = secrets.token_urlsafe(32)
    session["auth_state"] = state
    session["post_login_redirect"] = _safe_next(request.args.get("next"))
    return redirect(_provider().get_authorization_request_url(state))


async def sign_in_callback() -> ResponseReturnValue:
    """Handle the OAuth2 redirect from Microsoft and store the signed-in user in the session."""
    expected_state = session.pop("auth_state", None)
    if not expected_state or expected_state != request.args.get("state"):
        session.clear()
        return "Authentication failed (invalid state). Please try again.", 400

    code = request.args.get("code")
    if not code:
        error = request.args.get("error")
        description = request.args.get("error_description")
        session.clear()
        return f"Authentication failed: {error or 'unknown_error'}\n\n{description or ''}", 400

    try:
        result = await _provider().get_user_access_token_by_authorization_code(code)
        user = SignedInUser.from_result(result)
    except AuthorizationCodeExchangeError as e:
        session.clear()
        return f"Authentication failed: {e.error} - {e.error_description or ''}", 400
    except ValueError as e:
        session.clear()
        return f"Authentication failed: {e}", 400

    session["user"] = user.model_dump()
    return redirect(session.pop("post_login_redirect", None) or url_for("index"))


@account_bp.get("/sign-out")
async def sign_out() -> ResponseReturnValue:
    """
    Remove the user's cached tokens, clear the session and sign out of Entra ID.
    """
    config = _config()
    user = _current_user()
    if user is not None:
        await _provider().sign_out(user.account_id)
    session.clear()

    query = urlencode({"post_logout_redirect_uri": f"{config.base_url}/"})
    return redirect(f"{config.authority}/oauth2/v2.0/logout?{query}")


@graph_bp.get("/me")
@login_required
async def me() -> ResponseReturnValue:
    user = _current_user()
    if user is None:
        return _sign_in_redirect()
    async with GraphClientAsync(_provider(), _config()) as graph:
        profile = await graph.get_me(user.account_id)
    return jsonify(profile.model_dump(mode="json"))


def handle_service_error(error: ServiceError) -> ResponseReturnValue:
    """The user must re-authenticate: drop the session user and send them to sign-in."""
    logger.info(f"Re-authentication required ({error.code})")
    session.pop("user", None)
    return _sign_in_redirect()


def handle_graph_error(error: GraphRequestError) -> ResponseReturnValue:
    return jsonify({"error": {"code": error.code, "message": str(error), "status": error.status_code}}), 502


def create_app(
    config: GraphConnectConfig | None = None,
    auth_provider: GraphAuthProviderAsync | None = None,
) -> Flask:
    """
    Create the Flask application.

    Args:
        config: Azure AD settings. Loaded from the environment when omitted.
        auth_provider: The auth provider. Built from `config` when omitted; shared by all requests.

    Returns:
        Flask: The configured application.
    """
    config = config or GraphConnectConfig()  # type: ignore[call-arg]
    auth_provider = auth_provider or GraphAuthProviderAsync(config)

    app = Flask(__name__)
    if config.session_secret is not None:
        app.secret_key = config.session_secret.get_secret_value()
    else:
        logger.warning("No session secret configured; sessions will not survive a restart.")
        app.secret_key = secrets.token_hex(32)

    # Correct scheme/host in url_for when running behind a reverse proxy
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[method-assign]

    app.config["GRAPH_CONNECT_CONFIG"] = config
    app.config["GRAPH_AUTH_PROVIDER"] = auth_provider

    app.add_url_rule("/", "index", index)
    app.add_url_rule(config.callback_path, "sign_in_callback", sign_in_callback)
    app.register_blueprint(account_bp)
    app.register_blueprint(graph_bp)
    app.register_error_handler(ServiceError, handle_service_error)
    app.register_error_handler(GraphRequestError, handle_graph_error)

    logger.info(f"Web app configured for authority {config.authority} with redirect URI {config.redirect_uri}")
    return app
