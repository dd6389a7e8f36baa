import os
import sys

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from graph_connect import GraphAuthProvider, GraphConnectConfig
from graph_connect.exceptions import ServiceError


def main() -> None:
    """
    Looks up a user's cached Graph token with the synchronous facade.

    Reads the AzureAd settings from AZUREAD_* environment variables and needs the client
    certificate in the configured store. A fresh process has an empty token cache, so
    this demonstrates the TokenNotFound path unless run inside a signed-in web host.
    """
    config = GraphConnectConfig()  # type: ignore[call-arg]
    provider = GraphAuthProvider(config)
    print(f">>> Authority: {provider.authority}")
    print(f">>> Scopes: {' '.join(provider.scopes)}")
    print(f">>> Sign-in URL: {provider.get_authorization_request_url('example-state')}")

    user_id = sys.argv[1] if len(sys.argv) > 1 else "unknown-user.unknown-tenant"
    try:
        token = provider.get_user_access_token(user_id)
        print(f">>> Got access token ({len(token)} chars)")
    except ServiceError as e:
        print(f">>> {e.code}: {e.message}")


if __name__ == "__main__":
    main()
