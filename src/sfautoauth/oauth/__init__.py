"""OAuth capture: callback listener, authorization URL and code exchange."""

from sfautoauth.oauth.capture import (
    AuthorizationSession,
    begin,
    build_sfdx_auth_url,
    exchange_code,
    generate_pkce_pair,
)

__all__ = [
    "AuthorizationSession",
    "begin",
    "build_sfdx_auth_url",
    "exchange_code",
    "generate_pkce_pair",
]
