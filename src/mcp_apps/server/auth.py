# mcp_apps/server/auth.py
"""Security-scheme evaluation and bearer token verification.

The server is the sole authority at call time: whatever a tool listing
advertised, every invocation re-evaluates the tool's schemes against the
caller's credentials.  Token verification is pluggable through
:class:`TokenVerifier`; two JWT verifiers built on authlib are provided.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

import httpx
from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode
from authlib.jose import JsonWebKey, JsonWebToken, KeySet
from authlib.jose.errors import JoseError
from pydantic import BaseModel, Field

from mcp_apps.config.defaults import (
    DEFAULT_HTTP_REQUEST_TIMEOUT,
    DEFAULT_TOKEN_LEEWAY,
    WELL_KNOWN_OPENID_CONFIGURATION,
)
from mcp_apps.config.settings import AppsSettings
from mcp_apps.errors import ConfigurationError, Unauthorized
from mcp_apps.server.models import SecurityScheme, SecuritySchemeType

log = logging.getLogger(__name__)


class AccessToken(BaseModel):
    """Claims of a verified bearer token."""

    subject: str | None = None
    issuer: str | None = None
    audience: list[str] = Field(default_factory=list)
    scopes: frozenset[str] = frozenset()
    expires_at: int | None = None
    claims: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> AccessToken:
        scope = claims.get("scope")
        if isinstance(scope, str):
            scopes = frozenset(scope.split())
        else:
            scopes = frozenset(claims.get("scp") or [])
        aud = claims.get("aud")
        audience = [aud] if isinstance(aud, str) else list(aud or [])
        return cls(
            subject=claims.get("sub"),
            issuer=claims.get("iss"),
            audience=audience,
            scopes=scopes,
            expires_at=claims.get("exp"),
            claims=dict(claims),
        )


class AuthContext(BaseModel):
    """Who is calling: anonymous, or the holder of a verified token."""

    token: AccessToken | None = None

    model_config = {"frozen": True}

    @property
    def anonymous(self) -> bool:
        return self.token is None

    @property
    def subject(self) -> str | None:
        return self.token.subject if self.token else None

    def has_scopes(self, *scopes: str) -> bool:
        return self.token is not None and set(scopes) <= self.token.scopes


class TokenVerifier(Protocol):
    """Validates a bearer token (issuer, audience, expiry) and returns its claims."""

    async def verify(self, token: str) -> AccessToken: ...


# ──────────────────────────────────────────────────────────────────────────────
# JWT verifiers
# ──────────────────────────────────────────────────────────────────────────────
class JWTTokenVerifier:
    """Verifies JWTs signed with a known key (shared secret or public key)."""

    def __init__(
        self,
        key: Any,
        *,
        issuer: str,
        audience: str,
        algorithms: Sequence[str] = ("HS256",),
        leeway: int = DEFAULT_TOKEN_LEEWAY,
    ) -> None:
        self._key = key
        self.issuer = issuer
        self.audience = audience
        self.leeway = leeway
        self._jwt = JsonWebToken(list(algorithms))

    def _claims_options(self) -> dict[str, Any]:
        return {
            "iss": {"essential": True, "value": self.issuer},
            "aud": {"essential": True, "value": self.audience},
            "exp": {"essential": True},
        }

    def _decode(self, token: str, key: Any) -> AccessToken:
        try:
            claims = self._jwt.decode(token, key, claims_options=self._claims_options())
            claims.validate(now=int(time.time()), leeway=self.leeway)
        except (JoseError, ValueError) as e:
            raise Unauthorized(f"Invalid token: {e}") from e
        return AccessToken.from_claims(dict(claims))

    async def _resolve_key(self, token: str) -> Any:
        return self._key

    async def verify(self, token: str) -> AccessToken:
        return self._decode(token, await self._resolve_key(token))


class JWKSTokenVerifier(JWTTokenVerifier):
    """Verifies JWTs against the issuer's published key set.

    The key set location is discovered from the issuer's
    ``/.well-known/openid-configuration`` unless ``jwks_url`` is given.
    Keys are fetched once and shared by all sessions; a token signed with a
    key id the cached set does not hold triggers one refetch, so issuer key
    rotation does not require a restart.
    """

    def __init__(
        self,
        *,
        issuer: str,
        audience: str,
        jwks_url: str | None = None,
        algorithms: Sequence[str] = ("RS256", "ES256"),
        leeway: int = DEFAULT_TOKEN_LEEWAY,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            None, issuer=issuer, audience=audience, algorithms=algorithms, leeway=leeway
        )
        self.jwks_url = jwks_url
        self._http_client = http_client
        self._key_set: KeySet | None = None
        self._lock = asyncio.Lock()

    async def _resolve_key(self, token: str) -> KeySet:
        kid = _token_kid(token)
        seen = self._key_set
        if seen is not None and _holds_kid(seen, kid):
            return seen
        async with self._lock:
            # A concurrent request may have refreshed while we waited
            if self._key_set is seen:
                if seen is not None:
                    log.info("Signing key %r not in cached key set, refetching", kid)
                self._key_set = await self._fetch_key_set()
            key_set = self._key_set
        if key_set is None or not _holds_kid(key_set, kid):
            raise Unauthorized(f"Invalid token: unknown signing key {kid!r}")
        return key_set

    async def _fetch_key_set(self) -> KeySet:
        try:
            if self._http_client is not None:
                return await self._load(self._http_client)
            async with httpx.AsyncClient(timeout=DEFAULT_HTTP_REQUEST_TIMEOUT) as client:
                return await self._load(client)
        except httpx.HTTPError as e:
            raise Unauthorized(f"Could not load signing keys: {e}") from e

    async def _load(self, client: httpx.AsyncClient) -> KeySet:
        jwks_url = self.jwks_url
        if jwks_url is None:
            discovery = await discover_authorization_server(self.issuer, client=client)
            jwks_url = discovery.get("jwks_uri")
            if not jwks_url:
                raise Unauthorized(f"Issuer {self.issuer} publishes no jwks_uri")
        resp = await client.get(jwks_url)
        resp.raise_for_status()
        log.info("Loaded signing keys from %s", jwks_url)
        return JsonWebKey.import_key_set(resp.json())


def _token_kid(token: str) -> str | None:
    """``kid`` from the token's (unverified) header, if it has one."""
    try:
        header = json_loads(urlsafe_b64decode(to_bytes(token.split(".", 1)[0])))
    except (ValueError, TypeError):
        return None
    kid = header.get("kid") if isinstance(header, dict) else None
    return kid if isinstance(kid, str) else None


def _holds_kid(key_set: KeySet, kid: str | None) -> bool:
    # Without a kid the decoder picks the key itself
    return kid is None or any(key.kid == kid for key in key_set.keys)


async def discover_authorization_server(
    issuer: str, *, client: httpx.AsyncClient | None = None
) -> dict[str, Any]:
    """Fetch the issuer's OpenID discovery document."""
    url = issuer.rstrip("/") + WELL_KNOWN_OPENID_CONFIGURATION
    if client is None:
        async with httpx.AsyncClient(timeout=DEFAULT_HTTP_REQUEST_TIMEOUT) as owned:
            resp = await owned.get(url)
    else:
        resp = await client.get(url)
    resp.raise_for_status()
    document: dict[str, Any] = resp.json()
    return document


# ──────────────────────────────────────────────────────────────────────────────
# Policy
# ──────────────────────────────────────────────────────────────────────────────
def parse_bearer(authorization: str | None) -> str | None:
    """Token from an ``Authorization: Bearer ...`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def www_authenticate(
    resource_metadata_url: str | None,
    *,
    error: str | None = None,
    description: str | None = None,
    scope: Iterable[str] | None = None,
) -> str:
    """Build a ``WWW-Authenticate`` challenge pointing at resource metadata."""
    params: list[str] = []
    if resource_metadata_url:
        params.append(f'resource_metadata="{resource_metadata_url}"')
    if error:
        params.append(f'error="{error}"')
    if description:
        params.append(f'error_description="{description.replace(chr(34), chr(39))}"')
    scopes = " ".join(scope or [])
    if scopes:
        params.append(f'scope="{scopes}"')
    return "Bearer " + ", ".join(params) if params else "Bearer"


def protected_resource_metadata(
    resource: str,
    *,
    authorization_servers: Iterable[str] = (),
    scopes_supported: Iterable[str] = (),
) -> dict[str, Any]:
    """Document served at ``/.well-known/oauth-protected-resource``."""
    return {
        "resource": resource,
        "authorization_servers": list(authorization_servers),
        "scopes_supported": sorted(set(scopes_supported)),
        "bearer_methods_supported": ["header"],
    }


class AuthPolicy:
    """Evaluates a tool's security schemes against a caller's credentials."""

    def __init__(
        self,
        verifier: TokenVerifier | None = None,
        *,
        default_schemes: Sequence[SecurityScheme] | None = None,
        resource_metadata_url: str | None = None,
    ) -> None:
        self.verifier = verifier
        self.default_schemes = list(
            default_schemes if default_schemes is not None else [SecurityScheme.noauth()]
        )
        self.resource_metadata_url = resource_metadata_url

    def challenge(
        self,
        *,
        error: str | None = None,
        description: str | None = None,
        scope: Iterable[str] | None = None,
    ) -> str:
        return www_authenticate(
            self.resource_metadata_url, error=error, description=description, scope=scope
        )

    async def authenticate(self, authorization: str | None) -> AccessToken | None:
        """Verify the header's token, if any; a present but bad token fails."""
        token = parse_bearer(authorization)
        if token is None:
            if authorization:
                raise Unauthorized(
                    "Unsupported authorization scheme",
                    www_authenticate=self.challenge(error="invalid_request"),
                )
            return None
        if self.verifier is None:
            raise Unauthorized(
                "This server does not accept bearer tokens",
                www_authenticate=self.challenge(error="invalid_token"),
            )
        try:
            return await self.verifier.verify(token)
        except Unauthorized as e:
            raise Unauthorized(
                e.message,
                www_authenticate=self.challenge(error="invalid_token", description=e.message),
            ) from e

    async def check(
        self, schemes: Sequence[SecurityScheme], authorization: str | None
    ) -> AuthContext:
        """Decide whether a call may proceed, and as whom.

        Raises:
            Unauthorized: credentials are required but missing, or present
                but invalid or lacking a required scope.
        """
        effective = list(schemes) or self.default_schemes
        allows_anonymous = any(s.type is SecuritySchemeType.NOAUTH for s in effective)
        oauth = [s for s in effective if s.type is SecuritySchemeType.OAUTH2]
        required = sorted({scope for s in oauth for scope in s.scopes})

        token = await self.authenticate(authorization)
        if token is None:
            if allows_anonymous:
                return AuthContext()
            raise Unauthorized(
                "Authentication required",
                www_authenticate=self.challenge(
                    error="invalid_token",
                    description="Authentication required",
                    scope=required,
                ),
            )

        if oauth and not any(set(s.scopes) <= token.scopes for s in oauth):
            raise Unauthorized(
                "Token lacks the required scope",
                www_authenticate=self.challenge(
                    error="insufficient_scope", scope=required
                ),
                data={"required_scopes": required},
            )
        return AuthContext(token=token)


def verifier_from_settings(settings: AppsSettings) -> TokenVerifier | None:
    """Build the verifier the settings describe, or ``None`` for no auth."""
    if not settings.auth_issuer or not settings.auth_audience:
        if settings.auth_secret or settings.auth_jwks_url:
            raise ConfigurationError(
                "Token verification needs both an issuer and an audience"
            )
        return None
    if settings.auth_secret:
        return JWTTokenVerifier(
            settings.auth_secret,
            issuer=settings.auth_issuer,
            audience=settings.auth_audience,
        )
    return JWKSTokenVerifier(
        issuer=settings.auth_issuer,
        audience=settings.auth_audience,
        jwks_url=settings.auth_jwks_url,
    )
