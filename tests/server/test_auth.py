# tests/server/test_auth.py
"""Tests for token verification and security-scheme evaluation."""

from __future__ import annotations

import time

import httpx
import pytest
from authlib.jose import JsonWebKey, jwt

from conftest import AUDIENCE, ISSUER, SECRET
from mcp_apps.config.settings import AppsSettings
from mcp_apps.errors import ConfigurationError, Unauthorized
from mcp_apps.server.auth import (
    AccessToken,
    AuthContext,
    AuthPolicy,
    JWKSTokenVerifier,
    JWTTokenVerifier,
    discover_authorization_server,
    parse_bearer,
    protected_resource_metadata,
    verifier_from_settings,
    www_authenticate,
)
from mcp_apps.server.models import SecurityScheme

METADATA_URL = "http://localhost:8765/.well-known/oauth-protected-resource"


def _verifier() -> JWTTokenVerifier:
    return JWTTokenVerifier(SECRET, issuer=ISSUER, audience=AUDIENCE)


def _policy(**kwargs) -> AuthPolicy:
    kwargs.setdefault("resource_metadata_url", METADATA_URL)
    return AuthPolicy(_verifier(), **kwargs)


# ── Claims ─────────────────────────────────────────────────────────────────


class TestAccessToken:
    def test_scope_string(self):
        token = AccessToken.from_claims(
            {"sub": "u", "iss": ISSUER, "aud": AUDIENCE, "scope": "a b", "exp": 1}
        )
        assert token.scopes == frozenset({"a", "b"})
        assert token.audience == [AUDIENCE]
        assert token.subject == "u"

    def test_scp_list(self):
        token = AccessToken.from_claims({"scp": ["a"], "aud": ["x", "y"]})
        assert token.scopes == frozenset({"a"})
        assert token.audience == ["x", "y"]

    def test_auth_context(self):
        assert AuthContext().anonymous
        assert AuthContext().subject is None
        ctx = AuthContext(token=AccessToken(subject="u", scopes=frozenset({"a", "b"})))
        assert not ctx.anonymous
        assert ctx.subject == "u"
        assert ctx.has_scopes("a")
        assert not ctx.has_scopes("a", "c")


# ── JWT verification ───────────────────────────────────────────────────────


class TestJWTTokenVerifier:
    @pytest.mark.asyncio
    async def test_valid(self, make_token):
        token = await _verifier().verify(make_token(sub="alice"))
        assert token.subject == "alice"
        assert "pizza.write" in token.scopes
        assert token.issuer == ISSUER

    @pytest.mark.asyncio
    async def test_expired(self, make_token):
        with pytest.raises(Unauthorized, match="Invalid token"):
            await _verifier().verify(make_token(exp_in=-300))

    @pytest.mark.asyncio
    async def test_within_leeway(self, make_token):
        token = await _verifier().verify(make_token(exp_in=-5))
        assert token.subject == "user-123"

    @pytest.mark.asyncio
    async def test_wrong_audience(self, make_token):
        with pytest.raises(Unauthorized):
            await _verifier().verify(make_token(aud="https://other.example.com"))

    @pytest.mark.asyncio
    async def test_wrong_issuer(self, make_token):
        with pytest.raises(Unauthorized):
            await _verifier().verify(make_token(iss="https://evil.example.com"))

    @pytest.mark.asyncio
    async def test_bad_signature(self):
        forged = jwt.encode(
            {"alg": "HS256"},
            {"iss": ISSUER, "aud": AUDIENCE, "exp": int(time.time()) + 60},
            "a-completely-different-secret-value",
        ).decode("ascii")
        with pytest.raises(Unauthorized):
            await _verifier().verify(forged)

    @pytest.mark.asyncio
    async def test_missing_exp(self):
        token = jwt.encode(
            {"alg": "HS256"}, {"iss": ISSUER, "aud": AUDIENCE}, SECRET
        ).decode("ascii")
        with pytest.raises(Unauthorized):
            await _verifier().verify(token)

    @pytest.mark.asyncio
    async def test_garbage(self):
        with pytest.raises(Unauthorized):
            await _verifier().verify("not-a-jwt")


@pytest.fixture(scope="module")
def rsa_key():
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


def _jwks_transport(rsa_key, calls: list[str]) -> httpx.MockTransport:
    public = rsa_key.as_dict(is_private=False)
    public["kid"] = "k1"

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/.well-known/openid-configuration":
            return httpx.Response(200, json={"issuer": ISSUER, "jwks_uri": f"{ISSUER}/jwks"})
        if request.url.path == "/jwks":
            return httpx.Response(200, json={"keys": [public]})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def _rs256_token(rsa_key, kid: str = "k1", **claims) -> str:
    payload = {
        "iss": ISSUER,
        "aud": AUDIENCE,
        "sub": "bob",
        "scope": "pizza.write",
        "exp": int(time.time()) + 60,
    }
    payload.update(claims)
    return jwt.encode({"alg": "RS256", "kid": kid}, payload, rsa_key).decode("ascii")


class TestJWKSTokenVerifier:
    @pytest.mark.asyncio
    async def test_discovers_and_caches_keys(self, rsa_key):
        calls: list[str] = []
        async with httpx.AsyncClient(transport=_jwks_transport(rsa_key, calls)) as client:
            verifier = JWKSTokenVerifier(
                issuer=ISSUER, audience=AUDIENCE, http_client=client
            )
            first = await verifier.verify(_rs256_token(rsa_key))
            second = await verifier.verify(_rs256_token(rsa_key, sub="carol"))

        assert first.subject == "bob"
        assert second.subject == "carol"
        assert calls == ["/.well-known/openid-configuration", "/jwks"]

    @pytest.mark.asyncio
    async def test_explicit_jwks_url_skips_discovery(self, rsa_key):
        calls: list[str] = []
        async with httpx.AsyncClient(transport=_jwks_transport(rsa_key, calls)) as client:
            verifier = JWKSTokenVerifier(
                issuer=ISSUER,
                audience=AUDIENCE,
                jwks_url=f"{ISSUER}/jwks",
                http_client=client,
            )
            await verifier.verify(_rs256_token(rsa_key))
        assert calls == ["/jwks"]

    @pytest.mark.asyncio
    async def test_unknown_kid_refetches_once(self, rsa_key):
        rotated = JsonWebKey.generate_key("RSA", 2048, is_private=True)
        published = [{**rsa_key.as_dict(is_private=False), "kid": "k1"}]
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(200, json={"keys": list(published)})

        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as client:
            verifier = JWKSTokenVerifier(
                issuer=ISSUER,
                audience=AUDIENCE,
                jwks_url=f"{ISSUER}/jwks",
                http_client=client,
            )
            await verifier.verify(_rs256_token(rsa_key))
            assert calls == ["/jwks"]

            # The issuer rotates to a new signing key
            published.append({**rotated.as_dict(is_private=False), "kid": "k2"})
            token = await verifier.verify(_rs256_token(rotated, kid="k2", sub="dave"))
            assert token.subject == "dave"
            assert calls == ["/jwks", "/jwks"]

            # Known keys keep using the cache
            await verifier.verify(_rs256_token(rsa_key))
            assert len(calls) == 2

            with pytest.raises(Unauthorized, match="unknown signing key 'k9'"):
                await verifier.verify(_rs256_token(rotated, kid="k9"))
            assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_key_fetch_failure_is_unauthorized(self, rsa_key):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as client:
            verifier = JWKSTokenVerifier(
                issuer=ISSUER, audience=AUDIENCE, http_client=client
            )
            with pytest.raises(Unauthorized, match="Could not load signing keys"):
                await verifier.verify(_rs256_token(rsa_key))

    @pytest.mark.asyncio
    async def test_missing_jwks_uri(self, rsa_key):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"issuer": ISSUER})
        )
        async with httpx.AsyncClient(transport=transport) as client:
            verifier = JWKSTokenVerifier(
                issuer=ISSUER, audience=AUDIENCE, http_client=client
            )
            with pytest.raises(Unauthorized, match="publishes no jwks_uri"):
                await verifier.verify(_rs256_token(rsa_key))

    @pytest.mark.asyncio
    async def test_discover_authorization_server(self, rsa_key):
        calls: list[str] = []
        async with httpx.AsyncClient(transport=_jwks_transport(rsa_key, calls)) as client:
            document = await discover_authorization_server(ISSUER + "/", client=client)
        assert document["jwks_uri"] == f"{ISSUER}/jwks"


# ── Header helpers ─────────────────────────────────────────────────────────


class TestHelpers:
    def test_parse_bearer(self):
        assert parse_bearer("Bearer abc") == "abc"
        assert parse_bearer("bearer   abc  ") == "abc"
        assert parse_bearer("Basic abc") is None
        assert parse_bearer("Bearer ") is None
        assert parse_bearer(None) is None

    def test_www_authenticate(self):
        header = www_authenticate(
            METADATA_URL,
            error="insufficient_scope",
            description='needs "write"',
            scope=["a", "b"],
        )
        assert header == (
            f'Bearer resource_metadata="{METADATA_URL}", error="insufficient_scope", '
            "error_description=\"needs 'write'\", scope=\"a b\""
        )

    def test_www_authenticate_bare(self):
        assert www_authenticate(None) == "Bearer"

    def test_protected_resource_metadata(self):
        doc = protected_resource_metadata(
            AUDIENCE, authorization_servers=[ISSUER], scopes_supported=["b", "a", "a"]
        )
        assert doc == {
            "resource": AUDIENCE,
            "authorization_servers": [ISSUER],
            "scopes_supported": ["a", "b"],
            "bearer_methods_supported": ["header"],
        }


# ── Policy ─────────────────────────────────────────────────────────────────


class TestAuthPolicy:
    @pytest.mark.asyncio
    async def test_noauth_without_token(self):
        ctx = await _policy().check([SecurityScheme.noauth()], None)
        assert ctx.anonymous

    @pytest.mark.asyncio
    async def test_noauth_with_valid_token_is_identified(self, make_token):
        ctx = await _policy().check(
            [SecurityScheme.noauth()], f"Bearer {make_token(sub='alice')}"
        )
        assert ctx.subject == "alice"

    @pytest.mark.asyncio
    async def test_oauth_only_without_token(self):
        with pytest.raises(Unauthorized) as exc_info:
            await _policy().check([SecurityScheme.oauth2("pizza.write")], None)
        challenge = exc_info.value.www_authenticate
        assert challenge.startswith("Bearer ")
        assert f'resource_metadata="{METADATA_URL}"' in challenge
        assert 'scope="pizza.write"' in challenge

    @pytest.mark.asyncio
    async def test_oauth_with_token(self, make_token):
        ctx = await _policy().check(
            [SecurityScheme.oauth2("pizza.write")], f"Bearer {make_token()}"
        )
        assert "pizza.write" in ctx.token.scopes

    @pytest.mark.asyncio
    async def test_insufficient_scope(self, make_token):
        with pytest.raises(Unauthorized) as exc_info:
            await _policy().check(
                [SecurityScheme.oauth2("pizza.admin")],
                f"Bearer {make_token(scope='pizza.write')}",
            )
        assert 'error="insufficient_scope"' in exc_info.value.www_authenticate
        assert exc_info.value.data["required_scopes"] == ["pizza.admin"]

    @pytest.mark.asyncio
    async def test_any_oauth_scheme_suffices(self, make_token):
        ctx = await _policy().check(
            [SecurityScheme.oauth2("pizza.admin"), SecurityScheme.oauth2("pizza.write")],
            f"Bearer {make_token(scope='pizza.write')}",
        )
        assert not ctx.anonymous

    @pytest.mark.asyncio
    async def test_invalid_token_fails_even_for_noauth(self, make_token):
        with pytest.raises(Unauthorized) as exc_info:
            await _policy().check(
                [SecurityScheme.noauth()], f"Bearer {make_token(exp_in=-600)}"
            )
        assert 'error="invalid_token"' in exc_info.value.www_authenticate

    @pytest.mark.asyncio
    async def test_unsupported_scheme(self):
        with pytest.raises(Unauthorized) as exc_info:
            await _policy().check([SecurityScheme.noauth()], "Basic dXNlcjpwYXNz")
        assert 'error="invalid_request"' in exc_info.value.www_authenticate

    @pytest.mark.asyncio
    async def test_token_without_verifier(self):
        policy = AuthPolicy(None, resource_metadata_url=METADATA_URL)
        with pytest.raises(Unauthorized, match="does not accept bearer tokens"):
            await policy.check([SecurityScheme.noauth()], "Bearer abc")

    @pytest.mark.asyncio
    async def test_empty_schemes_use_default(self):
        policy = _policy(default_schemes=[SecurityScheme.oauth2()])
        with pytest.raises(Unauthorized):
            await policy.check([], None)

    @pytest.mark.asyncio
    async def test_default_default_is_noauth(self):
        ctx = await _policy().check([], None)
        assert ctx.anonymous


# ── Settings ───────────────────────────────────────────────────────────────


class TestVerifierFromSettings:
    def test_no_auth(self):
        assert verifier_from_settings(AppsSettings()) is None

    def test_secret(self, settings):
        assert isinstance(verifier_from_settings(settings), JWTTokenVerifier)
        assert not isinstance(verifier_from_settings(settings), JWKSTokenVerifier)

    def test_jwks(self):
        verifier = verifier_from_settings(
            AppsSettings(
                auth_issuer=ISSUER,
                auth_audience=AUDIENCE,
                auth_jwks_url=f"{ISSUER}/jwks",
            )
        )
        assert isinstance(verifier, JWKSTokenVerifier)
        assert verifier.jwks_url == f"{ISSUER}/jwks"

    def test_incomplete(self):
        with pytest.raises(ConfigurationError):
            verifier_from_settings(AppsSettings(auth_secret=SECRET))
