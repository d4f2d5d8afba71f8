import httpx
import pytest

from ticket_auth.exceptions import InvalidFederatedToken, ProviderUnavailable
from ticket_auth.infrastructure.identity.firebase_provider import (
    FirebaseIdentityProvider,
    determine_provider,
    normalize_claims,
)


def _provider(test_settings, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FirebaseIdentityProvider(test_settings, client)


@pytest.mark.asyncio
async def test_verify_normalizes_lookup_response(test_settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.url.params["key"]
        seen["body"] = request.content
        return httpx.Response(200, json={"users": [{
            "localId": "uid-1",
            "email": "alice@example.com",
            "emailVerified": True,
            "displayName": "Alice",
            "photoUrl": "http://img",
            "providerUserInfo": [{"providerId": "google.com"}],
        }]})

    identity = await _provider(test_settings, handler).verify("raw-token")

    assert seen["key"] == "test-api-key"
    assert b'"idToken":"raw-token"' in seen["body"].replace(b" ", b"")
    assert identity.uid == "uid-1"
    assert identity.email_verified is True
    assert identity.name == "Alice"
    assert identity.picture == "http://img"
    assert identity.provider == "google.com"


@pytest.mark.asyncio
async def test_client_error_means_invalid_token(test_settings):
    handler = lambda request: httpx.Response(400, json={"error": {"message": "INVALID_ID_TOKEN"}})
    with pytest.raises(InvalidFederatedToken):
        await _provider(test_settings, handler).verify("bad")


@pytest.mark.asyncio
async def test_empty_users_means_invalid_token(test_settings):
    handler = lambda request: httpx.Response(200, json={"users": []})
    with pytest.raises(InvalidFederatedToken):
        await _provider(test_settings, handler).verify("bad")


@pytest.mark.asyncio
async def test_server_error_means_provider_unavailable(test_settings):
    handler = lambda request: httpx.Response(503)
    with pytest.raises(ProviderUnavailable):
        await _provider(test_settings, handler).verify("tok")


@pytest.mark.asyncio
async def test_timeout_means_provider_unavailable(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderUnavailable):
        await _provider(test_settings, handler).verify("tok")


@pytest.mark.asyncio
async def test_revoke_without_admin_app_is_noop(test_settings):
    provider = _provider(test_settings, lambda request: httpx.Response(200))
    await provider.revoke_sessions("uid-1")


def test_determine_provider_from_decoded_token_claims():
    assert determine_provider({"firebase": {"sign_in_provider": "facebook.com"}}) == "facebook.com"
    assert determine_provider({"firebase": {"identities": {"google.com": ["123"]}}}) == "google.com"
    assert determine_provider({}) == "federated"


def test_normalize_claims_requires_subject():
    with pytest.raises(InvalidFederatedToken):
        normalize_claims({"email": "x@example.com"})
