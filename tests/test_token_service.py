import jwt
import pytest

from ticket_auth.application.services.token_service import TokenPurpose, TokenService
from ticket_auth.db.models import Account, AuthProvider, AuthType, UserRole
from ticket_auth.exceptions import InvalidToken


def _account():
    return Account(
        id="acc-1",
        external_uid="uid-1",
        email="alice@example.com",
        role=UserRole.BUSINESS,
        auth_type=AuthType.FEDERATED,
        provider=AuthProvider.GOOGLE,
    )


def test_secrets_must_differ():
    with pytest.raises(ValueError):
        TokenService(access_secret="same", refresh_secret="same")


def test_mint_and_verify_round_trip(tokens):
    pair = tokens.mint(_account())

    access = tokens.verify(pair.access_token, TokenPurpose.ACCESS)
    assert access.account_id == "acc-1"
    assert access.uid == "uid-1"
    assert access.role == "business"
    assert access.provider == "google"
    assert access.expires_at - access.issued_at == 3600

    refresh = tokens.verify(pair.refresh_token, TokenPurpose.REFRESH)
    assert refresh.account_id == "acc-1"
    assert refresh.purpose == TokenPurpose.REFRESH
    assert refresh.provider is None


def test_tokens_minted_back_to_back_differ(tokens):
    account = _account()
    first = tokens.mint(account)
    second = tokens.mint(account)
    assert first.access_token != second.access_token
    assert first.refresh_token != second.refresh_token


def test_refresh_token_is_not_an_access_token(tokens):
    pair = tokens.mint(_account())
    with pytest.raises(InvalidToken):
        tokens.verify(pair.refresh_token, TokenPurpose.ACCESS)
    with pytest.raises(InvalidToken):
        tokens.verify(pair.access_token, TokenPurpose.REFRESH)


def test_purpose_claim_is_checked_even_with_matching_secret(tokens):
    forged = jwt.encode(
        {"sub": "acc-1", "type": "refresh", "iat": 1, "exp": 4102444800},
        "test-access-secret",
        algorithm="HS256",
    )
    with pytest.raises(InvalidToken):
        tokens.verify(forged, TokenPurpose.ACCESS)


def test_expired_token_rejected():
    service = TokenService(access_secret="a-secret", refresh_secret="r-secret", access_ttl_seconds=-10)
    pair = service.mint(_account())
    with pytest.raises(InvalidToken):
        service.verify(pair.access_token, TokenPurpose.ACCESS)


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_token_rejected(tokens, token):
    with pytest.raises(InvalidToken):
        tokens.verify(token, TokenPurpose.ACCESS)


def test_missing_required_claim_rejected(tokens):
    token = jwt.encode({"sub": "acc-1", "exp": 4102444800}, "test-access-secret", algorithm="HS256")
    with pytest.raises(InvalidToken):
        tokens.verify(token, TokenPurpose.ACCESS)


def test_from_settings_uses_configured_lifetimes(test_settings):
    service = TokenService.from_settings(test_settings)
    assert service.access_ttl_seconds == 3600
    assert service.refresh_ttl_seconds == 7 * 24 * 3600
