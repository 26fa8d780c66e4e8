import jwt
import pytest

from conftest import KEY_SET_URL, FakeResponse, FakeSession, public_jwk, sign_token
from shared.key_resolver import KeyResolver
from shared.token_verifier import (
    KeyResolutionFailed,
    MalformedToken,
    MissingToken,
    SignatureInvalid,
    TokenVerifier,
    VerifierConfig,
)


def _verifier(session: FakeSession, **config) -> TokenVerifier:
    return TokenVerifier(VerifierConfig(**config), KeyResolver(session=session))


def test_verify_valid_token_returns_claims(private_key, key_set_session) -> None:
    token = sign_token(private_key, claims={"sub": "workvivo"})

    verified = _verifier(key_set_session).verify(token)

    assert verified.bypassed is False
    assert verified.claims["sub"] == "workvivo"
    assert key_set_session.get_calls[0]["url"] == KEY_SET_URL


@pytest.mark.parametrize("token", [None, "", "   "])
def test_verify_missing_token(token, key_set_session) -> None:
    with pytest.raises(MissingToken):
        _verifier(key_set_session).verify(token)


def test_bypass_sentinel_skips_key_fetch_when_enabled(key_set_session) -> None:
    verifier = _verifier(key_set_session, bypass_enabled=True, bypass_token="dummy-token")

    verified = verifier.verify("dummy-token")

    assert verified.bypassed is True
    assert verified.claims == {}
    assert key_set_session.get_calls == []


def test_bypass_sentinel_rejected_when_disabled(key_set_session) -> None:
    verifier = _verifier(key_set_session, bypass_enabled=False, bypass_token="dummy-token")

    with pytest.raises(MalformedToken):
        verifier.verify("dummy-token")
    assert key_set_session.get_calls == []


def test_bypass_requires_sentinel_value() -> None:
    with pytest.raises(ValueError):
        _verifier(FakeSession(), bypass_enabled=True, bypass_token="")


def test_verify_token_without_kid_is_malformed(private_key, key_set_session) -> None:
    token = sign_token(private_key, kid=None)

    with pytest.raises(MalformedToken):
        _verifier(key_set_session).verify(token)


def test_verify_token_without_key_set_location_is_malformed(private_key, key_set_session) -> None:
    token = sign_token(private_key, key_set_url=None)

    with pytest.raises(MalformedToken):
        _verifier(key_set_session).verify(token)


def test_unknown_key_id_fails_key_resolution_not_signature(private_key, key_set_session) -> None:
    token = sign_token(private_key, kid="unknown-kid")

    with pytest.raises(KeyResolutionFailed):
        _verifier(key_set_session).verify(token)


def test_unreachable_key_set_fails_key_resolution(private_key, connection_error) -> None:
    session = FakeSession(get_responses=[connection_error])

    with pytest.raises(KeyResolutionFailed):
        _verifier(session).verify(sign_token(private_key))


def test_token_signed_by_other_key_is_invalid(other_private_key, key_set_session) -> None:
    token = sign_token(other_private_key)

    with pytest.raises(SignatureInvalid):
        _verifier(key_set_session).verify(token)


def test_expired_token_is_invalid(private_key, key_set_session) -> None:
    token = sign_token(private_key, expires_in=-60)

    with pytest.raises(SignatureInvalid):
        _verifier(key_set_session).verify(token)


def test_hmac_downgrade_is_rejected(key_set_session) -> None:
    token = jwt.encode(
        {"publicKeyUrl": KEY_SET_URL},
        "a-shared-secret-that-is-long-enough-for-hs256",
        algorithm="HS256",
        headers={"kid": "key-1"},
    )

    with pytest.raises(SignatureInvalid):
        _verifier(key_set_session).verify(token)


def test_unknown_key_id_is_reported_before_disallowed_algorithm(key_set_session) -> None:
    token = jwt.encode(
        {"publicKeyUrl": KEY_SET_URL},
        "a-shared-secret-that-is-long-enough-for-hs256",
        algorithm="HS256",
        headers={"kid": "unknown-kid"},
    )

    with pytest.raises(KeyResolutionFailed):
        _verifier(key_set_session).verify(token)
    assert len(key_set_session.get_calls) == 1


def test_pinned_key_set_url_overrides_claim(private_key) -> None:
    pinned = "https://pinned.example.com/jwks.json"
    session = FakeSession(get_responses=[FakeResponse(200, {"keys": [public_jwk(private_key, "key-1")]})])
    token = sign_token(private_key, key_set_url="https://attacker.example.net/jwks.json")

    _verifier(session, key_set_url=pinned).verify(token)

    assert [call["url"] for call in session.get_calls] == [pinned]


def test_pinned_key_set_url_allows_tokens_without_location_claim(private_key) -> None:
    pinned = "https://pinned.example.com/jwks.json"
    session = FakeSession(get_responses=[FakeResponse(200, {"keys": [public_jwk(private_key, "key-1")]})])

    verified = _verifier(session, key_set_url=pinned).verify(sign_token(private_key, key_set_url=None))

    assert verified.bypassed is False


def test_claim_host_outside_allow_list_is_rejected(private_key, key_set_session) -> None:
    token = sign_token(private_key, key_set_url="https://attacker.example.net/jwks.json")
    verifier = _verifier(key_set_session, allowed_key_set_hosts=frozenset({"keys.example.com"}))

    with pytest.raises(MalformedToken):
        verifier.verify(token)
    assert key_set_session.get_calls == []


def test_audience_is_checked_when_configured(private_key, key_set_session) -> None:
    token = sign_token(private_key, claims={"aud": "someone-else"})

    with pytest.raises(SignatureInvalid):
        _verifier(key_set_session, audience="faq-bot").verify(token)


def test_audience_claim_ignored_when_not_configured(private_key, key_set_session) -> None:
    token = sign_token(private_key, claims={"aud": "anything"})

    verified = _verifier(key_set_session).verify(token)

    assert verified.claims["aud"] == "anything"


def test_garbage_token_is_malformed(key_set_session) -> None:
    with pytest.raises(MalformedToken):
        _verifier(key_set_session).verify("not-a-jwt")
