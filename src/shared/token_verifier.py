from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

import jwt

from shared.constants import DEFAULT_BYPASS_TOKEN, DEFAULT_KEY_SET_URL_CLAIM
from shared.key_resolver import KeyResolutionError, KeyResolver
from shared.logging import get_logger

logger = get_logger("token_verifier")

# JWK key type each asymmetric algorithm family requires.
_ALGORITHM_KEY_TYPES = {
    "RS256": "RSA",
    "RS384": "RSA",
    "RS512": "RSA",
    "PS256": "RSA",
    "PS384": "RSA",
    "PS512": "RSA",
    "ES256": "EC",
    "ES384": "EC",
    "ES512": "EC",
    "EdDSA": "OKP",
}


class TokenVerificationError(Exception):
    pass


class MissingToken(TokenVerificationError):
    pass


class MalformedToken(TokenVerificationError):
    pass


class KeyResolutionFailed(TokenVerificationError):
    pass


class SignatureInvalid(TokenVerificationError):
    pass


@dataclass(frozen=True)
class VerifierConfig:
    bypass_enabled: bool = False
    bypass_token: str = DEFAULT_BYPASS_TOKEN
    key_set_url: Optional[str] = None
    key_set_url_claim: str = DEFAULT_KEY_SET_URL_CLAIM
    allowed_key_set_hosts: frozenset[str] = frozenset()
    algorithms: tuple[str, ...] = ("RS256",)
    audience: Optional[str] = None
    issuer: Optional[str] = None


@dataclass(frozen=True)
class VerifiedToken:
    claims: dict[str, Any] = field(default_factory=dict)
    bypassed: bool = False


class TokenVerifier:
    def __init__(self, config: VerifierConfig, key_resolver: KeyResolver) -> None:
        unsupported = [alg for alg in config.algorithms if alg not in _ALGORITHM_KEY_TYPES]
        if unsupported:
            raise ValueError(f"Unsupported token algorithms: {', '.join(unsupported)}")
        if config.bypass_enabled and not config.bypass_token:
            raise ValueError("bypass_token must be set when bypass is enabled")
        self._config = config
        self._keys = key_resolver

    def _key_set_location(self, claims: dict[str, Any]) -> str:
        claimed = claims.get(self._config.key_set_url_claim)
        claimed = claimed.strip() if isinstance(claimed, str) else ""
        pinned = self._config.key_set_url

        if pinned:
            if claimed and claimed != pinned:
                logger.warning(
                    "key_set_location_mismatch",
                    extra={"extra": {"claimed_location": claimed, "pinned_location": pinned}},
                )
            return pinned

        if not claimed:
            raise MalformedToken(f"Token claims have no {self._config.key_set_url_claim!r}")

        parsed = urlparse(claimed)
        if parsed.scheme not in {"https", "http"} or not parsed.hostname:
            raise MalformedToken("Key set location is not an http(s) URL")
        allowed = self._config.allowed_key_set_hosts
        if allowed and parsed.hostname.lower() not in allowed:
            raise MalformedToken(f"Key set host {parsed.hostname!r} is not allowed")

        logger.warning(
            "key_set_location_from_unverified_claims",
            extra={"extra": {"claimed_location": claimed}},
        )
        return claimed

    def verify(self, token: Optional[str]) -> VerifiedToken:
        token = (token or "").strip()
        if not token:
            raise MissingToken("Signature token is missing")

        if self._config.bypass_enabled and token == self._config.bypass_token:
            logger.warning("token_verification_bypassed")
            return VerifiedToken(claims={}, bypassed=True)

        try:
            header = jwt.get_unverified_header(token)
            unverified_claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise MalformedToken(f"Token could not be decoded: {exc}") from exc

        key_id = header.get("kid")
        if not isinstance(key_id, str) or not key_id:
            raise MalformedToken("Token header has no key id")
        location = self._key_set_location(unverified_claims)

        try:
            key = self._keys.resolve(key_id, location)
        except KeyResolutionError as exc:
            raise KeyResolutionFailed(str(exc)) from exc

        algorithm = header.get("alg")
        if algorithm not in self._config.algorithms:
            raise SignatureInvalid(f"Token algorithm {algorithm!r} is not allowed")
        if key.key_type != _ALGORITHM_KEY_TYPES[algorithm]:
            raise SignatureInvalid(f"Key {key_id!r} cannot verify {algorithm} tokens")

        try:
            claims = jwt.decode(
                token,
                key.key,
                algorithms=[algorithm],
                audience=self._config.audience,
                issuer=self._config.issuer,
                options={"verify_aud": self._config.audience is not None},
            )
        except jwt.PyJWTError as exc:
            raise SignatureInvalid(str(exc)) from exc

        logger.info("token_verified", extra={"key_id": key_id})
        return VerifiedToken(claims=claims, bypassed=False)
