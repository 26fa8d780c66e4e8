from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any

import jwt
import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from shared.faq_store import create_faq_db
from shared.schema import FAQRecord

KEY_SET_URL = "https://keys.example.com/.well-known/jwks.json"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload


class FakeSession:
    """Stands in for requests.Session; replays queued responses or exceptions."""

    def __init__(self, get_responses: list | None = None, post_responses: list | None = None) -> None:
        self.get_responses = list(get_responses or [])
        self.post_responses = list(post_responses or [])
        self.get_calls: list[dict[str, Any]] = []
        self.post_calls: list[dict[str, Any]] = []

    @staticmethod
    def _next(queue: list) -> Any:
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.get_calls.append({"url": url, **kwargs})
        return self._next(self.get_responses)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.post_calls.append({"url": url, **kwargs})
        return self._next(self.post_responses)


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_jwk(key: rsa.RSAPrivateKey, kid: str) -> dict[str, Any]:
    jwk = json.loads(RSAAlgorithm.to_jwk(key.public_key()))
    jwk.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return jwk


def sign_token(
    key: rsa.RSAPrivateKey,
    kid: str | None = "key-1",
    claims: dict[str, Any] | None = None,
    key_set_url: str | None = KEY_SET_URL,
    expires_in: int = 300,
) -> str:
    now = int(time.time())
    payload: dict[str, Any] = {"iat": now, "exp": now + expires_in}
    if key_set_url is not None:
        payload["publicKeyUrl"] = key_set_url
    payload.update(claims or {})
    headers = {"kid": kid} if kid is not None else {}
    return jwt.encode(payload, key, algorithm="RS256", headers=headers)


@pytest.fixture
def key_set_session(private_key) -> FakeSession:
    return FakeSession(get_responses=[FakeResponse(200, {"keys": [public_jwk(private_key, "key-1")]})])


@pytest.fixture
def faq_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "faq.db"
    create_faq_db(
        db_path,
        [
            FAQRecord(question="what is the wifi password", answer="Ask IT."),
            FAQRecord(question="How do I reset my password", answer="Use the self-service portal."),
            FAQRecord(question="reset password for email", answer="Contact the help desk."),
            FAQRecord(question="Où est la cantine", answer="Au rez-de-chaussée."),
        ],
    )
    return db_path


@pytest.fixture
def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")
