from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from shared.constants import (
    DEFAULT_BYPASS_TOKEN,
    DEFAULT_DISPATCH_TIMEOUT_SECONDS,
    DEFAULT_KEY_SET_TIMEOUT_SECONDS,
    DEFAULT_KEY_SET_URL_CLAIM,
    DEFAULT_SIGNATURE_TOKEN_HEADER,
    DEFAULT_TENANT_HEADER,
)
from shared.token_verifier import VerifierConfig

ALLOWED_MATCH_MODES = {"exact", "contains"}


def _get(env: Mapping[str, str], name: str, default: str = "") -> str:
    return (env.get(name) or default).strip()


def _flag(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = _get(env, name)
    if not raw:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _csv(env: Mapping[str, str], name: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in _get(env, name).split(",") if item.strip())


def _number(env: Mapping[str, str], name: str, default: float, positive: bool = False) -> float:
    raw = _get(env, name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    if positive and value == 0:
        raise ValueError(f"{name} must be greater than zero")
    return value


@dataclass(frozen=True)
class Settings:
    port: int = 10000
    messaging_api_url: str = ""
    messaging_api_token: str = ""
    messaging_api_token_secret_arn: str = ""
    messaging_tenant_id: str = ""
    messaging_tenant_header: str = DEFAULT_TENANT_HEADER
    faq_db_path: str = "db/faq.db"
    answer_match_mode: str = "exact"
    bypass_enabled: bool = False
    bypass_token: str = DEFAULT_BYPASS_TOKEN
    signature_token_header: str = DEFAULT_SIGNATURE_TOKEN_HEADER
    key_set_url: Optional[str] = None
    key_set_url_claim: str = DEFAULT_KEY_SET_URL_CLAIM
    key_set_allowed_hosts: tuple[str, ...] = ()
    token_algorithms: tuple[str, ...] = ("RS256",)
    token_audience: Optional[str] = None
    token_issuer: Optional[str] = None
    key_cache_ttl_seconds: float = 0
    key_set_timeout_seconds: float = DEFAULT_KEY_SET_TIMEOUT_SECONDS
    dispatch_timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS
    dispatch_max_attempts: int = 1
    audit_log_path: str = "log/webhook.log"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        match_mode = _get(env, "ANSWER_MATCH_MODE", "exact").lower()
        if match_mode not in ALLOWED_MATCH_MODES:
            raise ValueError(f"ANSWER_MATCH_MODE must be one of {sorted(ALLOWED_MATCH_MODES)}, got {match_mode!r}")

        max_attempts = int(_number(env, "DISPATCH_MAX_ATTEMPTS", 1))
        if max_attempts < 1:
            raise ValueError("DISPATCH_MAX_ATTEMPTS must be at least 1")

        audit_log_path = env.get("AUDIT_LOG_PATH")
        return cls(
            port=int(_number(env, "PORT", 10000)),
            messaging_api_url=_get(env, "MESSAGING_API_URL"),
            messaging_api_token=_get(env, "MESSAGING_API_TOKEN"),
            messaging_api_token_secret_arn=_get(env, "MESSAGING_API_TOKEN_SECRET_ARN"),
            messaging_tenant_id=_get(env, "MESSAGING_TENANT_ID"),
            messaging_tenant_header=_get(env, "MESSAGING_TENANT_HEADER", DEFAULT_TENANT_HEADER),
            faq_db_path=_get(env, "FAQ_DB_PATH", "db/faq.db"),
            answer_match_mode=match_mode,
            bypass_enabled=_flag(env, "BYPASS_ENABLED"),
            bypass_token=_get(env, "BYPASS_TOKEN", DEFAULT_BYPASS_TOKEN),
            signature_token_header=_get(env, "SIGNATURE_TOKEN_HEADER", DEFAULT_SIGNATURE_TOKEN_HEADER),
            key_set_url=_get(env, "KEY_SET_URL") or None,
            key_set_url_claim=_get(env, "KEY_SET_URL_CLAIM", DEFAULT_KEY_SET_URL_CLAIM),
            key_set_allowed_hosts=tuple(host.lower() for host in _csv(env, "KEY_SET_ALLOWED_HOSTS")),
            token_algorithms=_csv(env, "TOKEN_ALGORITHMS") or ("RS256",),
            token_audience=_get(env, "TOKEN_AUDIENCE") or None,
            token_issuer=_get(env, "TOKEN_ISSUER") or None,
            key_cache_ttl_seconds=_number(env, "KEY_CACHE_TTL_SECONDS", 0),
            key_set_timeout_seconds=_number(env, "KEY_SET_TIMEOUT_SECONDS", DEFAULT_KEY_SET_TIMEOUT_SECONDS, positive=True),
            dispatch_timeout_seconds=_number(env, "DISPATCH_TIMEOUT_SECONDS", DEFAULT_DISPATCH_TIMEOUT_SECONDS, positive=True),
            dispatch_max_attempts=max_attempts,
            # An explicitly empty AUDIT_LOG_PATH disables the audit log.
            audit_log_path="log/webhook.log" if audit_log_path is None else audit_log_path.strip(),
        )

    def verifier_config(self) -> VerifierConfig:
        return VerifierConfig(
            bypass_enabled=self.bypass_enabled,
            bypass_token=self.bypass_token,
            key_set_url=self.key_set_url,
            key_set_url_claim=self.key_set_url_claim,
            allowed_key_set_hosts=frozenset(self.key_set_allowed_hosts),
            algorithms=self.token_algorithms,
            audience=self.token_audience,
            issuer=self.token_issuer,
        )
