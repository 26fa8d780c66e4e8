from __future__ import annotations

import os
from typing import Any, Callable, Optional

import boto3
import requests
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from shared.constants import DEFAULT_DISPATCH_TIMEOUT_SECONDS, DEFAULT_TENANT_HEADER
from shared.retry import RetryConfig, call_with_retry
from shared.schema import OutboundReply


class DeliveryFailed(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _retryable_status(response: requests.Response) -> bool:
    return response.status_code == 429 or response.status_code >= 500


class SecretTokenProvider:
    """Loads the messaging API token from Secrets Manager or env var, with caching."""

    def __init__(
        self,
        secret_arn: str = "",
        fallback_token: str = "",
        secrets_client: Optional[BaseClient] = None,
    ) -> None:
        self._secret_arn = secret_arn.strip()
        self._fallback_token = fallback_token.strip()
        self._secrets = secrets_client
        self._cached_token: Optional[str] = None

    def __call__(self) -> str:
        if self._cached_token is not None:
            return self._cached_token

        if self._secret_arn:
            client = self._secrets or boto3.client("secretsmanager")
            resp = client.get_secret_value(SecretId=self._secret_arn)
            token = (resp.get("SecretString") or "").strip()
            if not token:
                raise ValueError(f"Secret {self._secret_arn} has no SecretString")
            self._cached_token = token
        else:
            self._cached_token = self._fallback_token or os.getenv("MESSAGING_API_TOKEN", "").strip()
        return self._cached_token


class MessagingClient:
    def __init__(
        self,
        api_url: str,
        token_provider: Callable[[], str],
        tenant_id: str,
        tenant_header: str = DEFAULT_TENANT_HEADER,
        timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_url:
            raise ValueError("api_url is required")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        self._api_url = api_url
        self._token_provider = token_provider
        self._tenant_id = tenant_id
        self._tenant_header = tenant_header
        self._timeout = timeout_seconds
        self._retry_config = retry_config or RetryConfig()
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token_provider()}",
            self._tenant_header: self._tenant_id,
            "Content-Type": "application/json",
        }

    def send_reply(self, reply: OutboundReply) -> Any:
        """POST the reply and return the decoded response body (or raw text)."""
        payload = reply.model_dump()

        def _do_request() -> requests.Response:
            return self._session.post(
                self._api_url,
                json=payload,
                headers=self._headers(),
                timeout=self._timeout,
            )

        try:
            response = call_with_retry(
                "messaging_send_reply",
                _do_request,
                is_retryable_exception=lambda exc: isinstance(exc, requests.RequestException),
                is_retryable_result=_retryable_status,
                config=self._retry_config,
            )
        except requests.RequestException as exc:
            raise DeliveryFailed(f"Messaging API request failed: {exc}") from exc
        except (BotoCoreError, ClientError, ValueError) as exc:
            raise DeliveryFailed(f"Messaging API token unavailable: {exc}") from exc

        if not _is_success(response.status_code):
            raise DeliveryFailed(
                f"Messaging API returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=(response.text or "")[:1000],
            )

        try:
            return response.json()
        except ValueError:
            return response.text
