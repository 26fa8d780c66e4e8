from __future__ import annotations

import base64
import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from faq_webhook.answers import AnswerResolver, matcher_for_mode
from faq_webhook.classifier import Ignored, MalformedPayload, classify_event
from faq_webhook.config import Settings
from faq_webhook.dispatcher import DispatchMode, ResponseDispatcher, build_reply
from shared.audit_log import AuditLog
from shared.constants import DEFAULT_SIGNATURE_TOKEN_HEADER
from shared.faq_store import FaqStore
from shared.key_resolver import KeyResolver
from shared.logging import get_logger
from shared.messaging_client import DeliveryFailed, MessagingClient, SecretTokenProvider
from shared.retry import RetryConfig
from shared.token_verifier import MissingToken, TokenVerificationError, TokenVerifier

logger = get_logger("faq_webhook")


class PipelineState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    CLASSIFIED = "classified"
    RESOLVED = "resolved"
    DISPATCHED = "dispatched"
    UNAUTHORIZED = "unauthorized"
    REJECTED = "rejected"
    IGNORED = "ignored"
    DELIVERY_FAILED = "delivery_failed"


_STATUS_BY_STATE = {
    PipelineState.UNAUTHORIZED: 401,
    PipelineState.REJECTED: 400,
    PipelineState.IGNORED: 200,
    PipelineState.DISPATCHED: 200,
    PipelineState.DELIVERY_FAILED: 500,
}


@dataclass(frozen=True)
class PipelineResult:
    state: PipelineState
    payload: dict[str, Any]

    @property
    def status_code(self) -> int:
        return _STATUS_BY_STATE[self.state]


def _get_header(headers: Mapping[str, str], key: str) -> str | None:
    target = key.lower()
    for k, v in (headers or {}).items():
        if str(k).lower() == target:
            return v
    return None


def _parse_token(value: str | None) -> str:
    token = (value or "").strip()
    parts = token.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return token


class WebhookPipeline:
    """Verify, classify, answer and dispatch one webhook request.

    Every stage either advances the request or ends it in a terminal state;
    nothing is retried here and no state is kept between requests.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        answers: AnswerResolver,
        dispatcher: ResponseDispatcher,
        audit_log: Optional[AuditLog] = None,
        token_header: str = DEFAULT_SIGNATURE_TOKEN_HEADER,
    ) -> None:
        self._verifier = verifier
        self._answers = answers
        self._dispatcher = dispatcher
        self._audit_log = audit_log
        self._token_header = token_header

    def handle(self, headers: Mapping[str, str], raw_body: bytes, request_id: str = "") -> PipelineResult:
        log = logger.bind(request_id=request_id or str(uuid.uuid4()))
        log.info("webhook_received", extra={"stage": PipelineState.RECEIVED.value})

        if self._audit_log is not None:
            self._audit_log.record(headers, raw_body, request_id=request_id)

        token = _parse_token(_get_header(headers, self._token_header))
        try:
            verified = self._verifier.verify(token)
        except MissingToken:
            log.warning("token_missing", extra={"stage": PipelineState.UNAUTHORIZED.value})
            return PipelineResult(PipelineState.UNAUTHORIZED, {"error": "Missing token"})
        except TokenVerificationError as exc:
            log.warning(
                "token_verification_failed",
                extra={"stage": PipelineState.UNAUTHORIZED.value, "extra": {"reason": type(exc).__name__, "detail": str(exc)}},
            )
            return PipelineResult(PipelineState.UNAUTHORIZED, {"error": "Invalid token"})

        try:
            body = json.loads(raw_body.decode("utf-8") if raw_body else "")
            classification = classify_event(body)
        except (UnicodeDecodeError, json.JSONDecodeError, MalformedPayload) as exc:
            log.warning(
                "payload_rejected",
                extra={"stage": PipelineState.REJECTED.value, "extra": {"detail": str(exc)}},
            )
            return PipelineResult(PipelineState.REJECTED, {"error": "Malformed payload"})

        if isinstance(classification, Ignored):
            log.info("event_ignored", extra={"stage": PipelineState.IGNORED.value, "extra": {"reason": classification.reason}})
            return PipelineResult(PipelineState.IGNORED, {"success": True, "ignored": classification.reason})

        log = log.bind(bot_id=classification.bot_id, channel_url=classification.channel_url)
        log.info("chat_message_classified", extra={"stage": PipelineState.CLASSIFIED.value, "extra": {"text": classification.text}})

        answer = self._answers.resolve(classification.normalized_text)
        reply = build_reply(classification.bot_id, classification.channel_url, answer)
        log.info("answer_resolved", extra={"stage": PipelineState.RESOLVED.value})

        mode = DispatchMode.BYPASS if verified.bypassed else DispatchMode.DELIVER
        try:
            result = self._dispatcher.dispatch(reply, mode)
        except DeliveryFailed as exc:
            log.error(
                "reply_delivery_failed",
                extra={
                    "stage": PipelineState.DELIVERY_FAILED.value,
                    "status_code": exc.status_code,
                    "extra": {"detail": str(exc), "upstream_body": exc.body},
                },
            )
            return PipelineResult(PipelineState.DELIVERY_FAILED, {"error": "Failed to send response"})

        log.info("webhook_completed", extra={"stage": PipelineState.DISPATCHED.value})
        if not result.delivered:
            return PipelineResult(PipelineState.DISPATCHED, result.reply.model_dump())
        return PipelineResult(PipelineState.DISPATCHED, {"success": True})


def build_pipeline(settings: Settings) -> WebhookPipeline:
    key_resolver = KeyResolver(
        timeout_seconds=settings.key_set_timeout_seconds,
        cache_ttl_seconds=settings.key_cache_ttl_seconds,
    )
    verifier = TokenVerifier(settings.verifier_config(), key_resolver)

    store = FaqStore(settings.faq_db_path)
    answers = AnswerResolver(store, matcher_for_mode(settings.answer_match_mode))

    client = None
    if settings.messaging_api_url:
        client = MessagingClient(
            api_url=settings.messaging_api_url,
            token_provider=SecretTokenProvider(
                secret_arn=settings.messaging_api_token_secret_arn,
                fallback_token=settings.messaging_api_token,
            ),
            tenant_id=settings.messaging_tenant_id,
            tenant_header=settings.messaging_tenant_header,
            timeout_seconds=settings.dispatch_timeout_seconds,
            retry_config=RetryConfig(max_attempts=settings.dispatch_max_attempts),
        )
    else:
        logger.warning("messaging_api_not_configured")

    audit_log = None
    if settings.audit_log_path:
        audit_log = AuditLog(settings.audit_log_path, redact_headers=[settings.signature_token_header])

    if settings.bypass_enabled:
        logger.warning("token_bypass_enabled")
    if not settings.key_set_url:
        logger.warning("key_set_url_not_pinned")

    return WebhookPipeline(
        verifier=verifier,
        answers=answers,
        dispatcher=ResponseDispatcher(client),
        audit_log=audit_log,
        token_header=settings.signature_token_header,
    )


_pipeline: WebhookPipeline | None = None


def _get_pipeline() -> WebhookPipeline:
    global _pipeline  # noqa: PLW0603
    if _pipeline is None:
        _pipeline = build_pipeline(Settings.from_env())
    return _pipeline


def _extract_raw_body(event: dict[str, Any]) -> bytes:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8")


def _response(status_code: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(payload),
    }


def lambda_handler(event: dict[str, Any], _context: Any) -> dict[str, Any]:
    request_context = event.get("requestContext") or {}
    method = (request_context.get("http") or {}).get("method") or event.get("httpMethod") or "POST"
    if method.upper() != "POST":
        return _response(405, {"error": "method_not_allowed"})

    request_id = str(request_context.get("requestId") or uuid.uuid4())
    headers = event.get("headers") or {}
    try:
        result = _get_pipeline().handle(headers, _extract_raw_body(event), request_id=request_id)
    except Exception:  # noqa: BLE001
        logger.exception("webhook_unhandled_error", extra={"request_id": request_id})
        return _response(500, {"error": "internal_error"})

    return _response(result.status_code, result.payload)
