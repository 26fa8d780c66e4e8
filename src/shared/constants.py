"""Shared constants used across the webhook entrypoints."""

from __future__ import annotations

CHAT_MESSAGE_ACTION = "chat_bot_message_sent"
CHAT_MESSAGE_CATEGORY = "bot_message_notification"

FALLBACK_ANSWER = "Sorry, I don't know how to respond to that."

DEFAULT_SIGNATURE_TOKEN_HEADER = "X-Signature-Token"
DEFAULT_KEY_SET_URL_CLAIM = "publicKeyUrl"
DEFAULT_BYPASS_TOKEN = "dummy-token"
DEFAULT_TENANT_HEADER = "Workvivo-Id"

DEFAULT_KEY_SET_TIMEOUT_SECONDS = 5.0
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 10.0

# Maximum length of a user utterance passed to the lookup store
MAX_UTTERANCE_LENGTH = 2000
