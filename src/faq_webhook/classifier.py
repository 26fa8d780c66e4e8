from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from shared.constants import CHAT_MESSAGE_ACTION, CHAT_MESSAGE_CATEGORY
from shared.schema import parse_inbound_event


class MalformedPayload(ValueError):
    pass


@dataclass(frozen=True)
class Actionable:
    text: str
    normalized_text: str
    bot_id: str
    channel_url: str


@dataclass(frozen=True)
class Ignored:
    reason: str


Classification = Union[Actionable, Ignored]


def normalize_utterance(text: str) -> str:
    return text.strip().casefold()


def classify_event(payload: Any) -> Classification:
    """Decide whether a webhook body is a chat message the bot should answer.

    Non-chat events are expected traffic and come back as ``Ignored``. Only a
    chat message that cannot be answered (no bot or channel to reply to)
    raises ``MalformedPayload``.
    """
    try:
        event = parse_inbound_event(payload)
    except ValueError as exc:
        raise MalformedPayload(str(exc)) from exc

    if event.action != CHAT_MESSAGE_ACTION or event.category != CHAT_MESSAGE_CATEGORY:
        return Ignored(reason="non_message_action")

    text = (event.message.text or "").strip()
    if not text:
        return Ignored(reason="empty_message_text")

    bot_id = (event.bot.bot_userid or "").strip()
    channel_url = (event.channel.channel_url or "").strip()
    if not bot_id or not channel_url:
        raise MalformedPayload("Chat message is missing bot.bot_userid or channel.channel_url")

    return Actionable(
        text=text,
        normalized_text=normalize_utterance(text),
        bot_id=bot_id,
        channel_url=channel_url,
    )
