from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from shared.logging import get_logger
from shared.messaging_client import DeliveryFailed, MessagingClient
from shared.schema import OutboundReply

logger = get_logger("response_dispatcher")


class DispatchMode(str, Enum):
    DELIVER = "deliver"
    BYPASS = "bypass"


@dataclass(frozen=True)
class DispatchResult:
    reply: OutboundReply
    delivered: bool
    upstream_response: Any = None


def build_reply(bot_id: str, channel_url: str, answer: str) -> OutboundReply:
    return OutboundReply(bot_userid=bot_id, channel_url=channel_url, type="message", message=answer)


class ResponseDispatcher:
    def __init__(self, client: Optional[MessagingClient]) -> None:
        self._client = client

    def dispatch(self, reply: OutboundReply, mode: DispatchMode) -> DispatchResult:
        """Deliver ``reply`` to the messaging API, or hand it back untouched in bypass mode.

        Raises ``DeliveryFailed`` when the API is not configured, unreachable,
        or answers with a non-2xx status.
        """
        if mode is DispatchMode.BYPASS:
            logger.info("reply_returned_inline", extra={"channel_url": reply.channel_url})
            return DispatchResult(reply=reply, delivered=False)

        if self._client is None:
            raise DeliveryFailed("Messaging API is not configured")

        upstream = self._client.send_reply(reply)
        logger.info(
            "reply_dispatched",
            extra={
                "bot_id": reply.bot_userid,
                "channel_url": reply.channel_url,
                "extra": {"upstream_response": upstream},
            },
        )
        return DispatchResult(reply=reply, delivered=True, upstream_response=upstream)
