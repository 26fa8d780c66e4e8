from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class EventMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None

    @field_validator("text", mode="before")
    @classmethod
    def drop_non_string_text(cls, value: Any) -> Optional[str]:
        # Upstream occasionally sends attachments with a structured text field.
        return value if isinstance(value, str) else None


class EventBot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bot_userid: Optional[str] = None

    @field_validator("bot_userid", mode="before")
    @classmethod
    def coerce_numeric_id(cls, value: Any) -> Optional[str]:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value if isinstance(value, str) else None


class EventChannel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    channel_url: Optional[str] = None

    @field_validator("channel_url", mode="before")
    @classmethod
    def drop_non_string_url(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None


class InboundEvent(BaseModel):
    """Webhook body posted by the chat platform."""

    model_config = ConfigDict(extra="ignore")

    action: Optional[str] = None
    category: Optional[str] = None
    message: EventMessage = EventMessage()
    bot: EventBot = EventBot()
    channel: EventChannel = EventChannel()

    @field_validator("action", "category", mode="before")
    @classmethod
    def drop_non_string_kind(cls, value: Any) -> Optional[str]:
        # Anything but a string can never name a chat message event.
        return value if isinstance(value, str) else None

    @field_validator("message", "bot", "channel", mode="before")
    @classmethod
    def default_missing_sections(cls, value: Any) -> Any:
        # Non-chat events carry these sections as null or in other shapes.
        return value if isinstance(value, dict) else {}


class FAQRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    question: str
    answer: str


class OutboundReply(BaseModel):
    """Reply envelope accepted by the messaging API.

    ``message`` must stay a flat string; the API rejects nested payloads.
    """

    model_config = ConfigDict(extra="forbid", strict=True)

    bot_userid: str
    channel_url: str
    type: Literal["message"] = "message"
    message: str

    @field_validator("bot_userid", "channel_url")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("value cannot be empty")
        return value


def parse_inbound_event(raw: Any) -> InboundEvent:
    if not isinstance(raw, dict):
        raise ValueError("Event body must be a JSON object")
    try:
        return InboundEvent.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Event body failed schema validation: {exc}") from exc
