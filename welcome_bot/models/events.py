"""Typed views over raw Matrix room events.

Events arrive from the sync loop as arbitrary nested JSON. They are validated
here, once, into one of a few known shapes before the dispatcher looks at
them. Anything that does not fit becomes an ``UnknownEvent``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import Field, ValidationError

from welcome_bot.models.base import JsonModel

logger = logging.getLogger(__name__)

ROOM_MEMBER = "m.room.member"
ROOM_MESSAGE = "m.room.message"
ROOM_ENCRYPTED = "m.room.encrypted"
TEXT_MSGTYPE = "m.text"


class MembershipChange(JsonModel):
    """An ``m.room.member`` state event."""

    kind: Literal["membership"] = "membership"
    event_id: str | None = None
    sender: str
    state_key: str
    membership: str


class TextMessage(JsonModel):
    """An ``m.room.message`` event (any msgtype).

    Attributes:
        msgtype: Content msgtype, e.g. ``m.text`` or ``m.image``.
        body: Content body, empty when absent.
        reply_to_event_id: Target of an ``m.in_reply_to`` relation, if any.
        content: The untouched content mapping.
    """

    kind: Literal["message"] = "message"
    event_id: str | None = None
    sender: str
    msgtype: str = ""
    body: str = ""
    reply_to_event_id: str | None = None
    content: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_text(self) -> bool:
        return self.msgtype == TEXT_MSGTYPE


class EncryptedEnvelope(JsonModel):
    """An ``m.room.encrypted`` event that has not been decrypted."""

    kind: Literal["encrypted"] = "encrypted"
    event_id: str | None = None
    sender: str = ""
    content: dict[str, Any] = Field(default_factory=dict)


class UnknownEvent(JsonModel):
    """Any other event, or a known type with an unusable shape."""

    kind: Literal["unknown"] = "unknown"
    event_type: str = ""


RoomEvent = MembershipChange | TextMessage | EncryptedEnvelope | UnknownEvent


def extract_reply_to(content: Mapping[str, Any]) -> str | None:
    """Return the ``m.in_reply_to`` event id of a message content, if any."""
    relates_to = content.get("m.relates_to")
    if not isinstance(relates_to, Mapping):
        return None
    in_reply_to = relates_to.get("m.in_reply_to")
    if not isinstance(in_reply_to, Mapping):
        return None
    event_id = in_reply_to.get("event_id")
    return event_id if isinstance(event_id, str) and event_id else None


def parse_room_event(raw: Mapping[str, Any] | None) -> RoomEvent:
    """Validate a raw event dict into a ``RoomEvent`` variant."""
    if not isinstance(raw, Mapping):
        return UnknownEvent()

    event_type = raw.get("type")
    if not isinstance(event_type, str):
        return UnknownEvent()

    content = raw.get("content")
    if not isinstance(content, Mapping):
        content = {}

    try:
        if event_type == ROOM_MEMBER:
            return MembershipChange.model_validate(
                {
                    "event_id": raw.get("event_id"),
                    "sender": raw.get("sender"),
                    "state_key": raw.get("state_key"),
                    "membership": content.get("membership"),
                }
            )
        if event_type == ROOM_MESSAGE:
            return TextMessage.model_validate(
                {
                    "event_id": raw.get("event_id"),
                    "sender": raw.get("sender"),
                    "msgtype": content.get("msgtype") or "",
                    "body": content.get("body") or "",
                    "reply_to_event_id": extract_reply_to(content),
                    "content": dict(content),
                }
            )
        if event_type == ROOM_ENCRYPTED:
            return EncryptedEnvelope.model_validate(
                {
                    "event_id": raw.get("event_id"),
                    "sender": raw.get("sender") or "",
                    "content": dict(content),
                }
            )
    except ValidationError as e:
        logger.debug("Malformed %s event treated as unknown: %s", event_type, e)

    return UnknownEvent(event_type=event_type)
