"""Domain models for welcome content.

The persisted layout mirrors Matrix message content so a stored attachment is
a ready-to-send ``m.room.message`` body: ``msgtype``, ``body`` and exactly one
of ``file`` (encrypted attachment) or ``url`` (plain mxc:// URI), plus the
optional ``info`` blob.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ConfigDict, Field, model_validator

from welcome_bot.enums import MessageKind
from welcome_bot.models.base import JsonModel

DEFAULT_ATTACHMENT_BODY = "(file)"


class AttachmentDescriptor(JsonModel):
    """A captured media message, replayed verbatim on every welcome.

    Attributes:
        message_kind: Matrix msgtype (m.file, m.image, m.video, m.audio).
        display_body: Caption / filename shown by clients.
        encrypted_file: Opaque EncryptedFile object for E2EE uploads.
        url: Opaque mxc:// URI for unencrypted uploads.
        media_info: Optional ``info`` metadata (mimetype, size, thumbnail...).
    """

    model_config = ConfigDict(frozen=True)

    message_kind: MessageKind = Field(alias="msgtype")
    display_body: str = Field(default=DEFAULT_ATTACHMENT_BODY, alias="body")
    encrypted_file: dict[str, Any] | None = Field(default=None, alias="file")
    url: str | None = None
    media_info: dict[str, Any] | None = Field(default=None, alias="info")

    @model_validator(mode="after")
    def _exactly_one_payload_reference(self) -> AttachmentDescriptor:
        if (self.encrypted_file is None) == (self.url is None):
            raise ValueError("exactly one of 'file' or 'url' must be set")
        return self

    @classmethod
    def from_message_content(cls, content: Mapping[str, Any]) -> AttachmentDescriptor:
        """Build a descriptor from a media message's content.

        ``file`` takes priority over ``url`` when a sender put both.

        Raises:
            ValueError: If the msgtype is not a media kind or no payload
                reference is present.
        """
        msgtype = content.get("msgtype") or ""
        if not isinstance(msgtype, str) or msgtype not in set(MessageKind):
            raise ValueError(f"not a media msgtype: {msgtype!r}")

        data: dict[str, Any] = {
            "msgtype": msgtype,
            "body": content.get("body") or DEFAULT_ATTACHMENT_BODY,
        }
        if content.get("file"):
            data["file"] = content["file"]
        elif content.get("url"):
            data["url"] = content["url"]
        if content.get("info"):
            data["info"] = content["info"]
        return cls.model_validate(data)

    def to_content(self) -> dict[str, Any]:
        """Return the ``m.room.message`` content to send."""
        return self.model_dump(by_alias=True, exclude_none=True)


class WelcomeRecord(JsonModel):
    """Welcome content for one scope: text plus ordered attachments."""

    text: str = ""
    attachments: list[AttachmentDescriptor] = Field(default_factory=list, alias="files")

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.attachments

    def with_text(self, text: str) -> WelcomeRecord:
        return WelcomeRecord(text=text, attachments=list(self.attachments))

    def with_attachment(self, attachment: AttachmentDescriptor) -> WelcomeRecord:
        return WelcomeRecord(text=self.text, attachments=[*self.attachments, attachment])

    def without_attachments(self) -> WelcomeRecord:
        return WelcomeRecord(text=self.text, attachments=[])
