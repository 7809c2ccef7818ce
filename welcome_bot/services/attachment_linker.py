"""Capture an existing media message into the welcome set.

An admin replies to a file/image/audio/video message with ``!welcome attach``.
The linker fetches the replied-to event, decrypts it if it is still an
``m.room.encrypted`` envelope, and stores its content as an attachment
descriptor. Media bytes are never downloaded: the ``file``/``url`` reference
is kept as-is and replayed in welcome DMs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from welcome_bot.enums import MessageKind
from welcome_bot.matrix.protocols import Decryptor, MessagingGateway
from welcome_bot.models.domain import AttachmentDescriptor, WelcomeRecord
from welcome_bot.models.events import ROOM_ENCRYPTED, TextMessage
from welcome_bot.stores.welcome_store import WelcomeStore

logger = logging.getLogger(__name__)


class AttachmentLinkError(Exception):
    """The attach request cannot be fulfilled; ``str(e)`` is the user notice."""


class AttachmentLinker:
    """Resolves a reply target into an ``AttachmentDescriptor`` and stores it."""

    MISSING_REPLY = (
        "Reply to the file message (PDF, image, audio, video), then type `{prefix} attach`."
    )
    UNREADABLE_TARGET = "Could not read the target message."
    NOT_MEDIA = "This message is not a file/media message."
    NO_PAYLOAD = "This media message has no file to reuse."

    def __init__(
        self,
        gateway: MessagingGateway,
        decryptor: Decryptor,
        store: WelcomeStore,
        command_prefix: str,
    ) -> None:
        self.gateway = gateway
        self.decryptor = decryptor
        self.store = store
        self.command_prefix = command_prefix

    async def link(self, room_id: str, scope_key: str, message: TextMessage) -> WelcomeRecord:
        """Append the replied-to media message to ``scope_key``'s record.

        Returns:
            The updated record, already persisted.

        Raises:
            AttachmentLinkError: Usage or validation problem, nothing stored.
            PersistenceError: The store could not be written.
        """
        target_id = message.reply_to_event_id
        if not target_id:
            raise AttachmentLinkError(self.MISSING_REPLY.format(prefix=self.command_prefix))

        try:
            original = await self.gateway.get_event(room_id, target_id)
        except Exception as e:
            logger.warning("Could not fetch reply target %s in %s: %s", target_id, room_id, e)
            raise AttachmentLinkError(self.UNREADABLE_TARGET) from e
        if not original:
            raise AttachmentLinkError(self.UNREADABLE_TARGET)

        original = await self._decrypt_if_needed(room_id, original)
        content = original.get("content")
        if not isinstance(content, dict):
            content = {}

        msgtype = content.get("msgtype")
        if not isinstance(msgtype, str) or msgtype not in set(MessageKind):
            raise AttachmentLinkError(self.NOT_MEDIA)

        try:
            attachment = AttachmentDescriptor.from_message_content(content)
        except ValueError as e:
            logger.info("Rejected attach target %s in %s: %s", target_id, room_id, e)
            raise AttachmentLinkError(self.NO_PAYLOAD) from e

        record = self.store.get(scope_key).with_attachment(attachment)
        await asyncio.to_thread(self.store.set, scope_key, record)
        logger.info(
            "Linked %s %s into welcome scope %s (%d attachment(s))",
            attachment.message_kind,
            target_id,
            scope_key,
            len(record.attachments),
        )
        return record

    async def _decrypt_if_needed(self, room_id: str, event: dict[str, Any]) -> dict[str, Any]:
        if event.get("type") != ROOM_ENCRYPTED:
            return event
        try:
            decrypted = await self.decryptor.decrypt(room_id, event)
        except Exception as e:
            # No keys for this session: keep the envelope, validation rejects it.
            logger.info("Could not decrypt %s in %s: %s", event.get("event_id"), room_id, e)
            return event
        return {**event, "type": decrypted.get("type"), "content": decrypted.get("content")}
