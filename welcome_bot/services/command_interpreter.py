"""Admin command interpreter.

Executes ``!welcome`` commands posted in a room against the welcome store.
Only room admins (power level >= threshold) may use them; everyone else gets
a permission-denied notice. Replies are sent as notices in the same room.
"""

from __future__ import annotations

import asyncio
import logging

from welcome_bot.enums import CommandType
from welcome_bot.matrix.protocols import MessagingGateway
from welcome_bot.models.domain import WelcomeRecord
from welcome_bot.models.events import TextMessage
from welcome_bot.services.attachment_linker import AttachmentLinker, AttachmentLinkError
from welcome_bot.services.command_parser import CommandParser, ParsedCommand
from welcome_bot.services.keyed_locks import KeyedLockRegistry
from welcome_bot.services.room_classifier import RoomClassifier
from welcome_bot.stores.json_document import PersistenceError
from welcome_bot.stores.welcome_store import WelcomeStore, resolve_scope

logger = logging.getLogger(__name__)


class CommandInterpreter:
    """Runs admin commands and answers with room notices."""

    PERMISSION_DENIED = "⛔ This command is reserved for room admins."
    TEXT_UPDATED = "✅ Welcome text updated."
    TEXT_USAGE = "Usage: `{prefix} text <message>`"
    ATTACHMENTS_CLEARED = "✅ Welcome attachments removed."
    WELCOME_RESET = "✅ Welcome reset (text + files)."
    ATTACHMENT_ADDED = "✅ File added to the welcome."
    SAVE_FAILED = "⚠️ Could not save the welcome configuration, please try again later."
    SHOW_TEMPLATE = "🔎 Current welcome:\n\n{text}\n\nFiles: {count}"
    EMPTY_TEXT_PLACEHOLDER = "(no text)"

    def __init__(
        self,
        gateway: MessagingGateway,
        classifier: RoomClassifier,
        store: WelcomeStore,
        linker: AttachmentLinker,
        parser: CommandParser | None = None,
        global_welcome: bool = False,
        scope_locks: KeyedLockRegistry | None = None,
    ) -> None:
        self.gateway = gateway
        self.classifier = classifier
        self.store = store
        self.linker = linker
        self.parser = parser or CommandParser()
        self.global_welcome = global_welcome
        self.scope_locks = scope_locks or KeyedLockRegistry()

    async def handle(self, room_id: str, message: TextMessage) -> bool:
        """Run ``message`` if it is an admin command.

        Returns:
            True if the message was a command (including denied and unknown
            ones), False if it is ordinary chat.
        """
        if not message.is_text:
            return False
        command = self.parser.parse(message.body)
        if not command.is_command:
            return False

        if not await self.classifier.is_admin(room_id, message.sender):
            logger.info(
                "Denied %s command from non-admin %s in %s",
                command.command_type,
                message.sender,
                room_id,
            )
            await self.gateway.send_notice(room_id, self.PERMISSION_DENIED)
            return True

        if command.command_type == CommandType.UNKNOWN:
            logger.debug("Ignoring unknown welcome command in %s: %s", room_id, command.args)
            return True

        scope_key = resolve_scope(room_id, self.global_welcome)
        async with self.scope_locks.hold(scope_key):
            try:
                reply = await self._execute(room_id, scope_key, command, message)
            except AttachmentLinkError as e:
                reply = str(e)
            except PersistenceError as e:
                logger.error("Welcome store write failed for %s: %s", scope_key, e)
                reply = self.SAVE_FAILED

        if reply:
            await self.gateway.send_notice(room_id, reply)
        return True

    async def _execute(
        self,
        room_id: str,
        scope_key: str,
        command: ParsedCommand,
        message: TextMessage,
    ) -> str | None:
        match command.command_type:
            case CommandType.TEXT:
                text = command.args[0] if command.args else ""
                if not text:
                    return self.TEXT_USAGE.format(prefix=self.parser.prefix)
                record = self.store.get(scope_key).with_text(text)
                await asyncio.to_thread(self.store.set, scope_key, record)
                logger.info("Welcome text for %s set by %s", scope_key, message.sender)
                return self.TEXT_UPDATED

            case CommandType.SHOW:
                return self.render_show(self.store.get(scope_key))

            case CommandType.CLEAR:
                await asyncio.to_thread(
                    self.store.set, scope_key, self.store.get(scope_key).without_attachments()
                )
                logger.info("Welcome attachments for %s cleared by %s", scope_key, message.sender)
                return self.ATTACHMENTS_CLEARED

            case CommandType.RESET:
                await asyncio.to_thread(self.store.set, scope_key, WelcomeRecord())
                logger.info("Welcome for %s reset by %s", scope_key, message.sender)
                return self.WELCOME_RESET

            case CommandType.ATTACH:
                await self.linker.link(room_id, scope_key, message)
                return self.ATTACHMENT_ADDED

            case CommandType.HELP:
                return self.parser.get_help_text()

        return None

    def render_show(self, record: WelcomeRecord) -> str:
        return self.SHOW_TEMPLATE.format(
            text=record.text or self.EMPTY_TEXT_PLACEHOLDER,
            count=len(record.attachments),
        )
