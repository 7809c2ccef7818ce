"""Onboarding dispatcher: the top-level room event handler.

Every inbound event goes through ``handle_event``:

1. message events are offered to the command interpreter;
2. ``join`` membership events in target rooms, for users not yet welcomed,
   get a private welcome DM (text, then each stored attachment in order).

Each event is processed independently; any failure is logged and reported as
``DispatchOutcome.FAILED`` without affecting later events.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from welcome_bot.enums import DedupPolicy, DispatchOutcome
from welcome_bot.matrix.protocols import MessagingGateway, SelfIdentity
from welcome_bot.models.domain import WelcomeRecord
from welcome_bot.models.events import MembershipChange, TextMessage, parse_room_event
from welcome_bot.services.command_interpreter import CommandInterpreter
from welcome_bot.services.keyed_locks import KeyedLockRegistry
from welcome_bot.services.logging_service import LoggingService
from welcome_bot.services.room_classifier import RoomClassifier
from welcome_bot.stores.dedup_store import DedupStore, dedup_key
from welcome_bot.stores.json_document import PersistenceError
from welcome_bot.stores.welcome_store import WelcomeStore, resolve_scope

logger = logging.getLogger(__name__)

JOIN = "join"

DEFAULT_TITLE_TEMPLATE = "👋 Welcome to « {room_name} »!"
DEFAULT_BODY_TEMPLATE = "{text}"
DEFAULT_UNCONFIGURED_TEMPLATE = (
    "ℹ️ Welcome! Admins can set up this room's welcome with:\n"
    "• `{prefix} text ...`\n"
    "• (reply to a file) then `{prefix} attach`\n"
    "• `{prefix} show` to check."
)


@dataclass
class WelcomeTemplates:
    """Message templates for welcome DMs.

    Placeholders: ``{room_name}`` in all templates, ``{text}`` in the body
    template, ``{prefix}`` in the unconfigured-room template.
    """

    title: str = DEFAULT_TITLE_TEMPLATE
    body: str = DEFAULT_BODY_TEMPLATE
    cta: str = ""
    unconfigured: str = DEFAULT_UNCONFIGURED_TEMPLATE

    def render_welcome(self, room_name: str, text: str) -> str:
        parts = [self.title.format(room_name=room_name)]
        if text:
            parts.append(self.body.format(text=text, room_name=room_name))
        if self.cta:
            parts.append(self.cta.format(room_name=room_name))
        return "\n\n".join(parts)

    def render_unconfigured(self, room_name: str, prefix: str) -> str:
        return self.unconfigured.format(room_name=room_name, prefix=prefix)


class OnboardingDispatcher:
    """Routes room events to admin commands or the join-welcome path."""

    def __init__(
        self,
        gateway: MessagingGateway,
        identity: SelfIdentity,
        classifier: RoomClassifier,
        welcome_store: WelcomeStore,
        dedup_store: DedupStore,
        interpreter: CommandInterpreter,
        logging_service: LoggingService,
        templates: WelcomeTemplates | None = None,
        global_welcome: bool = False,
        dm_encrypted: bool = True,
        dedup_policy: DedupPolicy = DedupPolicy.MARK_THEN_SEND,
        join_locks: KeyedLockRegistry | None = None,
    ) -> None:
        self.gateway = gateway
        self.identity = identity
        self.classifier = classifier
        self.welcome_store = welcome_store
        self.dedup_store = dedup_store
        self.interpreter = interpreter
        self.logging_service = logging_service
        self.templates = templates or WelcomeTemplates()
        self.global_welcome = global_welcome
        self.dm_encrypted = dm_encrypted
        self.dedup_policy = dedup_policy
        self.join_locks = join_locks or KeyedLockRegistry()

    async def handle_event(self, room_id: str, raw_event: dict[str, Any]) -> DispatchOutcome:
        """Process one room event. Never raises."""
        try:
            return await self._dispatch(room_id, raw_event)
        except Exception:
            event_id = raw_event.get("event_id") if isinstance(raw_event, dict) else None
            logger.exception("Error handling event %s in %s", event_id, room_id)
            return DispatchOutcome.FAILED

    async def _dispatch(self, room_id: str, raw_event: dict[str, Any]) -> DispatchOutcome:
        event = parse_room_event(raw_event)

        if isinstance(event, TextMessage):
            if await self.interpreter.handle(room_id, event):
                return DispatchOutcome.ADMIN_COMMAND
            return DispatchOutcome.IGNORED

        if not isinstance(event, MembershipChange):
            return DispatchOutcome.IGNORED
        if event.membership != JOIN:
            return DispatchOutcome.IGNORED

        user_id = event.state_key
        if not user_id or user_id == await self.identity.get_self_id():
            return DispatchOutcome.IGNORED

        room_name = await self.classifier.room_name(room_id)
        if not self.classifier.is_target_room(room_name):
            return DispatchOutcome.IGNORED

        async with self.join_locks.hold(dedup_key(room_id, user_id)):
            if self.dedup_store.has(room_id, user_id):
                logger.debug("%s already welcomed in %s", user_id, room_id)
                return DispatchOutcome.JOIN_NOOP
            return await self._welcome(room_id, room_name, user_id)

    async def _welcome(self, room_id: str, room_name: str, user_id: str) -> DispatchOutcome:
        if self.dedup_policy == DedupPolicy.MARK_THEN_SEND:
            try:
                await asyncio.to_thread(self.dedup_store.mark_and_persist, room_id, user_id)
            except PersistenceError as e:
                logger.error("Could not mark %s as welcomed in %s, skipping: %s", user_id, room_id, e)
                return DispatchOutcome.FAILED

        record = self.welcome_store.get(resolve_scope(room_id, self.global_welcome))
        if record.is_empty:
            await self._send_unconfigured_dm(room_name, user_id)
        else:
            await self._send_welcome_dm(room_name, user_id, record)

        if self.dedup_policy == DedupPolicy.SEND_THEN_MARK:
            try:
                await asyncio.to_thread(self.dedup_store.mark_and_persist, room_id, user_id)
            except PersistenceError as e:
                logger.error("Welcomed %s in %s but could not persist the mark: %s", user_id, room_id, e)

        return DispatchOutcome.JOIN_WELCOMED

    async def _send_unconfigured_dm(self, room_name: str, user_id: str) -> None:
        body = self.templates.render_unconfigured(room_name, self.interpreter.parser.prefix)
        dm_room_id = await self.gateway.create_direct_room(user_id, encrypted=self.dm_encrypted)
        await self.gateway.send_message(dm_room_id, {"msgtype": "m.text", "body": body})
        await self.logging_service.log_action(
            user_id, f"Info DM sent (no welcome configured) to {user_id} for {room_name}"
        )

    async def _send_welcome_dm(self, room_name: str, user_id: str, record: WelcomeRecord) -> None:
        body = self.templates.render_welcome(room_name, record.text)
        dm_room_id = await self.gateway.create_direct_room(user_id, encrypted=self.dm_encrypted)
        await self.gateway.send_message(dm_room_id, {"msgtype": "m.text", "body": body})

        # Payload references go out untouched: nothing is downloaded or re-uploaded.
        for attachment in record.attachments:
            await self.gateway.send_message(dm_room_id, attachment.to_content())

        await self.logging_service.log_action(
            user_id,
            f"Welcome DM sent to {user_id} for {room_name} "
            f"({len(record.attachments)} file(s)).",
        )
