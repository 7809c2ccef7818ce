"""mautrix-backed implementation of the onboarding collaborator contracts.

Translates the abstract capabilities (state lookups, event fetch, decryption,
DM creation, sends) into mautrix client calls, exchanging plain dicts with the
core. Every client or HTTP failure surfaces as ``TransportError``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from mautrix.api import Method, Path
from mautrix.client import Client
from mautrix.errors import MatrixError
from mautrix.types import (
    EncryptedEvent,
    EncryptionAlgorithm,
    EventType,
    Membership,
    RoomCreatePreset,
    RoomEncryptionStateEventContent,
    RoomID,
    UserID,
)

from welcome_bot.matrix.protocols import TransportError

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (MatrixError, aiohttp.ClientError, asyncio.TimeoutError)


class MautrixGateway:
    """Directory, messaging, decryption and identity on top of a mautrix ``Client``."""

    def __init__(self, client: Client) -> None:
        self.client = client

    async def get_self_id(self) -> str:
        return str(self.client.mxid)

    async def get_room_state_event(
        self, room_id: str, event_type: str, state_key: str = ""
    ) -> dict[str, Any]:
        try:
            content = await self.client.api.request(
                Method.GET, Path.v3.rooms[room_id].state[event_type][state_key]
            )
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"{event_type} lookup failed in {room_id}: {e}") from e
        return content if isinstance(content, dict) else {}

    async def get_event(self, room_id: str, event_id: str) -> dict[str, Any]:
        try:
            event = await self.client.api.request(
                Method.GET, Path.v3.rooms[room_id].event[event_id]
            )
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"Could not fetch {event_id} in {room_id}: {e}") from e
        if not isinstance(event, dict):
            raise TransportError(f"Unexpected response for {event_id} in {room_id}")
        return event

    async def decrypt(self, room_id: str, event: dict[str, Any]) -> dict[str, Any]:
        if self.client.crypto is None:
            raise TransportError("End-to-end encryption is not enabled")
        try:
            encrypted = EncryptedEvent.deserialize({**event, "room_id": room_id})
            decrypted = await self.client.crypto.decrypt_megolm_event(encrypted)
        except (*_TRANSPORT_ERRORS, KeyError, ValueError) as e:
            raise TransportError(f"Could not decrypt {event.get('event_id')}: {e}") from e
        return decrypted.serialize()

    async def create_direct_room(self, user_id: str, *, encrypted: bool = True) -> str:
        initial_state: list[dict[str, Any]] = []
        if encrypted:
            initial_state.append(
                {
                    "type": str(EventType.ROOM_ENCRYPTION),
                    "state_key": "",
                    "content": {"algorithm": str(EncryptionAlgorithm.MEGOLM_V1)},
                }
            )
        try:
            room_id = await self.client.create_room(
                preset=RoomCreatePreset.TRUSTED_PRIVATE,
                is_direct=True,
                invitees=[UserID(user_id)],
                initial_state=initial_state,
            )
            if encrypted:
                await self._remember_encrypted_dm(room_id, user_id)
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"Could not create DM with {user_id}: {e}") from e
        logger.debug("Created %s DM %s with %s", "encrypted" if encrypted else "plain", room_id, user_id)
        return str(room_id)

    async def _remember_encrypted_dm(self, room_id: RoomID, user_id: str) -> None:
        # The first send happens before the next sync delivers the room state,
        # so seed the state store: the message must be encrypted and the
        # invitee must receive the megolm session.
        state_store = self.client.state_store
        await state_store.set_encryption_info(
            room_id, RoomEncryptionStateEventContent(algorithm=EncryptionAlgorithm.MEGOLM_V1)
        )
        await state_store.set_membership(room_id, self.client.mxid, Membership.JOIN)
        await state_store.set_membership(room_id, UserID(user_id), Membership.INVITE)

    async def send_message(self, room_id: str, content: dict[str, Any]) -> str:
        try:
            event_id = await self.client.send_message_event(
                RoomID(room_id), EventType.ROOM_MESSAGE, content
            )
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"Send to {room_id} failed: {e}") from e
        return str(event_id)

    async def send_notice(self, room_id: str, text: str) -> str:
        try:
            event_id = await self.client.send_notice(RoomID(room_id), text)
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"Notice to {room_id} failed: {e}") from e
        return str(event_id)
