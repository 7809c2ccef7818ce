"""Unit tests for the mautrix gateway adapter."""

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from mautrix.types import EventType, RoomCreatePreset, RoomID

from welcome_bot.matrix.gateway import MautrixGateway
from welcome_bot.matrix.protocols import TransportError

ROOM = "!info:example.org"


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.mxid = "@welcome-bot:example.org"
    client.api.request = AsyncMock(return_value={})
    client.create_room = AsyncMock(return_value=RoomID("!dm:example.org"))
    client.send_message_event = AsyncMock(return_value="$sent")
    client.send_notice = AsyncMock(return_value="$notice")
    client.state_store.set_encryption_info = AsyncMock()
    client.state_store.set_membership = AsyncMock()
    client.crypto = None
    return client


@pytest.fixture
def gateway(client) -> MautrixGateway:
    return MautrixGateway(client)


class TestReads:
    @pytest.mark.asyncio
    async def test_self_id(self, gateway):
        assert await gateway.get_self_id() == "@welcome-bot:example.org"

    @pytest.mark.asyncio
    async def test_state_event_content(self, gateway, client):
        client.api.request.return_value = {"name": "INFO Lobby"}

        content = await gateway.get_room_state_event(ROOM, "m.room.name")

        assert content == {"name": "INFO Lobby"}
        client.api.request.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_state_event_failure_is_transport_error(self, gateway, client):
        client.api.request.side_effect = aiohttp.ClientError("connection reset")

        with pytest.raises(TransportError):
            await gateway.get_room_state_event(ROOM, "m.room.power_levels")

    @pytest.mark.asyncio
    async def test_get_event(self, gateway, client):
        event = {"type": "m.room.message", "event_id": "$e", "content": {"msgtype": "m.file"}}
        client.api.request.return_value = event

        assert await gateway.get_event(ROOM, "$e") == event

    @pytest.mark.asyncio
    async def test_get_event_non_dict_is_transport_error(self, gateway, client):
        client.api.request.return_value = "nope"

        with pytest.raises(TransportError):
            await gateway.get_event(ROOM, "$e")

    @pytest.mark.asyncio
    async def test_decrypt_without_crypto(self, gateway):
        with pytest.raises(TransportError):
            await gateway.decrypt(ROOM, {"type": "m.room.encrypted", "event_id": "$e"})


class TestSends:
    @pytest.mark.asyncio
    async def test_encrypted_dm(self, gateway, client):
        room_id = await gateway.create_direct_room("@new:example.org")

        assert room_id == "!dm:example.org"
        kwargs = client.create_room.await_args.kwargs
        assert kwargs["preset"] == RoomCreatePreset.TRUSTED_PRIVATE
        assert kwargs["is_direct"] is True
        assert kwargs["invitees"] == ["@new:example.org"]
        assert kwargs["initial_state"][0]["type"] == "m.room.encryption"
        client.state_store.set_encryption_info.assert_awaited_once()
        assert client.state_store.set_membership.await_count == 2

    @pytest.mark.asyncio
    async def test_plain_dm(self, gateway, client):
        await gateway.create_direct_room("@new:example.org", encrypted=False)

        assert client.create_room.await_args.kwargs["initial_state"] == []
        client.state_store.set_encryption_info.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dm_failure_is_transport_error(self, gateway, client):
        client.create_room.side_effect = aiohttp.ClientError("boom")

        with pytest.raises(TransportError):
            await gateway.create_direct_room("@new:example.org")

    @pytest.mark.asyncio
    async def test_send_message(self, gateway, client):
        content = {"msgtype": "m.file", "body": "a.pdf", "url": "mxc://e/a"}

        assert await gateway.send_message("!dm:example.org", content) == "$sent"
        client.send_message_event.assert_awaited_once_with(
            "!dm:example.org", EventType.ROOM_MESSAGE, content
        )

    @pytest.mark.asyncio
    async def test_send_notice(self, gateway, client):
        assert await gateway.send_notice(ROOM, "✅ Welcome text updated.") == "$notice"
        client.send_notice.assert_awaited_once_with(ROOM, "✅ Welcome text updated.")

    @pytest.mark.asyncio
    async def test_send_failure_is_transport_error(self, gateway, client):
        client.send_message_event.side_effect = aiohttp.ClientError("boom")

        with pytest.raises(TransportError):
            await gateway.send_message(ROOM, {"msgtype": "m.text", "body": "x"})
