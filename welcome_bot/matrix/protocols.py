"""Contracts for the Matrix capabilities the onboarding core consumes.

The core never imports the client library directly; it talks to these
protocols and exchanges raw event/content dicts. ``MautrixGateway`` is the
production implementation; tests use in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Protocol


class TransportError(Exception):
    """Raised when a homeserver call fails (network, HTTP error, missing state)."""


class DirectoryQuery(Protocol):
    async def get_room_state_event(
        self, room_id: str, event_type: str, state_key: str = ""
    ) -> dict[str, Any]: ...


class MessagingGateway(Protocol):
    async def create_direct_room(self, user_id: str, *, encrypted: bool = True) -> str: ...

    async def send_message(self, room_id: str, content: dict[str, Any]) -> str: ...

    async def send_notice(self, room_id: str, text: str) -> str: ...

    async def get_event(self, room_id: str, event_id: str) -> dict[str, Any]: ...


class Decryptor(Protocol):
    async def decrypt(self, room_id: str, event: dict[str, Any]) -> dict[str, Any]: ...


class SelfIdentity(Protocol):
    async def get_self_id(self) -> str: ...
