"""Matrix bot interface.

Owns the mautrix client lifecycle: identity resolution, optional end-to-end
encryption, the sync loop, and the handlers that feed room events into the
event queue. Encrypted room messages are decrypted by mautrix before they
reach the handlers, so admin commands work in E2EE rooms.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from mautrix.client import Client, SyncStream
from mautrix.client.state_store.memory import MemoryStateStore
from mautrix.types import EventType, RoomID, UserID

from welcome_bot.matrix.event_queue import EventQueue
from welcome_bot.observability.redaction import sanitize

if TYPE_CHECKING:
    from mautrix.types import Event
    from mautrix.util.async_db import Database

    from welcome_bot.config import BotConfig
    from welcome_bot.services.onboarding_dispatcher import OnboardingDispatcher

logger = logging.getLogger(__name__)


class CryptoMemoryStateStore(MemoryStateStore):
    """In-memory state store that also answers the OlmMachine's room queries."""

    async def find_shared_rooms(self, user_id: UserID) -> list[RoomID]:
        shared: list[RoomID] = []
        for room_id, members in self.members.items():
            if user_id in members and await self.is_encrypted(room_id):
                shared.append(room_id)
        return shared


def build_client(config: "BotConfig") -> Client:
    """Create the mautrix client for the configured bot account."""
    return Client(
        mxid=UserID(config.user_id or ""),
        device_id=config.device_id or "",
        base_url=config.homeserver,
        token=config.access_token,
        state_store=CryptoMemoryStateStore(),
    )


class MatrixBotInterface:
    """Connects the onboarding dispatcher to a Matrix homeserver."""

    def __init__(
        self,
        config: "BotConfig",
        client: Client,
        dispatcher: "OnboardingDispatcher",
    ) -> None:
        self.config = config
        self.client = client
        self.dispatcher = dispatcher
        self.events = EventQueue(dispatcher.handle_event, workers=config.event_workers)
        self._crypto_db: Database | None = None
        self._sync_task: asyncio.Future | None = None

    async def start(self) -> None:
        """Resolve identity, set up crypto and handlers, and start syncing."""
        await self._resolve_identity()

        if self.config.encryption_enabled:
            await self._setup_crypto()

        self.register_handlers()
        self.events.start()

        # Members already present before startup are not welcomed.
        self.client.ignore_initial_sync = True
        self._sync_task = self.client.start(filter_data=None)
        logger.info(
            "Bot ready as %s (DM onboarding, E2EE=%s, commands '%s', targets: %s* + %r)",
            self.client.mxid,
            self.config.encryption_enabled,
            self.config.command_prefix,
            self.config.target_room_prefix,
            self.config.target_room_exact_name,
        )

    async def wait(self) -> None:
        """Block until the sync loop ends."""
        if self._sync_task is not None:
            await self._sync_task

    async def stop(self) -> None:
        self.client.stop()
        await self.events.stop()
        if self._crypto_db is not None:
            await self._crypto_db.stop()
            self._crypto_db = None
        await self.client.api.session.close()
        logger.info("Matrix client stopped")

    def register_handlers(self) -> None:
        self.client.add_event_handler(EventType.ROOM_MEMBER, self._on_room_event)
        self.client.add_event_handler(EventType.ROOM_MESSAGE, self._on_room_event)

    async def _on_room_event(self, evt: "Event") -> None:
        # The sync state block replays current members (room join, gappy
        # sync); only timeline events are real membership changes.
        source = getattr(evt, "source", None)
        if isinstance(source, SyncStream) and SyncStream.STATE in source:
            return
        room_id = str(evt.room_id)
        raw = evt.serialize()
        logger.debug("Queued %s in %s: %s", raw.get("type"), room_id, sanitize(raw, max_chars=300))
        await self.events.put(room_id, raw)

    async def _resolve_identity(self) -> None:
        whoami = await self.client.whoami()
        if self.config.user_id and str(whoami.user_id) != self.config.user_id:
            logger.warning(
                "Configured user_id %s does not match token owner %s, using the latter",
                self.config.user_id,
                whoami.user_id,
            )
        self.client.mxid = whoami.user_id
        if not self.client.device_id and whoami.device_id:
            self.client.device_id = whoami.device_id
        logger.info("Running as %s (device_id=%s)", self.client.mxid, self.client.device_id)

    async def _setup_crypto(self) -> None:
        from mautrix.crypto import OlmMachine
        from mautrix.crypto.store import PgCryptoStore
        from mautrix.util.async_db import Database

        if not self.client.device_id:
            raise ValueError("device_id is required for end-to-end encryption")

        db_path = Path(self.config.crypto_db_path).expanduser().resolve()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db = Database.create(f"sqlite:///{db_path}", upgrade_table=PgCryptoStore.upgrade_table)
        await db.start()
        self._crypto_db = db

        crypto_store = PgCryptoStore(
            account_id=str(self.client.mxid),
            pickle_key=self.config.crypto_pickle_key,
            db=db,
        )
        olm = OlmMachine(
            client=self.client,
            crypto_store=crypto_store,
            state_store=self.client.state_store,
        )
        await olm.load()

        # Wire crypto into the client: transparent encrypt on send, decrypt on sync.
        self.client.crypto = olm
        self.client.sync_store = crypto_store

        logger.info("Sharing encryption keys with homeserver")
        await olm.share_keys()
        logger.info("Crypto ready for device_id=%s (store=%s)", self.client.device_id, db_path)
