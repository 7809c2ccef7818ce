"""Room targeting and admin checks."""

from __future__ import annotations

import logging

from welcome_bot.matrix.protocols import DirectoryQuery

logger = logging.getLogger(__name__)

ROOM_NAME = "m.room.name"
ROOM_POWER_LEVELS = "m.room.power_levels"

# Matrix convention: 50 is the default moderator level.
DEFAULT_ADMIN_POWER_LEVEL = 50


class RoomClassifier:
    """Decides which rooms get onboarding and who may configure it.

    A room is a target when its trimmed display name starts with
    ``target_prefix`` or equals ``target_exact_name``. Admins are users whose
    effective power level in the room is at least ``admin_power_level``.
    Lookups fail closed: unknown name => not a target, unknown levels => not admin.
    """

    def __init__(
        self,
        directory: DirectoryQuery,
        target_prefix: str = "INFO",
        target_exact_name: str = "",
        admin_power_level: int = DEFAULT_ADMIN_POWER_LEVEL,
    ) -> None:
        self.directory = directory
        self.target_prefix = target_prefix
        self.target_exact_name = target_exact_name
        self.admin_power_level = admin_power_level

    def is_target_room(self, room_name: str) -> bool:
        if not room_name:
            return False
        name = room_name.strip()
        if self.target_prefix and name.startswith(self.target_prefix):
            return True
        return bool(self.target_exact_name) and name == self.target_exact_name

    async def room_name(self, room_id: str) -> str:
        """Return the room's display name, or "" if it cannot be read."""
        try:
            content = await self.directory.get_room_state_event(room_id, ROOM_NAME, "")
        except Exception as e:
            logger.debug("Room name lookup failed for %s: %s", room_id, e)
            return ""
        name = content.get("name") if isinstance(content, dict) else None
        return name if isinstance(name, str) else ""

    async def is_admin(self, room_id: str, user_id: str) -> bool:
        try:
            content = await self.directory.get_room_state_event(room_id, ROOM_POWER_LEVELS, "")
        except Exception as e:
            logger.warning("Power level lookup failed for %s in %s: %s", user_id, room_id, e)
            return False
        try:
            return self.effective_power_level(content, user_id) >= self.admin_power_level
        except (AttributeError, TypeError, ValueError):
            logger.warning("Malformed power levels in %s", room_id)
            return False

    @staticmethod
    def effective_power_level(power_levels: dict, user_id: str) -> int:
        """``users[user_id]``, else ``users_default``, else 0."""
        users = power_levels.get("users") or {}
        if user_id in users and users[user_id] is not None:
            return int(users[user_id])
        default = power_levels.get("users_default")
        if default is not None:
            return int(default)
        return 0
