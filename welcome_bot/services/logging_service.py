"""Activity logging service.

Records onboarding actions to the Python logger and, when a log room is
configured, mirrors them as notices into that room so operators can follow
the bot from their chat client.
"""

import logging

from welcome_bot.enums import LogSeverity
from welcome_bot.matrix.protocols import MessagingGateway


class LoggingService:
    """Activity log with an optional Matrix log-room mirror."""

    def __init__(self, gateway: MessagingGateway, log_room_id: str | None = None) -> None:
        """Initialize the logging service.

        Args:
            gateway: Messaging gateway used for log-room notices.
            log_room_id: Room receiving mirrored notices; disabled when empty.
        """
        self.gateway = gateway
        self.log_room_id = log_room_id or None
        self.logger = logging.getLogger("welcome_bot.activity")

    async def log_action(
        self,
        user_id: str,
        action: str,
        severity: LogSeverity = LogSeverity.INFO,
        mirror: bool = True,
    ) -> None:
        """Log an onboarding action.

        Never raises: a failing log-room notice is logged and dropped.

        Args:
            user_id: User the action concerns.
            action: Human-readable description, also used as the notice text.
            severity: Log severity level (default: INFO).
            mirror: Whether to send the action to the log room.
        """
        log_method = getattr(self.logger, severity.value)
        log_method("User %s: %s", user_id, action)

        if not mirror or not self.log_room_id:
            return
        try:
            await self.gateway.send_notice(self.log_room_id, action)
        except Exception as e:
            self.logger.warning("Failed to mirror notice to log room %s: %s", self.log_room_id, e)
