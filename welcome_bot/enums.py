"""StrEnum definitions for type-safe constants."""

from enum import StrEnum


class CommandType(StrEnum):
    """Admin sub-commands recognised after the command prefix."""

    TEXT = "text"
    SHOW = "show"
    CLEAR = "clear"
    RESET = "reset"
    ATTACH = "attach"
    HELP = "help"
    # Prefix matched but no sub-command did: consumed without action.
    UNKNOWN = "unknown"
    # Not a command at all.
    MESSAGE = "message"


class MessageKind(StrEnum):
    """Matrix msgtypes that can be captured as welcome attachments."""

    FILE = "m.file"
    IMAGE = "m.image"
    VIDEO = "m.video"
    AUDIO = "m.audio"


class DispatchOutcome(StrEnum):
    """Terminal state of one inbound event in the onboarding dispatcher."""

    IGNORED = "ignored"
    ADMIN_COMMAND = "admin_command"
    JOIN_NOOP = "join_noop"
    JOIN_WELCOMED = "join_welcomed"
    FAILED = "failed"


class DedupPolicy(StrEnum):
    """Ordering of the dedup mark relative to the welcome sends."""

    MARK_THEN_SEND = "mark_then_send"
    SEND_THEN_MARK = "send_then_mark"


class LogSeverity(StrEnum):
    """Log severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
