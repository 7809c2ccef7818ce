"""Command parser for admin chat commands.

Parses room messages into structured ``!welcome`` commands using StrEnum types.
"""

from dataclasses import dataclass, field

from welcome_bot.enums import CommandType

DEFAULT_COMMAND_PREFIX = "!welcome"


@dataclass
class ParsedCommand:
    """Represents a parsed admin command.

    Attributes:
        command_type: The type of command (from CommandType enum)
        args: Arguments for the command (e.g. the welcome text for ``text``)
    """

    command_type: CommandType
    args: list[str] = field(default_factory=list)

    @property
    def is_command(self) -> bool:
        return self.command_type != CommandType.MESSAGE


class CommandParser:
    """Parses message bodies into admin commands.

    Supports the following commands (prefix configurable):
    - text <body>: Set the welcome text
    - show: Show the current welcome
    - clear: Remove all welcome attachments
    - reset: Remove text and attachments
    - attach: Add the replied-to media message as an attachment
    - help: Show available commands
    - Anything else after the prefix is an unknown command (no action)
    - Messages without the prefix are regular messages

    Matching is case-sensitive and picks the longest sub-command that matches.
    """

    # Sub-commands that take free text after them; the rest must match exactly.
    _WITH_ARGUMENT = {CommandType.TEXT}
    _SUBCOMMANDS = sorted(
        (
            CommandType.TEXT,
            CommandType.SHOW,
            CommandType.CLEAR,
            CommandType.RESET,
            CommandType.ATTACH,
            CommandType.HELP,
        ),
        key=len,
        reverse=True,
    )

    HELP_TEXT = """Welcome commands (room admins only):
- {prefix} text <message>: Set the welcome text
- {prefix} show: Show the current welcome
- {prefix} clear: Remove all welcome attachments
- {prefix} reset: Remove the welcome text and attachments
- {prefix} attach: Send as a reply to a file, image, audio or video message to add it
- {prefix} help: Show this help message"""

    def __init__(self, prefix: str = DEFAULT_COMMAND_PREFIX) -> None:
        self.prefix = prefix

    def parse(self, message: str) -> ParsedCommand:
        """Parse a message body into a command.

        Args:
            message: The raw message body

        Returns:
            ParsedCommand with the identified command type and any arguments
        """
        if not message:
            return ParsedCommand(CommandType.MESSAGE)

        body = message.strip()
        if not body.startswith(self.prefix):
            return ParsedCommand(CommandType.MESSAGE)

        rest = body[len(self.prefix):]
        # "!welcomeXYZ" is not ours
        if rest and not rest[0].isspace():
            return ParsedCommand(CommandType.MESSAGE)
        rest = rest.strip()

        for command in self._SUBCOMMANDS:
            if rest == command:
                if command in self._WITH_ARGUMENT:
                    return ParsedCommand(command, [""])
                return ParsedCommand(command)
            if (
                command in self._WITH_ARGUMENT
                and rest.startswith(command)
                and rest[len(command)].isspace()
            ):
                return ParsedCommand(command, [rest[len(command):].strip()])

        return ParsedCommand(CommandType.UNKNOWN, [rest] if rest else [])

    def get_help_text(self) -> str:
        """Return the help text for available commands."""
        return self.HELP_TEXT.format(prefix=self.prefix)
