"""Onboarding business logic services package."""

from .attachment_linker import AttachmentLinker, AttachmentLinkError
from .command_interpreter import CommandInterpreter
from .command_parser import CommandParser, ParsedCommand
from .keyed_locks import KeyedLockRegistry
from .logging_service import LoggingService
from .onboarding_dispatcher import OnboardingDispatcher, WelcomeTemplates
from .room_classifier import RoomClassifier

__all__ = [
    "AttachmentLinkError",
    "AttachmentLinker",
    "CommandInterpreter",
    "CommandParser",
    "KeyedLockRegistry",
    "LoggingService",
    "OnboardingDispatcher",
    "ParsedCommand",
    "RoomClassifier",
    "WelcomeTemplates",
]
