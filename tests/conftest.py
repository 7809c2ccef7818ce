"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest
import pytest_asyncio  # noqa: F401

from tests.fakes import FakeMatrix
from welcome_bot.services import (
    AttachmentLinker,
    CommandInterpreter,
    CommandParser,
    LoggingService,
    OnboardingDispatcher,
    RoomClassifier,
)
from welcome_bot.stores import DedupStore, WelcomeStore

# Configure pytest-asyncio to auto-detect async tests
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def matrix() -> FakeMatrix:
    return FakeMatrix()


@pytest.fixture
def welcome_store(tmp_path) -> WelcomeStore:
    return WelcomeStore(tmp_path / "welcome_store.json")


@pytest.fixture
def dedup_store(tmp_path) -> DedupStore:
    return DedupStore(tmp_path / "welcomed.json")


@pytest.fixture
def classifier(matrix) -> RoomClassifier:
    return RoomClassifier(matrix, target_prefix="INFO", target_exact_name="Welcome hall")


@pytest.fixture
def make_interpreter(matrix, classifier, welcome_store):
    def _make(global_welcome: bool = False) -> CommandInterpreter:
        linker = AttachmentLinker(matrix, matrix, welcome_store, "!welcome")
        return CommandInterpreter(
            matrix,
            classifier,
            welcome_store,
            linker,
            parser=CommandParser("!welcome"),
            global_welcome=global_welcome,
        )

    return _make


@pytest.fixture
def make_dispatcher(matrix, classifier, welcome_store, dedup_store, make_interpreter):
    def _make(log_room_id: str | None = None, **kwargs) -> OnboardingDispatcher:
        global_welcome = kwargs.pop("global_welcome", False)
        return OnboardingDispatcher(
            gateway=matrix,
            identity=matrix,
            classifier=classifier,
            welcome_store=welcome_store,
            dedup_store=dedup_store,
            interpreter=make_interpreter(global_welcome=global_welcome),
            logging_service=LoggingService(matrix, log_room_id),
            global_welcome=global_welcome,
            **kwargs,
        )

    return _make
