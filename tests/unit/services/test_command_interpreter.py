"""Unit tests for the admin command interpreter."""

import threading

import pytest

from tests.fakes import ADMIN_ID, MEMBER_ID, media_event, text_event
from welcome_bot.models.domain import AttachmentDescriptor, WelcomeRecord
from welcome_bot.models.events import parse_room_event
from welcome_bot.services.command_interpreter import CommandInterpreter
from welcome_bot.stores import GLOBAL_SCOPE, PersistenceError

ROOM = "!info:example.org"


def _message(body: str, sender: str = ADMIN_ID, reply_to: str | None = None):
    return parse_room_event(text_event(body, sender=sender, reply_to=reply_to))


@pytest.fixture
def interpreter(matrix, make_interpreter) -> CommandInterpreter:
    matrix.add_room(ROOM, "INFO Lobby", users={ADMIN_ID: 100})
    return make_interpreter()


class TestPermissions:
    @pytest.mark.asyncio
    async def test_non_admin_is_denied(self, matrix, interpreter, welcome_store):
        consumed = await interpreter.handle(ROOM, _message("!welcome text hijack", sender=MEMBER_ID))

        assert consumed
        assert matrix.notices_in(ROOM) == [CommandInterpreter.PERMISSION_DENIED]
        assert welcome_store.get(ROOM).is_empty

    @pytest.mark.asyncio
    async def test_non_admin_unknown_command_is_denied(self, matrix, interpreter):
        consumed = await interpreter.handle(ROOM, _message("!welcome whatever", sender=MEMBER_ID))

        assert consumed
        assert matrix.notices_in(ROOM) == [CommandInterpreter.PERMISSION_DENIED]

    @pytest.mark.asyncio
    async def test_admin_unknown_command_is_silent(self, matrix, interpreter):
        consumed = await interpreter.handle(ROOM, _message("!welcome whatever"))

        assert consumed
        assert matrix.notices == []

    @pytest.mark.asyncio
    async def test_power_level_lookup_failure_denies(self, matrix, interpreter):
        matrix.fail_state_lookups = True
        await interpreter.handle(ROOM, _message("!welcome show"))

        assert matrix.notices_in(ROOM) == [CommandInterpreter.PERMISSION_DENIED]


class TestNonCommands:
    @pytest.mark.asyncio
    async def test_regular_chat_is_not_consumed(self, matrix, interpreter):
        assert not await interpreter.handle(ROOM, _message("hello everyone", sender=MEMBER_ID))
        assert matrix.notices == []

    @pytest.mark.asyncio
    async def test_media_message_is_not_consumed(self, matrix, interpreter):
        event = parse_room_event(media_event("$f", body="!welcome show"))
        assert not await interpreter.handle(ROOM, event)
        assert matrix.notices == []


class TestTextCommand:
    @pytest.mark.asyncio
    async def test_sets_text_and_acks(self, matrix, interpreter, welcome_store):
        await interpreter.handle(ROOM, _message("!welcome text   Hello, read the rules  "))

        assert welcome_store.get(ROOM).text == "Hello, read the rules"
        assert matrix.notices_in(ROOM) == [CommandInterpreter.TEXT_UPDATED]

    @pytest.mark.asyncio
    async def test_keeps_attachments(self, interpreter, welcome_store):
        attachment = AttachmentDescriptor(msgtype="m.file", body="a.pdf", url="mxc://e/a")
        welcome_store.set(ROOM, WelcomeRecord(text="old", attachments=[attachment]))

        await interpreter.handle(ROOM, _message("!welcome text new"))

        record = welcome_store.get(ROOM)
        assert record.text == "new"
        assert record.attachments == [attachment]

    @pytest.mark.asyncio
    async def test_empty_body_gets_usage(self, matrix, interpreter, welcome_store):
        welcome_store.set(ROOM, WelcomeRecord(text="keep me"))

        await interpreter.handle(ROOM, _message("!welcome text"))

        assert welcome_store.get(ROOM).text == "keep me"
        assert matrix.notices_in(ROOM) == ["Usage: `!welcome text <message>`"]

    @pytest.mark.asyncio
    async def test_save_failure_reports_and_keeps_old_text(
        self, matrix, interpreter, welcome_store, monkeypatch
    ):
        welcome_store.set(ROOM, WelcomeRecord(text="old"))

        def fail(data):
            raise PersistenceError("disk full")

        monkeypatch.setattr(welcome_store._document, "save", fail)

        consumed = await interpreter.handle(ROOM, _message("!welcome text new"))

        assert consumed
        assert welcome_store.get(ROOM).text == "old"
        assert matrix.notices_in(ROOM) == [CommandInterpreter.SAVE_FAILED]

    @pytest.mark.asyncio
    async def test_write_runs_off_the_event_loop(self, interpreter, welcome_store, monkeypatch):
        writer_threads = []
        save = welcome_store._document.save

        def recording_save(data):
            writer_threads.append(threading.get_ident())
            save(data)

        monkeypatch.setattr(welcome_store._document, "save", recording_save)

        await interpreter.handle(ROOM, _message("!welcome text Hello"))

        assert len(writer_threads) == 1
        assert writer_threads[0] != threading.get_ident()
        assert welcome_store.get(ROOM).text == "Hello"


class TestShowClearReset:
    @pytest.mark.asyncio
    async def test_show_empty(self, matrix, interpreter):
        await interpreter.handle(ROOM, _message("!welcome show"))

        assert matrix.notices_in(ROOM) == ["🔎 Current welcome:\n\n(no text)\n\nFiles: 0"]

    @pytest.mark.asyncio
    async def test_show_after_text(self, matrix, interpreter):
        await interpreter.handle(ROOM, _message("!welcome text  Bienvenue ! "))
        await interpreter.handle(ROOM, _message("!welcome show"))

        assert matrix.notices_in(ROOM)[-1] == "🔎 Current welcome:\n\nBienvenue !\n\nFiles: 0"

    @pytest.mark.asyncio
    async def test_clear_removes_only_attachments(self, matrix, interpreter, welcome_store):
        attachment = AttachmentDescriptor(msgtype="m.image", body="i.png", url="mxc://e/i")
        welcome_store.set(ROOM, WelcomeRecord(text="keep", attachments=[attachment]))

        await interpreter.handle(ROOM, _message("!welcome clear"))

        record = welcome_store.get(ROOM)
        assert record.text == "keep"
        assert record.attachments == []
        assert matrix.notices_in(ROOM) == [CommandInterpreter.ATTACHMENTS_CLEARED]

    @pytest.mark.asyncio
    async def test_reset_then_show(self, matrix, interpreter, welcome_store):
        attachment = AttachmentDescriptor(msgtype="m.image", body="i.png", url="mxc://e/i")
        welcome_store.set(ROOM, WelcomeRecord(text="gone", attachments=[attachment]))

        await interpreter.handle(ROOM, _message("!welcome reset"))
        await interpreter.handle(ROOM, _message("!welcome show"))

        assert welcome_store.get(ROOM).is_empty
        assert matrix.notices_in(ROOM) == [
            CommandInterpreter.WELCOME_RESET,
            "🔎 Current welcome:\n\n(no text)\n\nFiles: 0",
        ]

    @pytest.mark.asyncio
    async def test_help(self, matrix, interpreter):
        await interpreter.handle(ROOM, _message("!welcome help"))

        assert "!welcome text <message>" in matrix.notices_in(ROOM)[0]


class TestAttachCommand:
    @pytest.mark.asyncio
    async def test_attach_reply_target(self, matrix, interpreter, welcome_store):
        matrix.add_event(ROOM, media_event("$pdf", body="rules.pdf"))

        await interpreter.handle(ROOM, _message("!welcome attach", reply_to="$pdf"))

        record = welcome_store.get(ROOM)
        assert [a.display_body for a in record.attachments] == ["rules.pdf"]
        assert matrix.notices_in(ROOM) == [CommandInterpreter.ATTACHMENT_ADDED]

    @pytest.mark.asyncio
    async def test_attach_without_reply(self, matrix, interpreter, welcome_store):
        await interpreter.handle(ROOM, _message("!welcome attach"))

        assert welcome_store.get(ROOM).attachments == []
        assert matrix.notices_in(ROOM) == [
            "Reply to the file message (PDF, image, audio, video), then type `!welcome attach`."
        ]

    @pytest.mark.asyncio
    async def test_attach_non_media(self, matrix, interpreter, welcome_store):
        matrix.add_event(ROOM, text_event("just words", event_id="$txt"))

        await interpreter.handle(ROOM, _message("!welcome attach", reply_to="$txt"))

        assert welcome_store.get(ROOM).attachments == []
        assert matrix.notices_in(ROOM) == ["This message is not a file/media message."]

    @pytest.mark.asyncio
    async def test_attach_target_with_malformed_msgtype(self, matrix, interpreter, welcome_store):
        matrix.add_event(ROOM, media_event("$odd", msgtype=["m.file"]))

        await interpreter.handle(ROOM, _message("!welcome attach", reply_to="$odd"))

        assert welcome_store.get(ROOM).attachments == []
        assert matrix.notices_in(ROOM) == ["This message is not a file/media message."]

    @pytest.mark.asyncio
    async def test_show_counts_attachments(self, matrix, interpreter):
        matrix.add_event(ROOM, media_event("$a", body="a.pdf"))
        matrix.add_event(ROOM, media_event("$b", msgtype="m.image", body="b.png"))

        await interpreter.handle(ROOM, _message("!welcome attach", reply_to="$a"))
        await interpreter.handle(ROOM, _message("!welcome attach", reply_to="$b"))
        await interpreter.handle(ROOM, _message("!welcome show"))

        assert matrix.notices_in(ROOM)[-1].endswith("Files: 2")


class TestGlobalMode:
    @pytest.mark.asyncio
    async def test_commands_write_the_shared_scope(self, matrix, make_interpreter, welcome_store):
        matrix.add_room(ROOM, "INFO Lobby", users={ADMIN_ID: 100})
        interpreter = make_interpreter(global_welcome=True)

        await interpreter.handle(ROOM, _message("!welcome text shared"))

        assert welcome_store.get(GLOBAL_SCOPE).text == "shared"
        assert welcome_store.get(ROOM).is_empty
