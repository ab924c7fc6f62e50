"""Unit tests for the message delivery pipeline."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from chat_service.core.database import Base
from chat_service.core.exceptions import (
    InvalidInputError,
    NotFoundException,
    NotParticipantError,
)
from chat_service.features.chat.models import (
    Conversation,
    ConversationParticipant,
    Message,
    MessageRead,
)
from chat_service.features.chat.repository import MessageRepository
from chat_service.features.chat.service import ChatService
from chat_service.features.realtime.pipeline import MessageDeliveryPipeline
from chat_service.features.realtime.rooms import ConversationRoomRouter
from chat_service.features.realtime.schemas import MarkReadEvent, SendMessageEvent
from chat_service.infra.database import build_engine
from tests.utils import frames_of, make_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

pytestmark = pytest.mark.unit

SENT_AT = datetime(2026, 2, 1, 9, 15, tzinfo=UTC)


@pytest.fixture
def rooms(manager, session_factory) -> ConversationRoomRouter:
    return ConversationRoomRouter(manager, session_factory)


@pytest.fixture
def pipeline(manager, rooms, session_factory) -> MessageDeliveryPipeline:
    return MessageDeliveryPipeline(
        manager, rooms, session_factory, max_content_length=20, clock=lambda: SENT_AT
    )


@pytest.fixture
async def room(manager, rooms, chat):
    """Alice and Bob each connected once and joined to the conversation."""
    alice_ws, bob_ws = make_websocket(), make_websocket()
    alice = manager.add(alice_ws, chat.identity(chat.alice))
    bob = manager.add(bob_ws, chat.identity(chat.bob))
    await rooms.join(alice.connection_id, chat.conversation.id)
    await rooms.join(bob.connection_id, chat.conversation.id)
    return alice, alice_ws, bob, bob_ws


def _send(chat, content="hello", temp_id="tmp-1", **kwargs) -> SendMessageEvent:
    return SendMessageEvent(
        conversation_id=chat.conversation.id, content=content, temp_id=temp_id, **kwargs
    )


async def _messages(session_factory) -> list[Message]:
    async with session_factory() as session:
        return list((await session.execute(select(Message))).scalars())


class TestSubmit:
    async def test_message_is_persisted_then_fanned_out_then_acked(
        self, pipeline, room, chat, session_factory
    ):
        alice, alice_ws, _, bob_ws = room

        assert await pipeline.handle_send(alice, _send(chat, "  hello  "))

        [stored] = await _messages(session_factory)
        assert stored.content == "hello"
        assert stored.sender_id == chat.alice.id

        [delivered] = frames_of(bob_ws, "new_message")
        assert delivered["conversationId"] == str(chat.conversation.id)
        assert delivered["message"]["id"] == str(stored.id)
        assert delivered["message"]["senderName"] == "alice"
        assert delivered["message"]["content"] == "hello"

        # Sender sees its own new_message, then the ack
        assert [f["type"] for f in alice_ws.sent] == ["new_message", "message_ack"]
        ack = alice_ws.sent[-1]
        assert ack["tempId"] == "tmp-1"
        assert ack["messageId"] == str(stored.id)
        assert ack["status"] == "success"

    async def test_no_subscribers_still_persists_and_acks(
        self, pipeline, manager, chat, session_factory
    ):
        websocket = make_websocket()
        alice = manager.add(websocket, chat.identity(chat.alice))

        assert await pipeline.handle_send(alice, _send(chat, "anyone?"))

        assert [f["type"] for f in websocket.sent] == ["message_ack"]
        assert [m.content for m in await _messages(session_factory)] == ["anyone?"]

    async def test_other_rooms_receive_nothing(self, pipeline, manager, rooms, room, chat, db_session):
        other = await ChatService(db_session).create_conversation(chat.bob.id, chat.carol.id)
        carol_ws = make_websocket()
        carol = manager.add(carol_ws, chat.identity(chat.carol))
        await rooms.join(carol.connection_id, other.id)

        await pipeline.handle_send(room[0], _send(chat))

        assert carol_ws.sent == []

    async def test_ack_goes_to_sender_connection_only(self, pipeline, room, chat, manager):
        alice, _, _, bob_ws = room
        second_tab = make_websocket()
        manager.add(second_tab, chat.identity(chat.alice))

        await pipeline.handle_send(alice, _send(chat))

        assert frames_of(bob_ws, "message_ack") == []
        assert second_tab.sent == []

    async def test_conversation_summary_and_unread_counters_move(
        self, pipeline, room, chat, session_factory
    ):
        alice = room[0]

        await pipeline.handle_send(alice, _send(chat, "one", "t1"))
        await pipeline.handle_send(alice, _send(chat, "two", "t2"))

        async with session_factory() as session:
            conversation = await session.get(Conversation, chat.conversation.id)
            bob_row = await session.get(ConversationParticipant, (chat.conversation.id, chat.bob.id))
            alice_row = await session.get(
                ConversationParticipant, (chat.conversation.id, chat.alice.id)
            )
            last = (
                await session.execute(select(Message).where(Message.content == "two"))
            ).scalar_one()

        assert conversation.last_message_id == last.id
        assert bob_row.unread_count == 2
        assert alice_row.unread_count == 0

    @pytest.mark.parametrize("content", ["", "   ", "x" * 21])
    async def test_invalid_content_is_rejected_with_temp_id(
        self, pipeline, room, chat, session_factory, content
    ):
        alice, alice_ws, _, bob_ws = room

        assert not await pipeline.handle_send(alice, _send(chat, content, "bad-1"))

        [error] = frames_of(alice_ws, "message_error")
        assert error["tempId"] == "bad-1"
        assert error["code"] == "invalid-input"
        assert error["conversationId"] == str(chat.conversation.id)
        assert bob_ws.sent == []
        assert await _messages(session_factory) == []

    async def test_outsider_cannot_send(self, pipeline, manager, chat, session_factory):
        websocket = make_websocket()
        carol = manager.add(websocket, chat.identity(chat.carol))

        with pytest.raises(NotParticipantError):
            await pipeline.submit(carol, _send(chat))

        assert not await pipeline.handle_send(carol, _send(chat, temp_id="c-1"))
        [error] = frames_of(websocket, "message_error")
        assert error["code"] == "not-participant"
        assert error["tempId"] == "c-1"
        assert await _messages(session_factory) == []

    async def test_reply_must_target_same_conversation(self, pipeline, room, chat):
        alice = room[0]

        with pytest.raises(InvalidInputError, match="Reply target"):
            await pipeline.submit(alice, _send(chat, reply_to=uuid4()))

    async def test_reply_to_existing_message(self, pipeline, room, chat):
        alice = room[0]
        parent = await pipeline.submit(alice, _send(chat, "parent"))

        reply = await pipeline.submit(alice, _send(chat, "child", reply_to=parent.id))

        assert reply.reply_to == parent.id

    async def test_store_failure_reports_persistence_error(
        self, manager, rooms, session_factory, room, chat
    ):
        messages = MessageRepository()
        messages.create = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("down")))
        pipeline = MessageDeliveryPipeline(manager, rooms, session_factory, messages=messages)
        alice, alice_ws, _, bob_ws = room

        assert not await pipeline.handle_send(alice, _send(chat, temp_id="t-9"))

        [error] = frames_of(alice_ws, "message_error")
        assert error["code"] == "persistence-failed"
        assert error["tempId"] == "t-9"
        assert frames_of(bob_ws, "new_message") == []

    async def test_fanout_failure_still_acks(self, pipeline, rooms, room, chat, session_factory):
        alice, alice_ws, _, _ = room
        rooms.broadcast_to_conversation = AsyncMock(side_effect=RuntimeError("boom"))

        assert await pipeline.handle_send(alice, _send(chat))

        assert frames_of(alice_ws, "message_ack")
        assert len(await _messages(session_factory)) == 1

    async def test_unexpected_error_is_answered(self, manager, rooms, session_factory, room, chat):
        messages = MessageRepository()
        messages.create = AsyncMock(side_effect=RuntimeError("bug"))
        pipeline = MessageDeliveryPipeline(manager, rooms, session_factory, messages=messages)
        alice, alice_ws, _, _ = room

        assert not await pipeline.handle_send(alice, _send(chat, temp_id="t-x"))

        [error] = frames_of(alice_ws, "message_error")
        assert error["code"] == "internal-error"
        assert error["tempId"] == "t-x"


class TestMarkRead:
    async def test_first_read_is_recorded_and_relayed(self, pipeline, room, chat, session_factory):
        alice, alice_ws, bob, bob_ws = room
        message = await pipeline.submit(alice, _send(chat))

        added = await pipeline.mark_read(
            bob, MarkReadEvent(conversation_id=chat.conversation.id, message_id=message.id)
        )

        assert added
        [relayed] = frames_of(alice_ws, "message_read")
        assert relayed["messageId"] == str(message.id)
        assert relayed["userId"] == str(chat.bob.id)

        async with session_factory() as session:
            receipts = (await session.execute(select(MessageRead))).scalars().all()
            bob_row = await session.get(ConversationParticipant, (chat.conversation.id, chat.bob.id))
        assert [(r.message_id, r.user_id) for r in receipts] == [(message.id, chat.bob.id)]
        assert bob_row.unread_count == 0

    async def test_second_read_is_not_relayed(self, pipeline, room, chat):
        alice, alice_ws, bob, _ = room
        message = await pipeline.submit(alice, _send(chat))
        event = MarkReadEvent(conversation_id=chat.conversation.id, message_id=message.id)

        await pipeline.mark_read(bob, event)
        assert not await pipeline.mark_read(bob, event)

        assert len(frames_of(alice_ws, "message_read")) == 1

    async def test_unknown_message_is_not_found(self, pipeline, room, chat):
        bob = room[2]

        with pytest.raises(NotFoundException):
            await pipeline.mark_read(
                bob, MarkReadEvent(conversation_id=chat.conversation.id, message_id=uuid4())
            )

    async def test_outsider_cannot_mark_read(self, pipeline, manager, room, chat):
        alice = room[0]
        message = await pipeline.submit(alice, _send(chat))
        carol = manager.add(make_websocket(), chat.identity(chat.carol))

        with pytest.raises(NotParticipantError):
            await pipeline.mark_read(
                carol, MarkReadEvent(conversation_id=chat.conversation.id, message_id=message.id)
            )


class TestConcurrentSends:
    @pytest.fixture
    async def db_engine(self, tmp_path) -> AsyncGenerator[AsyncEngine]:
        """File-backed store so every send runs on its own pooled connection."""
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
        await engine.dispose()

    async def test_every_concurrent_send_is_counted(self, pipeline, manager, chat, session_factory):
        alice_tabs = [manager.add(make_websocket(), chat.identity(chat.alice)) for _ in range(3)]
        bob = manager.add(make_websocket(), chat.identity(chat.bob))
        sends = [
            pipeline.handle_send(alice_tabs[index % 3], _send(chat, f"a{index}", f"a-{index}"))
            for index in range(8)
        ] + [pipeline.handle_send(bob, _send(chat, f"b{index}", f"b-{index}")) for index in range(5)]

        assert all(await asyncio.gather(*sends))

        messages = await _messages(session_factory)
        async with session_factory() as session:
            conversation = await session.get(Conversation, chat.conversation.id)
            alice_row = await session.get(
                ConversationParticipant, (chat.conversation.id, chat.alice.id)
            )
            bob_row = await session.get(ConversationParticipant, (chat.conversation.id, chat.bob.id))

        assert len(messages) == 13
        assert bob_row.unread_count == 8
        assert alice_row.unread_count == 5
        assert conversation.last_message_id in {message.id for message in messages}
