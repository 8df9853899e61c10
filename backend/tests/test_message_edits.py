from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.models import Message, MessageEdit
from app.services.chat_store import DELETED_MESSAGE_TEXT
from huddle.realtime import InboundEvent, OutboundEvent


async def _post(relay, emitter, sid: str, chat_id: int, text: str) -> int:
    await relay.dispatch(sid, InboundEvent.SEND_MESSAGE, {"chatId": chat_id, "content": {"text": text}})
    message_id = emitter.named(OutboundEvent.NEW_MESSAGE.value)[-1][0]["message"]["id"]
    emitter.clear()
    return message_id


@pytest.mark.anyio("asyncio")
async def test_sender_can_edit_recent_message(relay, emitter, seed, login, db_session):
    await login("alice-sid", "alice")
    await login("bob-sid", "bob")
    message_id = await _post(relay, emitter, "alice-sid", seed.group, "helo")

    await relay.dispatch("alice-sid", InboundEvent.EDIT_MESSAGE, {"messageId": message_id, "text": " hello "})

    edited = emitter.named(OutboundEvent.MESSAGE_EDITED.value)
    assert {to for _, to in edited} == {"alice-sid", "bob-sid"}
    payload = edited[0][0]
    assert payload["chatId"] == seed.group
    assert payload["message"]["text"] == "hello"
    assert payload["message"]["isEdited"] is True

    history = db_session.execute(select(MessageEdit).where(MessageEdit.message_id == message_id)).scalars().all()
    assert [entry.content for entry in history] == ["helo"]


@pytest.mark.anyio("asyncio")
async def test_only_sender_can_edit(relay, emitter, seed, login):
    await login("alice-sid", "alice")
    await login("bob-sid", "bob")
    message_id = await _post(relay, emitter, "alice-sid", seed.group, "mine")

    await relay.dispatch("bob-sid", InboundEvent.EDIT_MESSAGE, {"messageId": message_id, "text": "yours"})
    await relay.dispatch("alice-sid", InboundEvent.EDIT_MESSAGE, {"messageId": message_id, "text": "   "})

    assert emitter.for_sid("bob-sid") == [("error", {"message": "You can only edit your own messages"})]
    assert emitter.for_sid("alice-sid") == [("error", {"message": "Message content is required"})]


@pytest.mark.anyio("asyncio")
async def test_old_messages_cannot_be_edited(relay, emitter, seed, login, store, settings):
    await login("alice-sid", "alice")
    created = datetime.now(timezone.utc) - timedelta(hours=settings.message_edit_window_hours, minutes=5)
    message = await store.create_message(seed.group, seed.alice, text="ancient", created_at=created)

    await relay.dispatch("alice-sid", InboundEvent.EDIT_MESSAGE, {"messageId": message.id, "text": "new"})

    assert emitter.for_sid("alice-sid") == [("error", {"message": "Message is too old to edit"})]
    assert (await store.find_message_by_id(message.id)).text == "ancient"


@pytest.mark.anyio("asyncio")
async def test_chat_admin_can_delete_others_messages(relay, emitter, seed, login, db_session):
    await login("alice-sid", "alice")
    await login("bob-sid", "bob")
    message_id = await _post(relay, emitter, "bob-sid", seed.group, "oops")

    await relay.dispatch("alice-sid", InboundEvent.DELETE_MESSAGE, {"messageId": message_id})

    deleted = emitter.named(OutboundEvent.MESSAGE_DELETED.value)
    assert sorted(to for _, to in deleted) == ["alice-sid", "bob-sid"]
    assert deleted[0][0] == {"messageId": message_id, "chatId": seed.group}

    row = db_session.get(Message, message_id)
    assert row.is_deleted is True
    assert row.deleted_at is not None
    assert row.content_text == DELETED_MESSAGE_TEXT


@pytest.mark.anyio("asyncio")
async def test_members_cannot_delete_others_messages(relay, emitter, seed, login, db_session):
    await login("alice-sid", "alice")
    await login("bob-sid", "bob")
    message_id = await _post(relay, emitter, "alice-sid", seed.group, "keep me")

    await relay.dispatch("bob-sid", InboundEvent.DELETE_MESSAGE, {"messageId": message_id})
    await relay.dispatch("alice-sid", InboundEvent.EDIT_MESSAGE, {"messageId": 404, "text": "x"})

    assert emitter.for_sid("bob-sid") == [
        ("error", {"message": "You can only delete your own messages or be a chat admin"})
    ]
    assert emitter.for_sid("alice-sid") == [("error", {"message": "Message not found"})]
    assert db_session.get(Message, message_id).is_deleted is False


@pytest.mark.anyio("asyncio")
async def test_deleted_messages_cannot_be_edited(relay, emitter, seed, login):
    await login("alice-sid", "alice")
    message_id = await _post(relay, emitter, "alice-sid", seed.group, "gone soon")
    await relay.dispatch("alice-sid", InboundEvent.DELETE_MESSAGE, {"messageId": message_id})
    emitter.clear()

    await relay.dispatch("alice-sid", InboundEvent.EDIT_MESSAGE, {"messageId": message_id, "text": "back"})

    assert emitter.for_sid("alice-sid") == [("error", {"message": "Message not found"})]


@pytest.mark.anyio("asyncio")
async def test_remove_reaction(relay, emitter, seed, login):
    await login("alice-sid", "alice")
    await login("bob-sid", "bob")
    message_id = await _post(relay, emitter, "alice-sid", seed.group, "react to me")
    reaction = {"messageId": message_id, "emoji": "🎉"}
    await relay.dispatch("bob-sid", InboundEvent.ADD_REACTION, reaction)
    emitter.clear()

    await relay.dispatch("bob-sid", InboundEvent.REMOVE_REACTION, reaction)
    await relay.dispatch("bob-sid", InboundEvent.REMOVE_REACTION, reaction)

    removed = emitter.named(OutboundEvent.REACTION_REMOVED.value)
    assert sorted(to for _, to in removed) == ["alice-sid", "bob-sid"]
    assert removed[0][0] == {"messageId": message_id, "userId": seed.bob, "emoji": "🎉"}
    # Removing a reaction that is already gone succeeds quietly.
    assert len(removed) == 2
    assert all(event != "error" for event, _ in emitter.for_sid("bob-sid"))


@pytest.mark.anyio("asyncio")
async def test_deleting_twice_reports_missing_message(relay, emitter, seed, login, db_session):
    await login("alice-sid", "alice")
    await login("bob-sid", "bob")
    message_id = await _post(relay, emitter, "alice-sid", seed.group, "once")
    await relay.dispatch("alice-sid", InboundEvent.DELETE_MESSAGE, {"messageId": message_id})
    deleted_at = db_session.get(Message, message_id).deleted_at
    emitter.clear()

    await relay.dispatch("alice-sid", InboundEvent.DELETE_MESSAGE, {"messageId": message_id})

    assert emitter.named(OutboundEvent.MESSAGE_DELETED.value) == []
    assert emitter.for_sid("alice-sid") == [("error", {"message": "Message not found"})]
    assert emitter.for_sid("bob-sid") == []
    db_session.expire_all()
    assert db_session.get(Message, message_id).deleted_at == deleted_at
