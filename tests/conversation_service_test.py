import asyncio

import pytest

from models.enums import Role
from repos.conversation_repo import ConversationRepository
from utils.errors import InvalidArgument, NotFound, PermissionDenied, Transient, Unauthenticated
from conftest import at

async def test_get_or_create_stores_sorted_participants(db, conversation_service):
    conversation_id = await conversation_service.get_or_create("zoe", "adam")

    assert conversation_id == "adam_zoe"
    conversation = await db.conversations.find_one({"_id": conversation_id})
    assert conversation["participant_a"] == "adam"
    assert conversation["participant_b"] == "zoe"
    assert conversation["last_message_at"] is None

async def test_get_or_create_returns_existing(db, conversation_service):
    first = await conversation_service.get_or_create("adam", "zoe")
    second = await conversation_service.get_or_create("zoe", "adam")

    assert first == second
    assert await db.conversations.count_documents({}) == 1

async def test_concurrent_first_contact_creates_one_record(db, conversation_service):
    results = await asyncio.gather(
        conversation_service.get_or_create("adam", "zoe"),
        conversation_service.get_or_create("zoe", "adam"),
    )

    assert results[0] == results[1]
    assert await db.conversations.count_documents({}) == 1

async def test_create_if_absent_reports_only_first_creation(db):
    repo = ConversationRepository(db)
    assert await repo.create_if_absent("adam_zoe", "adam", "zoe") is True
    assert await repo.create_if_absent("adam_zoe", "adam", "zoe") is False

async def test_get_or_create_with_self_rejected(conversation_service):
    with pytest.raises(InvalidArgument):
        await conversation_service.get_or_create("adam", "adam")

async def test_get_or_create_requires_identity(conversation_service):
    with pytest.raises(Unauthenticated):
        await conversation_service.get_or_create(None, "adam")

async def test_list_sorts_by_latest_activity(db, users, conversation_service):
    await db.conversations.insert_many([
        {"_id": "clinic-1_player-1", "participant_a": "clinic-1", "participant_b": "player-1",
         "created_at": at(0), "last_message": "older", "last_message_at": at(5)},
        {"_id": "player-1_player-2", "participant_a": "player-1", "participant_b": "player-2",
         "created_at": at(0), "last_message_at": None},
        {"_id": "academy-1_player-1", "participant_a": "academy-1", "participant_b": "player-1",
         "created_at": at(0), "last_message": "newer", "last_message_at": at(10)},
        {"_id": "academy-1_clinic-1", "participant_a": "academy-1", "participant_b": "clinic-1",
         "created_at": at(0), "last_message_at": at(20)},
    ])

    conversations = await conversation_service.list_conversations("player-1")

    assert [conversation.id for conversation in conversations] == [
        "academy-1_player-1",
        "clinic-1_player-1",
        "player-1_player-2",
    ]

async def test_list_enriches_other_participant(db, users, conversation_service, message_service):
    conversation_id = await conversation_service.get_or_create("player-1", "academy-1")
    await message_service.send(conversation_id, "academy-1", "Welcome!")

    [conversation] = await conversation_service.list_conversations("player-1")

    assert conversation.other_participant_id == "academy-1"
    assert conversation.other_participant_name == "North Academy"
    assert conversation.other_participant_role == Role.ACADEMY
    assert conversation.unread_count == 1
    assert conversation.last_message == "Welcome!"

    [same] = await conversation_service.list_conversations("academy-1")
    assert same.other_participant_name == "Sam Lee"
    assert same.other_participant_photo == "sam.png"
    assert same.unread_count == 0

async def test_list_falls_back_for_unknown_profile(conversation_service):
    await conversation_service.get_or_create("player-1", "nobody")

    [conversation] = await conversation_service.list_conversations("player-1")
    assert conversation.other_participant_name == "Unknown"
    assert conversation.other_participant_role is None

async def test_list_survives_directory_failure(conversation_service):
    await conversation_service.get_or_create("player-1", "player-2")

    async def broken(user_ids):
        raise Transient("directory down")
    conversation_service.user_repo.get_profiles = broken

    [conversation] = await conversation_service.list_conversations("player-1")
    assert conversation.other_participant_name == "Unknown"

async def test_list_is_empty_when_store_unavailable(conversation_service):
    async def broken(user_id):
        raise Transient("store down")
    conversation_service.conversation_repo.find_for_user = broken

    assert await conversation_service.list_conversations("player-1") == []

async def test_get_unknown_conversation(conversation_service):
    with pytest.raises(NotFound):
        await conversation_service.get("adam_zoe", "adam")

async def test_get_by_outsider_denied(conversation_service):
    conversation_id = await conversation_service.get_or_create("adam", "zoe")
    with pytest.raises(PermissionDenied):
        await conversation_service.get(conversation_id, "eve")

async def test_get_messages_oldest_first_with_senders(users, conversation_service, message_service):
    conversation_id = await conversation_service.get_or_create("player-1", "clinic-1")
    for text in ("one", "two", "three"):
        await message_service.send(conversation_id, "player-1", text)
    await message_service.send(conversation_id, "clinic-1", "four")

    messages = await conversation_service.get_messages(conversation_id, "player-1", limit=3)

    assert [message.content for message in messages] == ["two", "three", "four"]
    assert messages[0].sender_name == "Sam Lee"
    assert messages[-1].sender_name == "City Clinic"

async def test_list_survives_malformed_directory_record(db, users, conversation_service):
    await db.users.insert_one({"_id": "player-9", "role": "player", "phone": 5551234})
    await conversation_service.get_or_create("player-1", "player-9")
    await conversation_service.get_or_create("player-1", "clinic-1")

    conversations = await conversation_service.list_conversations("player-1")
    names = {conversation.other_participant_id: conversation.other_participant_name for conversation in conversations}

    assert names == {"player-9": "Unknown", "clinic-1": "City Clinic"}

async def test_colliding_ids_do_not_share_a_conversation(db, conversation_service):
    first = await conversation_service.get_or_create("a_b", "c")

    with pytest.raises(InvalidArgument):
        await conversation_service.get_or_create("a", "b_c")

    assert await conversation_service.get_or_create("c", "a_b") == first
    assert await db.conversations.count_documents({}) == 1

async def test_colliding_id_detected_after_losing_create_race(db, conversation_service):
    await conversation_service.get_or_create("a_b", "c")
    repo = conversation_service.conversation_repo
    original = repo.find_by_id
    calls = []

    async def first_lookup_misses(conversation_id):
        calls.append(conversation_id)
        if len(calls) == 1:
            return None
        return await original(conversation_id)
    repo.find_by_id = first_lookup_misses

    with pytest.raises(InvalidArgument):
        await conversation_service.get_or_create("a", "b_c")
    assert len(calls) == 2
