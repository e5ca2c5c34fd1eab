import pytest
from bson import ObjectId

from models.enums import Role
from services.access_gate import Eligibility, eligibility_rule
from utils.errors import Transient
from conftest import at

@pytest.mark.parametrize("viewer,target,expected", [
    (Role.PLAYER, Role.ACADEMY, Eligibility.CUSTOMER_BOOKED_TARGET),
    (Role.PARENT, Role.CLINIC, Eligibility.CUSTOMER_BOOKED_TARGET),
    (Role.ACADEMY, Role.PLAYER, Eligibility.TARGET_BOOKED_PROVIDER),
    (Role.CLINIC, Role.PARENT, Eligibility.TARGET_BOOKED_PROVIDER),
    (Role.AGENT, Role.PLAYER, Eligibility.ALWAYS),
    (Role.CLINIC, Role.AGENT, Eligibility.ALWAYS),
    (Role.AGENT, Role.AGENT, Eligibility.ALWAYS),
    (Role.PLAYER, Role.PARENT, Eligibility.NEVER),
    (Role.ACADEMY, Role.CLINIC, Eligibility.NEVER),
    (None, Role.CLINIC, Eligibility.NEVER),
    (Role.PLAYER, None, Eligibility.NEVER),
    (None, Role.AGENT, Eligibility.ALWAYS),
    (Role.AGENT, None, Eligibility.ALWAYS),
    (None, None, Eligibility.NEVER),
])
def test_eligibility_rule_table(viewer, target, expected):
    assert eligibility_rule(viewer, target) == expected

async def test_booking_type_must_match_provider_role(db, users, access_gate):
    await db.users.insert_one({"_id": "shared-id", "role": "academy", "academy_name": "Shadow Academy"})
    await db.bookings.insert_many([
        {"_id": "b1", "customer_id": "player-1", "provider_id": "clinic-1", "type": "clinic", "created_at": at(0)},
        # Crafted: a clinic booking pointing at an academy's id
        {"_id": "b2", "customer_id": "player-1", "provider_id": "shared-id", "type": "clinic", "created_at": at(1)},
    ])

    assert await access_gate.can_chat_with("player-1", "clinic-1") is True
    assert await access_gate.can_chat_with("player-1", "shared-id") is False

async def test_no_booking_no_contact(users, access_gate):
    assert await access_gate.can_chat_with("player-1", "academy-1") is False
    assert await access_gate.can_chat_with("academy-1", "player-1") is False

async def test_provider_sees_customer_who_booked_same_type(db, users, access_gate):
    await db.bookings.insert_many([
        {"_id": "b1", "customer_id": "parent-1", "provider_id": "academy-1", "type": "academy"},
        {"_id": "b2", "customer_id": "player-2", "provider_id": "academy-1", "type": "clinic"},
    ])

    assert await access_gate.can_chat_with("academy-1", "parent-1") is True
    assert await access_gate.can_chat_with("academy-1", "player-2") is False

async def test_agent_is_always_eligible(users, access_gate):
    assert await access_gate.can_chat_with("player-1", "agent-1") is True
    assert await access_gate.can_chat_with("agent-1", "clinic-1") is True

async def test_same_side_and_self_are_not_eligible(users, access_gate):
    assert await access_gate.can_chat_with("player-1", "player-2") is False
    assert await access_gate.can_chat_with("player-1", "player-1") is False
    assert await access_gate.can_chat_with("player-1", "nobody") is False

async def test_lookup_failure_means_not_eligible(users, access_gate):
    async def broken(*args, **kwargs):
        raise Transient("bookings down")
    access_gate.booking_repo.exists = broken

    assert await access_gate.can_chat_with("player-1", "clinic-1") is False

async def test_customer_contacts_are_booked_providers_and_agents(db, users, access_gate):
    await db.users.insert_one({"_id": "shared-id", "role": "academy", "academy_name": "Shadow Academy"})
    await db.bookings.insert_many([
        {"_id": "old", "customer_id": "player-1", "provider_id": "clinic-1", "type": "clinic", "created_at": at(0)},
        {"_id": "new", "customer_id": "player-1", "provider_id": "clinic-1", "type": "clinic", "created_at": at(30)},
        {"_id": "crafted", "customer_id": "player-1", "provider_id": "shared-id", "type": "clinic", "created_at": at(5)},
    ])

    contacts = await access_gate.chattable_contacts("player-1")
    by_id = {contact.user_id: contact for contact in contacts}

    assert set(by_id) == {"clinic-1", "agent-1"}
    assert by_id["clinic-1"].name == "City Clinic"
    assert by_id["clinic-1"].booking_id == "new"
    assert by_id["agent-1"].name == "Kim Park (Customer Support)"
    assert by_id["agent-1"].role == Role.AGENT

async def test_provider_contacts_are_matching_customers(db, users, access_gate):
    await db.bookings.insert_many([
        {"_id": "b1", "customer_id": "player-1", "provider_id": "clinic-1", "type": "clinic", "created_at": at(0)},
        {"_id": "b2", "customer_id": "parent-1", "provider_id": "clinic-1", "type": "academy", "created_at": at(1)},
    ])

    contacts = await access_gate.chattable_contacts("clinic-1")

    assert {contact.user_id for contact in contacts} == {"player-1", "agent-1"}

async def test_agent_contacts_are_everyone_else(users, access_gate):
    contacts = await access_gate.chattable_contacts("agent-1")

    assert {contact.user_id for contact in contacts} == {
        "player-1", "player-2", "parent-1", "academy-1", "clinic-1"
    }
    parent = next(contact for contact in contacts if contact.user_id == "parent-1")
    assert parent.name == "parent@example.com"

async def test_existing_conversation_is_not_gated(db, users, conversation_service, message_service):
    # No booking between them, yet an existing conversation keeps working
    conversation_id = await conversation_service.get_or_create("player-1", "academy-1")
    await message_service.send(conversation_id, "academy-1", "Your booking was cancelled")

    [conversation] = await conversation_service.list_conversations("player-1")
    assert conversation.id == conversation_id
    assert conversation.unread_count == 1

async def test_agent_reachable_without_viewer_profile(users, access_gate):
    assert await access_gate.can_chat_with("no-profile", "agent-1") is True
    # The target itself must exist
    assert await access_gate.can_chat_with("agent-1", "no-profile") is False

async def test_bookings_referencing_users_by_object_id(db, users, access_gate):
    clinic_id = ObjectId()
    await db.users.insert_one({"_id": clinic_id, "role": "clinic", "clinic_name": "Oak Clinic"})
    await db.bookings.insert_one(
        {"_id": "b1", "customer_id": "player-1", "provider_id": clinic_id, "type": "clinic", "created_at": at(0)}
    )

    contacts = await access_gate.chattable_contacts("player-1")
    by_id = {contact.user_id: contact for contact in contacts}

    assert set(by_id) == {str(clinic_id), "agent-1"}
    assert by_id[str(clinic_id)].name == "Oak Clinic"
    assert await access_gate.can_chat_with("player-1", str(clinic_id)) is True

async def test_malformed_booking_is_skipped(db, users, access_gate):
    await db.bookings.insert_many([
        {"_id": "good", "customer_id": "player-1", "provider_id": "clinic-1", "type": "clinic", "created_at": at(0)},
        {"_id": "broken", "customer_id": "player-1", "provider_id": None, "type": "clinic", "created_at": at(1)},
    ])

    contacts = await access_gate.chattable_contacts("player-1")

    assert {contact.user_id for contact in contacts} == {"clinic-1", "agent-1"}

async def test_malformed_directory_record_is_left_out(db, users, access_gate):
    await db.users.insert_one({"_id": "agent-2", "role": "agent", "first_name": ["not", "a", "name"]})

    contacts = await access_gate.chattable_contacts("player-1")

    assert {contact.user_id for contact in contacts} == {"agent-1"}
