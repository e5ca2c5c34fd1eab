from pymongo import ASCENDING

async def init_db_indexes(db):
    """
    Initialize database with the indexes the chat core queries on
    """
    # Conversation list: one query per participant slot
    await db.conversations.create_index([("participant_a", ASCENDING)])
    await db.conversations.create_index([("participant_b", ASCENDING)])

    # Ordered message feed per conversation, id as tiebreaker
    await db.messages.create_index([
        ("conversation_id", ASCENDING),
        ("created_at", ASCENDING),
        ("_id", ASCENDING)
    ])
    # Unread scans and read flips
    await db.messages.create_index([("conversation_id", ASCENDING), ("is_read", ASCENDING)])

    # Booking lookups for contact eligibility
    await db.bookings.create_index([
        ("customer_id", ASCENDING),
        ("provider_id", ASCENDING),
        ("type", ASCENDING)
    ])
    await db.bookings.create_index([("provider_id", ASCENDING), ("type", ASCENDING)])
