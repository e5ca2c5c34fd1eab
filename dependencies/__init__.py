"""
Import common dependencies to make them available from the package level.
This allows imports like: from dependencies import get_current_user_id
"""
from .auth import get_current_user_id, CurrentUserId
from .db import get_db, DB
from .chat import (
    get_conversation_service,
    get_message_service,
    get_unread_counter,
    get_access_gate,
    get_realtime_hub,
)
