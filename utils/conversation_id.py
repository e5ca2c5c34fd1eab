from typing import Tuple

from utils.errors import InvalidArgument

SEPARATOR = "_"

def participants(user_a: str, user_b: str) -> Tuple[str, str]:
    """
    Sorted participant pair for a conversation.

    The same order is used to derive the id and to store the record, so it
    does not depend on who started the conversation.
    """
    if not user_a or not user_b:
        raise InvalidArgument("Both participants are required")
    if user_a == user_b:
        raise InvalidArgument("Cannot start a conversation with yourself")
    first, second = sorted((user_a, user_b))
    return first, second

def conversation_id(user_a: str, user_b: str) -> str:
    """Canonical conversation id for an unordered pair of users"""
    return SEPARATOR.join(participants(user_a, user_b))
