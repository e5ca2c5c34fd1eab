# centralizes MongoDB utilities
from typing import Any, List

from bson import ObjectId
from pymongo.errors import OperationFailure, PyMongoError

from utils.errors import ChatError, PermissionDenied, Transient

# Server error codes that mean the session may not touch the collection
UNAUTHORIZED_CODES = {13, 18}

def id_candidates(user_id: str) -> List[Any]:
    """User ids arrive as strings; external collections may store them as ObjectId"""
    candidates: List[Any] = [user_id]
    if ObjectId.is_valid(user_id):
        candidates.append(ObjectId(user_id))
    return candidates

def stringify_id(value: Any) -> Any:
    """ObjectId references become their hex string; anything else is left for validation"""
    return str(value) if isinstance(value, ObjectId) else value

def translate_mongo_error(error: PyMongoError, action: str) -> ChatError:
    """Map a driver error onto the chat error kinds"""
    if isinstance(error, OperationFailure) and error.code in UNAUTHORIZED_CODES:
        return PermissionDenied(f"Not allowed to {action}")
    return Transient(f"Failed to {action}: {error}")
