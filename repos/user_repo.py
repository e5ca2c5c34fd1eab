from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from db.mongodb import id_candidates, translate_mongo_error
from logger.logger import get_logger
from models.enums import Role
from models.users_model import UserProfile

logger = get_logger("users")

def _parse_profile(document: Dict[str, Any]) -> Optional[UserProfile]:
    # The directory is owned elsewhere; a malformed record must not break chat reads
    try:
        return UserProfile.from_document(document)
    except ValidationError as e:
        logger.warning(f"Skipping malformed user record {document.get('_id')}: {e.error_count()} invalid field(s)")
        return None

class UserRepository:
    """
    Read-only access to the user directory.
    Used to enrich conversations and messages and to resolve roles.
    """

    def __init__(self, db):
        self.db = db
        self.users = db.users

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        try:
            user_dict = await self.users.find_one({"_id": {"$in": id_candidates(user_id)}})
        except PyMongoError as e:
            raise translate_mongo_error(e, f"read user {user_id}")

        if not user_dict:
            return None
        return _parse_profile(user_dict)

    async def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        """Profiles keyed by the id they were requested with; unknown or malformed ids are left out"""
        requested = {}
        for user_id in user_ids:
            for candidate in id_candidates(user_id):
                requested[candidate] = user_id
        if not requested:
            return {}

        try:
            documents = await self.users.find({"_id": {"$in": list(requested)}}).to_list(length=None)
        except PyMongoError as e:
            raise translate_mongo_error(e, "read users")

        profiles = {}
        for document in documents:
            profile = _parse_profile(document)
            if profile is not None:
                profiles[requested[document["_id"]]] = profile
        return profiles

    async def find_by_roles(self, roles: Iterable[Role]) -> List[UserProfile]:
        role_values = [role.value for role in roles]
        try:
            documents = await self.users.find({"role": {"$in": role_values}}).to_list(length=None)
        except PyMongoError as e:
            raise translate_mongo_error(e, "list users by role")
        profiles = (_parse_profile(document) for document in documents)
        return [profile for profile in profiles if profile is not None]
