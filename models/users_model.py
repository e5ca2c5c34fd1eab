from pydantic import BaseModel, field_validator
from typing import Optional, Dict, Any

from models.enums import Role

class UserProfile(BaseModel):
    """Display profile read from the user directory"""
    id: str
    role: Optional[Role] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    academy_name: Optional[str] = None
    clinic_name: Optional[str] = None
    profile_photo: Optional[str] = None

    model_config = {"extra": "ignore"}

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, value):
        return Role.parse(value)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "UserProfile":
        data = dict(document)
        data["id"] = str(data.pop("_id", data.get("id")))
        return cls(**data)

    def display_name(self, fallback: str = "Unknown") -> str:
        """
        Name shown next to a conversation or message.
        Providers are known by their business name, everyone else by their
        personal name, then any contact detail we have.
        """
        if self.role == Role.ACADEMY and self.academy_name:
            return self.academy_name
        if self.role == Role.CLINIC and self.clinic_name:
            return self.clinic_name
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        for candidate in (self.first_name, self.last_name, self.name, self.email, self.phone):
            if candidate:
                return candidate
        return fallback
